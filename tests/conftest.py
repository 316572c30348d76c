import asyncio
import inspect

import pytest

from render_portal.db.client import InMemoryDB
from render_portal.services.email import OutboxEmailSender
from support import OWNER, project_payload


def pytest_pyfunc_call(pyfuncitem):
    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None

    kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(test_func(**kwargs))
    finally:
        loop.close()
    return True


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def outbox():
    return OutboxEmailSender()


@pytest.fixture
def project(db):
    db.upsert_user_profile({"user_id": OWNER.user_id, "email": OWNER.email, "full_name": OWNER.full_name})
    return db.insert_project({**project_payload(), "user_id": OWNER.user_id})

from render_portal.core.auth import Identity
from render_portal.db.client import InMemoryDB

OWNER = Identity(user_id="owner-1", email="owner@renderstudio.com", full_name="Olive Owner")
EDITOR = Identity(user_id="editor-1", email="editor@renderstudio.com", full_name="Eddie Editor")
VIEWER = Identity(user_id="viewer-1", email="viewer@renderstudio.com", full_name="Vera Viewer")
ADMIN = Identity(user_id="admin-1", email="admin@renderstudio.com", full_name="Ada Admin")
OUTSIDER = Identity(user_id="outsider-1", email="outsider@elsewhere.org")


def project_payload(title: str = "Spring Patio Set") -> dict:
    return {
        "title": title,
        "retailer": "Garden Depot",
        "due_date": "2026-11-30",
        "items": [
            {
                "name": "Lounge Chair",
                "parts": [
                    {"name": "Frame", "finish": "Matte", "color": "Black", "texture": "Powder coat"},
                    {"name": "Cushion", "finish": "Fabric", "color": "Sand", "texture": "Woven", "files": ["swatch.png"]},
                ],
            }
        ],
    }


def add_member(db: InMemoryDB, project_id: str, identity: Identity, level: str) -> None:
    db.upsert_user_profile({"user_id": identity.user_id, "email": identity.email, "full_name": identity.full_name})
    db.upsert_collaborator(
        {"project_id": project_id, "user_id": identity.user_id, "permission_level": level, "invited_by": OWNER.user_id}
    )

import os


BASE_URL = os.environ.get("INVENTORY_API_URL", "").rstrip("/")

DEFAULT_PASSWORD = os.environ.get("TEST_DEFAULT_PASSWORD", "admin123")

ROLE_USERNAMES = {
    "superadmin": os.environ.get("TEST_SUPERADMIN_USERNAME", "superadmin"),
    "approver": os.environ.get("TEST_APPROVER_USERNAME"),
    "issuer": os.environ.get("TEST_ISSUER_USERNAME"),
    "requester": os.environ.get("TEST_REQUESTER_USERNAME"),
}

ROLE_PASSWORDS = {
    "superadmin": os.environ.get("TEST_SUPERADMIN_PASSWORD", DEFAULT_PASSWORD),
    "approver": os.environ.get("TEST_APPROVER_PASSWORD", DEFAULT_PASSWORD),
    "issuer": os.environ.get("TEST_ISSUER_PASSWORD", DEFAULT_PASSWORD),
    "requester": os.environ.get("TEST_REQUESTER_PASSWORD", DEFAULT_PASSWORD),
}


def get_credentials(role: str) -> dict | None:
    username = ROLE_USERNAMES.get(role)
    if not username:
        return None
    return {"username": username, "password": ROLE_PASSWORDS.get(role, DEFAULT_PASSWORD)}

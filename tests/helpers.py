"""Users and bearer tokens shared by the test suites."""
from backend.app.core.security import Role, ROLE_SCOPES, create_access_token

# id, username, role, full name, callsign
TEST_USERS = {
    "admin": ("user-admin", "admin", Role.ADMIN, "Safety Officer", "SO"),
    "controller": ("user-controller", "controller", Role.EVENT_CONTROLLER, "Event Control", "Control"),
    "operator": ("user-operator", "operator", Role.OPERATOR, "Jo Loggist", "Loggist"),
    "operator_2": ("user-operator-2", "operator2", Role.OPERATOR, "Sam Steward", "Steward 4"),
    "viewer": ("user-viewer", "viewer", Role.VIEWER, "Observer", None),
}


def auth_headers(name: str) -> dict:
    """Bearer headers for one of TEST_USERS."""
    user_id, username, role, _, _ = TEST_USERS[name]
    token = create_access_token({
        "sub": username,
        "user_id": user_id,
        "role": role,
        "scopes": ROLE_SCOPES[role],
    })
    return {"Authorization": f"Bearer {token}"}

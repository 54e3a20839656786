"""
Security and Authentication for the incident log API.

Implements OAuth2 with password flow and JWT tokens. Scopes control which
endpoints a role can reach; whether a particular log may be amended is
decided separately, per request, by the AmendmentGate.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, SecurityScopes
from jose import JWTError, jwt
from pydantic import BaseModel

from backend.app.core.config import get_settings

settings = get_settings()

# Incident log scopes
INCIDENT_LOG_READ = "incident_log:read"
INCIDENT_LOG_WRITE = "incident_log:write"
INCIDENT_LOG_AMEND = "incident_log:amend"
INCIDENT_LOG_EXPORT = "incident_log:export"

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="api/v1/auth/token",
    scopes={
        INCIDENT_LOG_READ: "Read incident logs and their revision history",
        INCIDENT_LOG_WRITE: "Create new incident log entries",
        INCIDENT_LOG_AMEND: "Request amendments to incident log entries",
        INCIDENT_LOG_EXPORT: "Export revision histories for inquiries",
    },
)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Generate a signed JWT token.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


# Role definitions
class Role:
    ADMIN = "admin"
    EVENT_CONTROLLER = "event_controller"  # Runs the control room log
    OPERATOR = "operator"
    VIEWER = "viewer"

ROLE_SCOPES = {
    Role.ADMIN: [INCIDENT_LOG_READ, INCIDENT_LOG_WRITE, INCIDENT_LOG_AMEND, INCIDENT_LOG_EXPORT, "admin:all"],
    Role.EVENT_CONTROLLER: [INCIDENT_LOG_READ, INCIDENT_LOG_WRITE, INCIDENT_LOG_AMEND, INCIDENT_LOG_EXPORT],
    Role.OPERATOR: [INCIDENT_LOG_READ, INCIDENT_LOG_WRITE, INCIDENT_LOG_AMEND],
    Role.VIEWER: [INCIDENT_LOG_READ],
}

class User(BaseModel):
    id: str
    username: str
    role: str
    scopes: List[str] = []


class TokenData(BaseModel):
    user_id: str
    username: str
    role: str = Role.VIEWER
    scopes: List[str] = []


def decode_access_token(token: str) -> Optional[TokenData]:
    """Claims of a valid token, or None if it is unsigned, expired or lacks an identity."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    username = payload.get("sub")
    user_id = payload.get("user_id")
    if not username or not user_id:
        return None

    role = payload.get("role", Role.VIEWER)
    return TokenData(
        user_id=user_id,
        username=username,
        role=role,
        scopes=payload.get("scopes", ROLE_SCOPES.get(role, [])),
    )


async def get_current_user(
    security_scopes: SecurityScopes,
    token: str = Depends(oauth2_scheme)
) -> User:
    """
    Resolve the bearer token to a User and enforce the endpoint's scopes.
    Whether the user may amend a particular log is not decided here.
    """
    authenticate_value = (
        f'Bearer scope="{security_scopes.scope_str}"' if security_scopes.scopes else "Bearer"
    )

    token_data = decode_access_token(token)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": authenticate_value},
        )

    missing = [scope for scope in security_scopes.scopes if scope not in token_data.scopes]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not enough permissions. Required scope: {missing[0]}",
            headers={"WWW-Authenticate": authenticate_value},
        )

    return User(
        id=token_data.user_id,
        username=token_data.username,
        role=token_data.role,
        scopes=token_data.scopes,
    )

"""
Authentication router.

Exchanges control-room credentials for a JWT. The token carries the user id
so every log entry and revision can be attributed to a person, and the role's
scopes so the router can refuse requests before any lookup.
"""

from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import get_settings
from backend.app.core.database import get_db
from backend.app.core.security import create_access_token, ROLE_SCOPES
from backend.app.services import auth_service

router = APIRouter()
settings = get_settings()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str
    callsign: Optional[str] = None
    scopes: List[str] = []


@router.post("/token", response_model=TokenResponse)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.authenticate_user(db, form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    scopes = ROLE_SCOPES.get(user.role, [])
    token = create_access_token(
        data={"sub": user.username, "user_id": user.id, "role": user.role, "scopes": scopes},
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
    )
    return TokenResponse(
        access_token=token,
        user_id=user.id,
        role=user.role,
        callsign=user.callsign,
        scopes=scopes,
    )

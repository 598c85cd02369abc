"""Shared API dependencies."""
from __future__ import annotations

import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.security import InvalidTokenError, decode_token
from app.db.models.user import User
from app.db.session import SessionLocal
from app.schemas import TokenPayload
from app.services.push_transport import PushTransport, get_push_transport
from app.utils.exceptions import AuthenticationError

# Tokens are issued by the web application; this service only verifies them
bearer_scheme = HTTPBearer(auto_error=False)

CREDENTIALS_ERROR = "Could not validate credentials"


def get_db() -> Session:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_transport() -> PushTransport:
    return get_push_transport()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the authenticated user from the Authorization header."""

    if credentials is None or not credentials.credentials:
        raise AuthenticationError(CREDENTIALS_ERROR)

    try:
        payload = decode_token(credentials.credentials)
        if payload.get("type") != "access":
            raise InvalidTokenError("Token must be an access token")
        token_data = TokenPayload.model_validate(payload)
    except (InvalidTokenError, ValidationError, ValueError, KeyError) as exc:
        raise AuthenticationError(CREDENTIALS_ERROR) from exc

    user_id = uuid.UUID(str(token_data.sub))
    user = db.get(User, user_id)
    if not user:
        raise AuthenticationError(CREDENTIALS_ERROR)
    return user

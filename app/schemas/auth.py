"""Bearer token claims."""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Claims of access tokens minted by the web application; ``sub`` is the user id."""

    sub: uuid.UUID
    exp: datetime
    type: str = "access"

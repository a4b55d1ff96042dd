"""
Authenticated user resolution.

Sign-in is handled by the fronting auth proxy, which forwards the user's id
in the X-User-Id header.
"""
from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> UUID:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")

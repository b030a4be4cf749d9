"""
Caller identity.

Authentication and session issuance live outside this service; the gateway in
front of it forwards the authenticated user id in the ``X-User-ID`` header.
"""
from typing import Optional

from fastapi import Header, HTTPException, status


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return x_user_id.strip()

"""
Request authentication.

The auth service is treated as a black box that has already written login
sessions into the "session" collection ({token, userId, expiresAt}). Here we
only turn a bearer token into a user id.
"""
import logging
from datetime import timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from database import get_collection
from schemas import utcnow

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def lookup_user_id(token: str) -> Optional[str]:
    doc = get_collection("session").find_one({"token": token})
    if not doc:
        return None

    expires_at = doc.get("expiresAt")
    if expires_at is not None:
        # pymongo hands back naive UTC datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= utcnow():
            logger.info("Rejected expired session token for user %s", doc.get("userId"))
            return None

    user_id = doc.get("userId")
    return str(user_id) if user_id else None


def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return lookup_user_id(credentials.credentials)


def get_current_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id

"""Supabase JWT validation dependency for FastAPI."""

import asyncio

from fastapi import Header, HTTPException
from supabase import create_client
from audio_export.config import settings


def _fetch_user(token: str):
    # supabase-py is synchronous; callers run this in a worker thread
    client = create_client(settings.supabase_url, settings.supabase_anon_key)
    return client.auth.get_user(token)


async def verify_jwt(authorization: str = Header(None)):
    """Validate Supabase JWT from Authorization header.

    Returns the authenticated user object; its ``id`` owns submitted jobs.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    token = authorization.replace("Bearer ", "")
    try:
        user_response = await asyncio.to_thread(_fetch_user, token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if user_response is None or user_response.user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_response.user

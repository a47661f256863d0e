import uuid

import jwt
from fastapi import HTTPException, Request

from .settings import settings


def decode_http_access_token(token: str) -> uuid.UUID:
    payload = jwt.decode(
        token,
        settings.JWT_SECRET_KEY,
        algorithms=[settings.ALGORITHM],
    )

    user_id = payload.get("sub")
    if not user_id:
        raise jwt.InvalidTokenError("Token missing user ID")

    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise jwt.InvalidTokenError("Invalid user ID format in token")


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get("access_token")
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


async def jwt_protect(request: Request) -> uuid.UUID:
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        return decode_http_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

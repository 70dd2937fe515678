from datetime import datetime, timedelta
from typing import Optional
import jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

import config

security = HTTPBearer()

TOKEN_TYPE = "access"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a bearer token for an actor.

    `data` must carry `user_id`; it becomes the actor id recorded on every
    ledger entry and audit log the request produces.
    """
    lifetime = expires_delta if expires_delta is not None else timedelta(
        minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    claims = dict(data, exp=datetime.utcnow() + lifetime, type=TOKEN_TYPE)
    return jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        claims = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Access token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Could not validate credentials")

    if claims.get("type") != TOKEN_TYPE:
        raise _unauthorized("Invalid token type")
    return claims


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Resolve the bearer token to its claims; the actor lives under `user_id`."""
    claims = decode_access_token(credentials.credentials)
    if not claims.get("user_id"):
        raise _unauthorized("Invalid authentication credentials")
    return claims

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from errors import Forbidden, Unauthorized

JWT_ALGO = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_token(payload: dict, secret: str, expires_delta: timedelta) -> str:
    exp = datetime.now(timezone.utc) + expires_delta
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, secret, algorithm=JWT_ALGO)


def decode_token(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


# ----------------------- Dependencies -----------------------
def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    if credentials is None:
        raise Unauthorized("Unauthorized")
    return request.app.state.identity.get_current_user(credentials.credentials)


def require_admin(user=Depends(get_current_user)):
    if not user.get("isAdmin"):
        raise Forbidden("Forbidden - Admin access required")
    return user

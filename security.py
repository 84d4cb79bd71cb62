import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

import config
from database import get_db, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

TOKEN_COOKIE = "token"
LOGGED_OUT = "loggedout"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def set_token_cookie(response: Response, token: str, max_age: Optional[int] = None):
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=max_age if max_age is not None else config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=False,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def public_user(user: dict) -> dict:
    """Serialized user without the password hash."""
    out = serialize_doc(user)
    out.pop("password_hash", None)
    return out


def _extract_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    # header first, then cookie, then ?token= for local tooling; the first one found wins
    for candidate in (bearer, request.cookies.get(TOKEN_COOKIE), request.query_params.get("token")):
        if candidate:
            return None if candidate == LOGGED_OUT else candidate
    return None


def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)) -> dict:
    token = _extract_token(request, token)
    if not token:
        raise HTTPException(status_code=401, detail="You are not logged in! Please log in to get access.")
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid token. Please log in again.")
    except JWTError as exc:
        logger.info("Token verification failed: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid token. Please log in again.")
    user = db["user"].find_one({"_id": to_object_id(user_id)})
    if not user:
        raise HTTPException(status_code=401, detail="The user belonging to this token no longer exists.")
    user["id"] = str(user["_id"])
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="You do not have permission to perform this action")
    return user

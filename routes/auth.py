import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, EmailStr, Field

from database import create_document, get_db
from routes import success
from schemas import Profile, User as UserSchema
from security import (
    LOGGED_OUT,
    create_access_token,
    get_current_user,
    get_password_hash,
    public_user,
    set_token_cookie,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignupBody(BaseModel):
    username: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    email: Optional[EmailStr] = None
    profile: Optional[Profile] = None


class LoginBody(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


def _send_token(user: dict, response: Response) -> dict:
    token = create_access_token({"sub": str(user["_id"])})
    set_token_cookie(response, token)
    body = success(user=public_user(user))
    body["token"] = token
    return body


@router.post("/signup", status_code=201)
def signup(body: SignupBody, response: Response, db=Depends(get_db)):
    logger.info("Signup attempt for %s", body.username)
    if db["user"].find_one({"username": body.username}):
        raise HTTPException(status_code=400, detail="Username already exists")
    user = UserSchema(
        username=body.username,
        email=body.email,
        password_hash=get_password_hash(body.password),
        profile=body.profile or Profile(),
    )
    user_id = create_document(db, "user", user)
    doc = db["user"].find_one({"username": body.username})
    logger.info("User created: %s (%s)", body.username, user_id)
    return _send_token(doc, response)


@router.post("/login")
def login(body: LoginBody, response: Response, db=Depends(get_db)):
    logger.info("Login attempt for %s", body.username)
    user = db["user"].find_one({"username": body.username})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        logger.warning("Failed login for %s", body.username)
        raise HTTPException(status_code=401, detail="Incorrect username or password")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="This account has been deactivated")
    return _send_token(user, response)


@router.post("/logout")
def logout(response: Response):
    set_token_cookie(response, LOGGED_OUT, max_age=10)
    return {"status": "success", "message": "Logged out successfully"}


@router.get("/me")
def me(current: dict = Depends(get_current_user)):
    return success(user=public_user(current))

from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, EmailStr, Field

from database import get_db, now_utc
from routes import success
from schemas import Address
from security import (
    create_access_token,
    get_current_user,
    get_password_hash,
    public_user,
    set_token_cookie,
    verify_password,
)

router = APIRouter(prefix="/api/users", tags=["users"])


class ProfileUpdateBody(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    email: Optional[EmailStr] = None


class AddressBody(BaseModel):
    full_name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: bool = False


class AddressUpdateBody(BaseModel):
    full_name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None


class ChangePasswordBody(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


def _save_addresses(db, user: dict, addresses: list):
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"addresses": addresses, "updated_at": now_utc()}})


@router.get("/profile")
def get_profile(current: dict = Depends(get_current_user)):
    return success(user=public_user(current))


@router.patch("/profile")
def update_profile(body: ProfileUpdateBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    update = {
        "profile": body.model_dump(include={"first_name", "last_name", "phone", "date_of_birth"}),
        "updated_at": now_utc(),
    }
    if body.email is not None:
        update["email"] = body.email
    db["user"].update_one({"_id": current["_id"]}, {"$set": update})
    user = db["user"].find_one({"_id": current["_id"]})
    return success(user=public_user(user))


@router.get("/addresses")
def get_addresses(current: dict = Depends(get_current_user)):
    return success(addresses=current.get("addresses", []))


@router.post("/addresses", status_code=201)
def add_address(body: AddressBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    addresses = current.get("addresses", [])
    data = body.model_dump()
    data["country"] = data["country"] or "India"
    address = Address(id=str(ObjectId()), **data).model_dump()
    if address["is_default"]:
        for existing in addresses:
            existing["is_default"] = False
    addresses.append(address)
    _save_addresses(db, current, addresses)
    return success(addresses=addresses)


@router.patch("/addresses/{address_id}")
def update_address(address_id: str, body: AddressUpdateBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    addresses = current.get("addresses", [])
    address = next((a for a in addresses if a.get("id") == address_id), None)
    if address is None:
        raise HTTPException(status_code=404, detail="Address not found")
    update = body.model_dump(exclude_none=True)
    if update.get("is_default"):
        for existing in addresses:
            existing["is_default"] = False
    address.update(update)
    _save_addresses(db, current, addresses)
    return success(addresses=addresses)


@router.delete("/addresses/{address_id}", status_code=204)
def delete_address(address_id: str, current: dict = Depends(get_current_user), db=Depends(get_db)):
    addresses = [a for a in current.get("addresses", []) if a.get("id") != address_id]
    _save_addresses(db, current, addresses)
    return Response(status_code=204)


@router.patch("/change-password")
def change_password(body: ChangePasswordBody, response: Response, current: dict = Depends(get_current_user), db=Depends(get_db)):
    if not verify_password(body.current_password, current.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Your current password is wrong")
    db["user"].update_one(
        {"_id": current["_id"]},
        {"$set": {"password_hash": get_password_hash(body.new_password), "updated_at": now_utc()}},
    )
    token = create_access_token({"sub": current["id"]})
    set_token_cookie(response, token)
    body_out = success(user=public_user(current))
    body_out["token"] = token
    return body_out

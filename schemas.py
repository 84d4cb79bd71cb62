"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.
References to other documents are stored as string ids (user_id, product_id, ...).
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

OrderStatus = Literal[
    "pending",
    "confirmed",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
    "return_requested",
    "returned",
    "refunded",
    "payment_failed",
]
PaymentMethod = Literal["card", "upi", "netbanking", "cod"]


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # stored dates come back naive UTC, keep comparisons consistent
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Profile(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None


class Address(BaseModel):
    id: str
    full_name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "India"
    phone: Optional[str] = None
    is_default: bool = False


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    username: str = Field(..., min_length=3)
    email: Optional[EmailStr] = None
    password_hash: str = Field(..., description="Hashed password")
    role: Literal["user", "admin"] = "user"
    profile: Profile = Field(default_factory=Profile)
    addresses: List[Address] = Field(default_factory=list)
    is_active: bool = True


class Admin(BaseModel):
    """
    Back-office staff accounts
    Collection name: "admin"
    """
    username: str = Field(..., min_length=3)
    email: EmailStr
    password_hash: str
    role: Literal["admin", "super_admin", "moderator"] = "admin"
    profile: Profile = Field(default_factory=Profile)
    permissions: List[str] = Field(default_factory=list)
    is_active: bool = True


class Category(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: bool = True


class Brand(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    logo: Optional[str] = None
    is_active: bool = True


class ProductImage(BaseModel):
    url: str
    alt_text: Optional[str] = None
    is_primary: bool = False


class Variant(BaseModel):
    size: Optional[str] = None
    color: Optional[str] = None
    sku: str
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)


class Rating(BaseModel):
    average: float = 0.0
    count: int = 0


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    base_price: float = Field(..., gt=0)
    category: str = Field(..., min_length=1, description="Category id or name")
    brand: str = Field(..., min_length=1)
    images: List[ProductImage] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    rating: Rating = Field(default_factory=Rating)
    is_active: bool = True
    is_featured: bool = False


class VariantRef(BaseModel):
    size: Optional[str] = None
    color: Optional[str] = None
    sku: str


class Inventory(BaseModel):
    """
    Stock per product variant
    Collection name: "inventory"
    """
    product_id: str
    variant: VariantRef
    quantity: int = 0
    low_stock_threshold: int = 10
    is_low_stock: bool = False
    last_restocked: Optional[datetime] = None


class CartItem(BaseModel):
    id: str
    product_id: str
    variant: VariantRef
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0)


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    total_items: int = 0
    total_price: float = 0.0


class OrderItem(BaseModel):
    product_id: str
    variant: VariantRef
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    total: float = 0.0


class ShippingAddress(BaseModel):
    full_name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class Payment(BaseModel):
    method: PaymentMethod
    payment_intent_id: Optional[str] = None
    status: Literal["pending", "completed", "failed", "refunded"] = "pending"
    amount: float
    transaction_id: Optional[str] = None


class StatusEntry(BaseModel):
    status: str
    timestamp: datetime
    note: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    order_number: str
    user_id: str
    items: List[OrderItem]
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    total_amount: float = Field(..., ge=0)
    subtotal: float = 0.0
    shipping: float = 0.0
    tax: float = 0.0
    discount: float = 0.0
    payment: Optional[Payment] = None
    status: OrderStatus = "pending"
    status_history: List[StatusEntry] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    tracking_number: Optional[str] = None
    shipping_provider: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    return_reason: Optional[str] = None
    refund_amount: Optional[float] = None
    notes: Optional[str] = None


class AdminResponse(BaseModel):
    comment: str
    responded_at: datetime
    responded_by: str


class Review(BaseModel):
    """
    Reviews collection schema
    Collection name: "review"
    One review per (user_id, product_id, order_id), enforced by a unique index.
    """
    user_id: str
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = Field(None, max_length=1000)
    images: List[ProductImage] = Field(default_factory=list)
    helpful: List[str] = Field(default_factory=list)
    helpful_count: int = 0
    is_verified: bool = False
    is_approved: bool = False
    admin_response: Optional[AdminResponse] = None


class Coupon(BaseModel):
    """
    Coupons collection schema
    Collection name: "coupon"
    """
    code: str = Field(..., min_length=1)
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: float = Field(..., gt=0)
    minimum_amount: float = Field(0, ge=0)
    maximum_discount: Optional[float] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    used_count: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_dates(cls, value):
        return naive_utc(value)

"""
Database Schemas for HJ Fashion

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercased class name (e.g. PasswordResetToken -> "passwordresettoken").
References to other documents are stored as ObjectId strings.
"""
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import datetime, timezone

Role = Literal["CUSTOMER", "ADMIN"]
OrderStatus = Literal["PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"]
PaymentStatus = Literal["PENDING", "PAID", "FAILED", "REFUNDED"]
EventScope = Literal["ALL", "CATEGORY", "PRICE_RANGE"]

ORDER_STATUSES = ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED")
ADMIN_ROLE = "ADMIN"
CUSTOMER_ROLE = "CUSTOMER"


class User(BaseModel):
    email: EmailStr = Field(..., description="Stored lowercased; unique")
    password_hash: str = Field(..., description="bcrypt hash")
    role: Role = CUSTOMER_ROLE
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    email_verified: bool = False
    email_verified_at: Optional[datetime] = None
    is_blocked: bool = False


class EmailVerificationToken(BaseModel):
    token: str = Field(..., description="64 hex characters")
    user_id: str
    expires_at: datetime
    used: bool = False


class PasswordResetToken(BaseModel):
    token: str = Field(..., description="64 hex characters")
    user_id: str
    expires_at: datetime
    used: bool = False


class Category(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    parent_id: Optional[str] = Field(None, description="Parent category id; one level of nesting")
    is_occasion: bool = False
    display_order: int = 0


class Product(BaseModel):
    name: str
    slug: str
    description: str = ""
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0, description="Pre-discount price")
    images: List[str] = Field(default_factory=list)
    category_id: str
    is_featured: bool = False
    rating: float = Field(0, ge=0, le=5)
    sizes: List[str] = Field(default_factory=list)
    fabric: Optional[str] = None
    color: Optional[str] = None
    care_instructions: Optional[str] = None


class Event(BaseModel):
    name: str
    description: Optional[str] = None
    discount_percent: float = Field(..., gt=0, le=100)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    is_featured: bool = False
    applies_to: EventScope = "ALL"
    category_id: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_utc(cls, value: datetime) -> datetime:
        # stored as naive UTC, like every other timestamp
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    size: str = "M"
    price: float = Field(..., ge=0, description="Unit price at time of purchase")


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    status: OrderStatus = "PENDING"
    payment_status: PaymentStatus = "PENDING"

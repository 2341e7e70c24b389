import os
import re
import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import queries
import tokens
from auth import (
    SessionCodec,
    SessionPayload,
    clear_session_cookie,
    current_identity,
    get_codec,
    is_admin,
    require_admin,
    require_identity,
    set_session_cookie,
)
from catalog import ProductFilter
from config import Settings, get_settings
from database import db, ensure_indexes
from mailer import Mailer, get_mailer
from schemas import ADMIN_ROLE, CUSTOMER_ROLE, ORDER_STATUSES, Category, Event, Order, Product
from security import check_password, hash_password, is_valid_email, normalize_email, validate_password

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("hj_fashion")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Refuse to start in production with a missing or known-bad JWT secret.
    get_codec()
    if db is not None:
        try:
            ensure_indexes(db)
            tokens.purge_expired_tokens(db)
        except PyMongoError as exc:
            logger.warning("Could not prepare the database: %s", exc)
    yield


app = FastAPI(title="HJ Fashion API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors are always shaped {"error": ...}

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return JSONResponse({"error": f"{field}: {message}" if field else message}, status_code=400)


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_error(request: Request, exc: DuplicateKeyError):
    return JSONResponse({"error": "A record with the same unique value already exists"}, status_code=409)


@app.exception_handler(PyMongoError)
async def database_error(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": "Database unavailable"}, status_code=503)


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# Utilities
phone_regex = re.compile(r"^\+?\d{10,14}$")
phone_separators = re.compile(r"[\s\-().]")


def validate_phone(phone: str) -> str:
    """Return the number with spaces, dashes, dots and brackets removed."""
    phone = phone_separators.sub("", phone)
    if not phone_regex.match(phone):
        raise HTTPException(status_code=400, detail="Invalid phone number format")
    return phone


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "password_hash"}


TOKEN_MESSAGES = {
    tokens.EMAIL_VERIFICATION: {
        tokens.INVALID: "Invalid verification link",
        tokens.EXPIRED: "This verification link has expired. Please request a new one.",
        tokens.USED: "This verification link has already been used",
    },
    tokens.PASSWORD_RESET: {
        tokens.INVALID: "Invalid or expired reset link",
        tokens.EXPIRED: "This reset link has expired. Please request a new one.",
        tokens.USED: "This reset link has already been used",
    },
}

LINK_STATUS_MESSAGES = {
    tokens.EMAIL_VERIFICATION: {
        tokens.INVALID: "Invalid verification link",
        tokens.EXPIRED: "This verification link has expired",
        tokens.USED: "This verification link has already been used",
    },
    tokens.PASSWORD_RESET: {
        tokens.INVALID: "Invalid reset link",
        tokens.EXPIRED: "This reset link has expired",
        tokens.USED: "This reset link has already been used",
    },
}

RESEND_VERIFICATION_MESSAGE = "If an account with that email exists and is not yet verified, we have sent a verification email."
FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, we have sent a password reset link."


def token_link_status(database: Database, kind: str, token: Optional[str]) -> JSONResponse:
    """Shared GET handler: is this link still usable, and for which address?"""
    if not token:
        return JSONResponse({"valid": False, "error": "Token is required"}, status_code=400)
    try:
        _, user = tokens.inspect_token(database, kind, token)
    except tokens.TokenError as exc:
        return JSONResponse({"valid": False, "error": LINK_STATUS_MESSAGES[kind][exc.reason]}, status_code=400)
    return JSONResponse({"valid": True, "email": user["email"]})


# Request models
class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None
    remember_me: bool = Field(False, alias="rememberMe")


class TokenRequest(BaseModel):
    token: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    # admin only
    role: Optional[str] = None
    is_blocked: Optional[bool] = None
    email_verified: Optional[bool] = None


class OrderItemIn(BaseModel):
    product_id: Optional[str] = Field(None, validation_alias=AliasChoices("product_id", "productId", "id"))
    product_slug: Optional[str] = Field(None, validation_alias=AliasChoices("product_slug", "productSlug", "slug"))
    quantity: int = 1
    size: Optional[str] = None
    name: Optional[str] = None


class OrderIn(BaseModel):
    items: List[OrderItemIn] = Field(default_factory=list)
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdate(BaseModel):
    status: Optional[str] = None


class UserAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    action: Optional[str] = None
    value: Any = None


class ProductUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(None, alias="productId")
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    category_id: Optional[str] = None
    is_featured: Optional[bool] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    sizes: Optional[List[str]] = None
    fabric: Optional[str] = None
    color: Optional[str] = None
    care_instructions: Optional[str] = None


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_id: Optional[str] = Field(None, alias="categoryId")
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    parent_id: Optional[str] = None
    is_occasion: Optional[bool] = None
    display_order: Optional[int] = None


class EventUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: Optional[str] = Field(None, alias="eventId")
    name: Optional[str] = None
    description: Optional[str] = None
    discount_percent: Optional[float] = Field(None, gt=0, le=100)
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    applies_to: Optional[str] = None
    category_id: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)


def changes(payload: BaseModel, *skip: str) -> dict:
    return payload.model_dump(exclude_unset=True, exclude=set(skip))


# Service

@app.get("/")
def root():
    return {"service": "HJ Fashion API", "status": "ok"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if get_settings().database_url else "❌ Not Set",
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected"
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()
    except Exception as e:
        response["database"] = f"⚠️ {str(e)[:80]}"
    return response


# Auth

@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, response: Response, database: Database = Depends(get_db),
             codec: SessionCodec = Depends(get_codec), mailer: Mailer = Depends(get_mailer),
             settings: Settings = Depends(get_settings)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    email = normalize_email(payload.email)
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Please provide a valid email address")
    valid, errors = validate_password(payload.password)
    if not valid:
        raise HTTPException(status_code=400, detail=". ".join(errors))
    if queries.find_user_by_email(database, email):
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    try:
        user = queries.create_user(database, email, hash_password(payload.password),
                                   first_name=payload.first_name, last_name=payload.last_name)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Please provide a valid email address")
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    verification_token = tokens.issue_token(database, tokens.EMAIL_VERIFICATION, user["id"])
    verification_sent = mailer.send_verification_email(email, verification_token, payload.first_name)
    mailer.send_welcome_email(email, payload.first_name)

    token = codec.issue(user["id"], user["email"], user["role"])
    set_session_cookie(response, token, False, settings)
    return {
        "message": "Registration successful! Please check your email to verify your account."
        if verification_sent
        else "Registration successful, but we could not send the verification email. "
             "Please try resending verification from the Verify Email page.",
        "user": user,
        "email_verification_sent": verification_sent,
    }


@app.post("/api/auth/login")
def login(payload: LoginRequest, response: Response, database: Database = Depends(get_db),
          codec: SessionCodec = Depends(get_codec), settings: Settings = Depends(get_settings)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    email = normalize_email(payload.email)
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Please provide a valid email address")

    user = queries.find_user_by_email(database, email)
    if not user or not check_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if user.get("is_blocked"):
        raise HTTPException(status_code=403, detail="Your account has been suspended")

    token = codec.issue(user["id"], user["email"], user["role"], remember_me=payload.remember_me)
    set_session_cookie(response, token, payload.remember_me, settings)
    return {"message": "Login successful", "user": public_user(user)}


@app.get("/api/auth/session")
def get_session(response: Response, identity: Optional[SessionPayload] = Depends(current_identity),
                database: Database = Depends(get_db)):
    if identity is None:
        return {"authenticated": False, "user": None}
    user = queries.user_by_id(database, identity.user_id)
    if user is None:
        clear_session_cookie(response)
        return {"authenticated": False, "user": None}
    if user.get("is_blocked"):
        clear_session_cookie(response)
        return {"authenticated": False, "user": None, "error": "Account suspended"}
    return {"authenticated": True, "user": user}


@app.delete("/api/auth/session")
def logout(response: Response):
    clear_session_cookie(response)
    return {"message": "Logged out successfully"}


@app.post("/api/auth/verify-email")
def verify_email(payload: TokenRequest, database: Database = Depends(get_db)):
    token = (payload.token or "").strip()
    if not token:
        raise HTTPException(status_code=400, detail="Verification token is required")
    messages = TOKEN_MESSAGES[tokens.EMAIL_VERIFICATION]
    try:
        _, user = tokens.inspect_token(database, tokens.EMAIL_VERIFICATION, token)
        if user.get("email_verified"):
            return {"message": "Your email is already verified.", "already_verified": True}
        tokens.claim_token(database, tokens.EMAIL_VERIFICATION, token)
    except tokens.TokenError as exc:
        raise HTTPException(status_code=400, detail=messages[exc.reason])
    if not queries.mark_email_verified(database, str(user["_id"])):
        raise HTTPException(status_code=400, detail=messages[tokens.INVALID])
    return {"message": "Email verified successfully! You can now access all features."}


@app.put("/api/auth/verify-email")
def resend_verification(payload: EmailRequest, database: Database = Depends(get_db),
                        mailer: Mailer = Depends(get_mailer)):
    email = normalize_email(payload.email)
    if not email or not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Please provide a valid email address")
    user = queries.find_user_by_email(database, email)
    # Same answer whether or not the account exists or is already verified.
    if user and not user.get("email_verified"):
        token = tokens.issue_token(database, tokens.EMAIL_VERIFICATION, user["id"])
        if not mailer.send_verification_email(email, token, user.get("first_name")):
            logger.error("Verification email could not be resent to %s", email)
    return {"message": RESEND_VERIFICATION_MESSAGE}


@app.get("/api/auth/verify-email")
def check_verification_link(token: Optional[str] = None, database: Database = Depends(get_db)):
    return token_link_status(database, tokens.EMAIL_VERIFICATION, token)


@app.post("/api/auth/forgot-password")
def forgot_password(payload: EmailRequest, database: Database = Depends(get_db),
                    mailer: Mailer = Depends(get_mailer)):
    email = normalize_email(payload.email)
    if not email or not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Please provide a valid email address")
    user = queries.find_user_by_email(database, email)
    if user:
        token = tokens.issue_token(database, tokens.PASSWORD_RESET, user["id"])
        mailer.send_password_reset_email(email, token, user.get("first_name"))
    return {"message": FORGOT_PASSWORD_MESSAGE}


@app.post("/api/auth/reset-password")
def reset_password(payload: ResetPasswordRequest, database: Database = Depends(get_db),
                   mailer: Mailer = Depends(get_mailer)):
    token = (payload.token or "").strip()
    if not token:
        raise HTTPException(status_code=400, detail="Reset token is required")
    if not payload.password:
        raise HTTPException(status_code=400, detail="New password is required")
    valid, errors = validate_password(payload.password)
    if not valid:
        raise HTTPException(status_code=400, detail=". ".join(errors))
    try:
        record, user = tokens.redeem_token(database, tokens.PASSWORD_RESET, token)
    except tokens.TokenError as exc:
        raise HTTPException(status_code=400, detail=TOKEN_MESSAGES[tokens.PASSWORD_RESET][exc.reason])
    queries.update_user_password(database, record["user_id"], hash_password(payload.password))
    mailer.send_password_changed_email(user["email"], user.get("first_name"))
    return {"message": "Your password has been reset successfully. You can now log in with your new password."}


@app.get("/api/auth/reset-password")
def check_reset_link(token: Optional[str] = None, database: Database = Depends(get_db)):
    return token_link_status(database, tokens.PASSWORD_RESET, token)


@app.get("/api/auth/email-status")
def email_status(admin: SessionPayload = Depends(require_admin), mailer: Mailer = Depends(get_mailer)):
    return mailer.check_configuration()


# Catalog

@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    search: Optional[str] = None,
    sort: Optional[str] = None,
    database: Database = Depends(get_db),
):
    options = ProductFilter(category_slug=category, min_price=min_price, max_price=max_price,
                            search_query=search, sort=sort)
    return queries.find_products(database, options)


@app.get("/api/products/featured")
def featured_products(database: Database = Depends(get_db)):
    return queries.featured_products(database)


@app.get("/api/products/new-arrivals")
def new_arrivals(limit: int = Query(8, ge=1, le=50), database: Database = Depends(get_db)):
    return queries.new_arrivals(database, limit)


@app.get("/api/products/{slug}")
def get_product(slug: str, database: Database = Depends(get_db)):
    product = queries.product_by_slug(database, slug)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return queries.product_with_discount(database, product)


@app.get("/api/categories")
def list_categories(show_all: bool = Query(False, alias="all"), occasion: bool = False,
                    database: Database = Depends(get_db)):
    if occasion:
        return queries.occasion_categories(database)
    if show_all:
        return queries.all_categories(database)
    return queries.top_level_categories(database)


@app.get("/api/categories/{slug}")
def get_category(slug: str, database: Database = Depends(get_db)):
    category = queries.category_by_slug(database, slug)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"category": category, "products": queries.products_by_category(database, slug)}


@app.get("/api/events/active")
def active_events(database: Database = Depends(get_db)):
    return queries.running_events(database)


@app.get("/api/events/featured")
def featured_event(database: Database = Depends(get_db)):
    return queries.featured_event(database)


# Account

def owner_or_admin(identity: SessionPayload, user_id: str) -> None:
    if not is_admin(identity) and identity.user_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")


@app.get("/api/users/{user_id}")
def get_user(user_id: str, identity: SessionPayload = Depends(require_identity),
             database: Database = Depends(get_db)):
    owner_or_admin(identity, user_id)
    user = queries.user_by_id(database, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.patch("/api/users/{user_id}")
def update_user(user_id: str, payload: ProfileUpdate, identity: SessionPayload = Depends(require_identity),
                database: Database = Depends(get_db)):
    owner_or_admin(identity, user_id)
    updates = changes(payload)
    if not is_admin(identity):
        # customers may only touch their own profile fields
        updates = {k: v for k, v in updates.items() if k in queries.PROFILE_FIELDS}
    elif user_id == identity.user_id and ("role" in updates or "is_blocked" in updates):
        raise HTTPException(status_code=400, detail="Cannot modify your own account")
    if updates.get("phone"):
        updates["phone"] = validate_phone(updates["phone"])
    if "role" in updates and updates["role"] not in (CUSTOMER_ROLE, ADMIN_ROLE):
        raise HTTPException(status_code=400, detail="Invalid role")
    user = queries.update_user(database, user_id, updates)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# Orders

@app.post("/api/orders", status_code=201)
def place_order(payload: OrderIn, identity: SessionPayload = Depends(require_identity),
                database: Database = Depends(get_db)):
    if not payload.items:
        raise HTTPException(status_code=400, detail="Missing required fields")
    user = queries.user_by_id(database, identity.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.get("is_blocked"):
        raise HTTPException(status_code=403, detail="Your account has been blocked. You cannot place orders.")

    items, missing = queries.resolve_order_items(database, [i.model_dump() for i in payload.items])
    if missing:
        return JSONResponse(
            {
                "error": "Some items in your cart are no longer available. Please remove them from the cart and add them again.",
                "missing": missing,
            },
            status_code=400,
        )
    order = Order(
        user_id=identity.user_id,
        items=items,
        total=queries.order_total(items),
        **changes(payload, "items"),
    )
    return queries.create_order(database, order)


@app.get("/api/orders")
def my_orders(identity: SessionPayload = Depends(require_identity), database: Database = Depends(get_db)):
    return queries.orders_for_user(database, identity.user_id)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, identity: SessionPayload = Depends(require_identity),
              database: Database = Depends(get_db)):
    order = queries.order_by_id(database, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    owner_or_admin(identity, order["user_id"])
    return order


# Admin

@app.get("/api/admin")
def admin_overview(view: Optional[str] = Query(None, alias="type"), admin: SessionPayload = Depends(require_admin),
                   database: Database = Depends(get_db)):
    if view == "orders":
        return queries.all_orders(database)
    return queries.dashboard_stats(database)


@app.get("/api/admin/orders")
def admin_orders(admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    return queries.all_orders(database)


@app.get("/api/admin/orders/{order_id}")
def admin_order(order_id: str, admin: SessionPayload = Depends(require_admin),
                database: Database = Depends(get_db)):
    order = queries.order_by_id(database, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.patch("/api/admin/orders/{order_id}")
def update_order_status(order_id: str, payload: StatusUpdate, admin: SessionPayload = Depends(require_admin),
                        database: Database = Depends(get_db)):
    if payload.status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Allowed: {', '.join(ORDER_STATUSES)}")
    order = queries.update_order_status(database, order_id, payload.status)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.get("/api/admin/users")
def admin_users(admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    return queries.list_users(database)


@app.patch("/api/admin/users")
def admin_update_user(payload: UserAction, admin: SessionPayload = Depends(require_admin),
                      database: Database = Depends(get_db)):
    if not payload.user_id or not payload.action:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if payload.user_id == admin.user_id:
        raise HTTPException(status_code=400, detail="Cannot modify your own account")
    if payload.action == "role":
        if payload.value not in (CUSTOMER_ROLE, ADMIN_ROLE):
            raise HTTPException(status_code=400, detail="Invalid role")
        user = queries.set_user_role(database, payload.user_id, payload.value)
    elif payload.action == "block":
        if not isinstance(payload.value, bool):
            raise HTTPException(status_code=400, detail="Block value must be true or false")
        user = queries.set_user_blocked(database, payload.user_id, payload.value)
    else:
        raise HTTPException(status_code=400, detail="Invalid action")
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.delete("/api/admin/users")
def admin_delete_user(user_id: Optional[str] = Query(None, alias="userId"),
                      admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID required")
    if user_id == admin.user_id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    if not queries.delete_user(database, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True}


@app.get("/api/admin/users/{user_id}")
def admin_user(user_id: str, admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    user = queries.user_with_orders(database, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.get("/api/admin/products")
def admin_products(view: Optional[str] = Query(None, alias="type"), admin: SessionPayload = Depends(require_admin),
                   database: Database = Depends(get_db)):
    if view == "categories":
        return queries.all_categories(database)
    return queries.list_products(database)


@app.post("/api/admin/products", status_code=201)
def admin_create_product(payload: Product, admin: SessionPayload = Depends(require_admin),
                         database: Database = Depends(get_db)):
    try:
        return queries.create_product(database, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.patch("/api/admin/products")
def admin_update_product(payload: ProductUpdate, admin: SessionPayload = Depends(require_admin),
                         database: Database = Depends(get_db)):
    if not payload.product_id:
        raise HTTPException(status_code=400, detail="Product ID required")
    product = queries.update_product(database, payload.product_id, changes(payload, "product_id"))
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.delete("/api/admin/products")
def admin_delete_product(product_id: Optional[str] = Query(None, alias="productId"),
                         admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    if not product_id:
        raise HTTPException(status_code=400, detail="Product ID required")
    if not queries.delete_product(database, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True}


@app.post("/api/admin/categories", status_code=201)
def admin_create_category(payload: Category, admin: SessionPayload = Depends(require_admin),
                          database: Database = Depends(get_db)):
    try:
        return queries.create_category(database, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.patch("/api/admin/categories")
def admin_update_category(payload: CategoryUpdate, admin: SessionPayload = Depends(require_admin),
                          database: Database = Depends(get_db)):
    if not payload.category_id:
        raise HTTPException(status_code=400, detail="Category ID required")
    try:
        category = queries.update_category(database, payload.category_id, changes(payload, "category_id"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@app.delete("/api/admin/categories")
def admin_delete_category(category_id: Optional[str] = Query(None, alias="categoryId"),
                          admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    if not category_id:
        raise HTTPException(status_code=400, detail="Category ID required")
    try:
        deleted = queries.delete_category(database, category_id)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if not deleted:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"success": True}


@app.get("/api/admin/events")
def admin_events(admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    return queries.all_events(database)


@app.post("/api/admin/events", status_code=201)
def admin_create_event(payload: Event, admin: SessionPayload = Depends(require_admin),
                       database: Database = Depends(get_db)):
    return queries.create_event(database, payload)


@app.patch("/api/admin/events")
def admin_update_event(payload: EventUpdate, admin: SessionPayload = Depends(require_admin),
                       database: Database = Depends(get_db)):
    if not payload.event_id:
        raise HTTPException(status_code=400, detail="Event ID required")
    current = queries.event_by_id(database, payload.event_id)
    if not current:
        raise HTTPException(status_code=404, detail="Event not found")
    # Re-validate the merged document so dates and scope stay consistent.
    merged = {k: v for k, v in current.items() if k in Event.model_fields}
    merged.update(changes(payload, "event_id"))
    try:
        event = Event.model_validate(merged)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()[0]["msg"])
    updates = event.model_dump(include=set(changes(payload, "event_id")))
    try:
        return queries.update_event(database, payload.event_id, updates)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.delete("/api/admin/events")
def admin_delete_event(event_id: Optional[str] = Query(None, alias="eventId"),
                       admin: SessionPayload = Depends(require_admin), database: Database = Depends(get_db)):
    if not event_id:
        raise HTTPException(status_code=400, detail="Event ID required")
    if not queries.delete_event(database, event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return {"success": True}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

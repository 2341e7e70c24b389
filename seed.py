"""
Seed the catalog and an admin account.

    python seed.py

Categories and products are upserted by slug and the admin by email, so the
script can be re-run safely. ADMIN_EMAIL / ADMIN_PASSWORD set the admin login.
"""
import logging
import os
import sys
from typing import Dict, List

from pymongo.database import Database

from database import create_document, db, ensure_indexes, utcnow
from schemas import ADMIN_ROLE, Category, Product, User
from security import hash_password, normalize_email, validate_password
from tokens import purge_expired_tokens

logger = logging.getLogger("seed")

MAIN_CATEGORIES = [
    {"name": "Sarees", "slug": "sarees", "description": "Traditional and modern sarees for all occasions.", "display_order": 1},
    {"name": "Pakistani Suits", "slug": "pakistani-shalwar-kameez", "description": "Authentic Pakistani suits collection.", "display_order": 2},
    {"name": "Lawn Suits", "slug": "lawn-suits", "description": "Premium quality lawn suits for summer comfort and style.", "display_order": 3},
    {"name": "Bags", "slug": "bags", "description": "Stylish bags and clutches for every occasion.", "display_order": 4},
    {"name": "Shoes", "slug": "shoes", "description": "Traditional and modern footwear collection.", "display_order": 5},
    {"name": "Accessories", "slug": "accessories", "description": "Complete your look with our accessories.", "display_order": 6},
]

# parent slug -> children
SUB_CATEGORIES = {
    "pakistani-shalwar-kameez": [
        {"name": "Shalwar Kameez", "slug": "shalwar-kameez", "display_order": 1},
        {"name": "Anarkali Suits", "slug": "anarkali-suits", "display_order": 2},
        {"name": "Sharara & Gharara", "slug": "sharara-gharara", "display_order": 3},
    ],
}

OCCASIONS = [
    {"name": "Weddings", "slug": "weddings", "description": "Bridal and wedding guest outfits.", "display_order": 1},
    {"name": "Parties", "slug": "parties", "description": "Festive looks for every celebration.", "display_order": 2},
    {"name": "Casual", "slug": "casual", "description": "Everyday comfort.", "display_order": 3},
]

PRODUCTS = [
    {
        "name": "Embroidered Lawn Suit - Rose Garden", "slug": "embroidered-lawn-suit-rose-garden",
        "description": "Three-piece embroidered lawn suit with chiffon dupatta.", "price": 89.0, "original_price": 120.0,
        "category_slug": "lawn-suits", "is_featured": True, "rating": 4.8, "sizes": ["S", "M", "L", "XL"],
        "fabric": "Lawn", "color": "Pink",
    },
    {
        "name": "Digital Print Lawn - Ocean Waves", "slug": "digital-print-lawn-ocean-waves",
        "description": "Breathable digital print lawn for summer days.", "price": 65.0,
        "category_slug": "lawn-suits", "rating": 4.5, "sizes": ["S", "M", "L"], "fabric": "Lawn", "color": "Blue",
    },
    {
        "name": "Royal Anarkali - Midnight Blue", "slug": "royal-anarkali-midnight-blue",
        "description": "Floor-length anarkali with zari work.", "price": 210.0, "original_price": 260.0,
        "category_slug": "anarkali-suits", "is_featured": True, "rating": 4.9, "sizes": ["S", "M", "L"],
        "fabric": "Chiffon", "color": "Navy",
    },
    {
        "name": "Banarasi Silk Saree - Crimson", "slug": "banarasi-silk-saree-crimson",
        "description": "Handwoven Banarasi silk saree with golden border.", "price": 180.0,
        "category_slug": "sarees", "rating": 4.7, "sizes": ["Free Size"], "fabric": "Silk", "color": "Red",
    },
]


def upsert_category(database: Database, data: Dict, parent_id: str = None, is_occasion: bool = False) -> str:
    category = Category(parent_id=parent_id, is_occasion=is_occasion, **data).model_dump()
    existing = database["category"].find_one({"slug": category["slug"]})
    if existing:
        database["category"].update_one({"_id": existing["_id"]}, {"$set": {**category, "updated_at": utcnow()}})
        return str(existing["_id"])
    return create_document(database, "category", category)


def seed_categories(database: Database) -> Dict[str, str]:
    ids = {}
    for data in MAIN_CATEGORIES:
        ids[data["slug"]] = upsert_category(database, data)
    for parent_slug, children in SUB_CATEGORIES.items():
        for data in children:
            ids[data["slug"]] = upsert_category(database, data, parent_id=ids[parent_slug])
    for data in OCCASIONS:
        ids[data["slug"]] = upsert_category(database, data, is_occasion=True)
    return ids


def seed_products(database: Database, category_ids: Dict[str, str]) -> List[str]:
    slugs = []
    for data in PRODUCTS:
        data = dict(data)
        category_id = category_ids[data.pop("category_slug")]
        product = Product(category_id=category_id, **data).model_dump()
        existing = database["product"].find_one({"slug": product["slug"]})
        if existing:
            database["product"].update_one({"_id": existing["_id"]}, {"$set": {**product, "updated_at": utcnow()}})
        else:
            create_document(database, "product", product)
        slugs.append(product["slug"])
    return slugs


def seed_admin(database: Database, email: str, password: str) -> None:
    valid, errors = validate_password(password)
    if not valid:
        raise ValueError(". ".join(errors))
    email = normalize_email(email)
    existing = database["user"].find_one({"email": email})
    if existing:
        database["user"].update_one({"_id": existing["_id"]}, {"$set": {"role": ADMIN_ROLE, "updated_at": utcnow()}})
        return
    admin = User(
        email=email,
        password_hash=hash_password(password),
        role=ADMIN_ROLE,
        first_name="Admin",
        email_verified=True,
        email_verified_at=utcnow(),
    )
    create_document(database, "user", admin)


def seed(database: Database, admin_email: str = None, admin_password: str = None) -> None:
    ensure_indexes(database)
    purge_expired_tokens(database)
    category_ids = seed_categories(database)
    products = seed_products(database, category_ids)
    logger.info("Seeded %d categories and %d products", len(category_ids), len(products))
    if admin_email and admin_password:
        seed_admin(database, admin_email, admin_password)
        logger.info("Admin account ready: %s", admin_email)
    else:
        logger.info("ADMIN_EMAIL / ADMIN_PASSWORD not set; skipping admin account")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if db is None:
        logger.error("DATABASE_URL is not set")
        sys.exit(1)
    seed(db, os.getenv("ADMIN_EMAIL"), os.getenv("ADMIN_PASSWORD"))

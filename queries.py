"""
Data access for the storefront collections.

Every function takes the pymongo Database handle first and returns plain
dicts with string ids (see database.to_str_id), ready to be returned from a
route. Password hashes only leave this module through find_user_by_email.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from catalog import ProductFilter, filter_products, is_running, with_discount
from database import as_naive_utc, create_document, get_documents, oid, to_str_id, utcnow
from schemas import Category, Event, Order, Product, User
from tokens import EMAIL_VERIFICATION, PASSWORD_RESET

PUBLIC_USER_PROJECTION = {"password_hash": 0}
USER_SUMMARY_PROJECTION = {"email": 1, "first_name": 1, "last_name": 1}
PROFILE_FIELDS = ("first_name", "last_name", "phone", "address", "city", "postal_code", "country")


def _update(database: Database, collection: str, doc_id: str, updates: Dict[str, Any],
            projection: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
    _id = oid(doc_id)
    if _id is None:
        return None
    updates = dict(updates)
    updates["updated_at"] = utcnow()
    doc = database[collection].find_one_and_update(
        {"_id": _id}, {"$set": updates}, projection=projection, return_document=ReturnDocument.AFTER
    )
    return to_str_id(doc)


def _delete(database: Database, collection: str, doc_id: str) -> bool:
    _id = oid(doc_id)
    if _id is None:
        return False
    return database[collection].delete_one({"_id": _id}).deleted_count > 0


def _find_by_id(database: Database, collection: str, doc_id: str,
                projection: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
    _id = oid(doc_id)
    if _id is None:
        return None
    return to_str_id(database[collection].find_one({"_id": _id}, projection))


def _naive_dates(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: as_naive_utc(v) if isinstance(v, datetime) else v for k, v in doc.items()}


# ---------
# Products
# ---------

def _with_categories(database: Database, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = {oid(p.get("category_id")) for p in products} - {None}
    categories = {c["id"]: c for c in (to_str_id(c) for c in database["category"].find({"_id": {"$in": list(ids)}}))}
    for p in products:
        p["category"] = categories.get(p.get("category_id"))
    return products


def _products(database: Database, query: Optional[Dict[str, Any]] = None, sort=None, limit: int = 0) -> List[Dict[str, Any]]:
    cursor = database["product"].find(query or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return _with_categories(database, [to_str_id(p) for p in cursor])


def list_products(database: Database) -> List[Dict[str, Any]]:
    return _products(database, sort=[("created_at", DESCENDING)])


def featured_products(database: Database) -> List[Dict[str, Any]]:
    return _products(database, {"is_featured": True})


def new_arrivals(database: Database, limit: int = 8) -> List[Dict[str, Any]]:
    return _products(database, sort=[("created_at", DESCENDING)], limit=limit)


def product_by_slug(database: Database, slug: str) -> Optional[Dict[str, Any]]:
    found = _products(database, {"slug": slug}, limit=1)
    return found[0] if found else None


def products_by_category(database: Database, category_slug: str) -> List[Dict[str, Any]]:
    category = database["category"].find_one({"slug": category_slug})
    if not category:
        return []
    return _products(database, {"category_id": str(category["_id"])})


def find_products(database: Database, options: ProductFilter) -> List[Dict[str, Any]]:
    if options.is_empty():
        return list_products(database)
    return filter_products(list_products(database), options)


def create_product(database: Database, product: Product) -> Dict[str, Any]:
    if database["category"].find_one({"_id": oid(product.category_id)}) is None:
        raise ValueError("Category not found")
    product_id = create_document(database, "product", product)
    return _with_categories(database, [_find_by_id(database, "product", product_id)])[0]


def update_product(database: Database, product_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    doc = _update(database, "product", product_id, updates)
    if doc is None:
        return None
    return _with_categories(database, [doc])[0]


def delete_product(database: Database, product_id: str) -> bool:
    return _delete(database, "product", product_id)


def product_with_discount(database: Database, product: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    return with_discount(product, running_events(database, now), now)


# -----------
# Categories
# -----------

def _ordered(cursor) -> List[Dict[str, Any]]:
    return [to_str_id(c) for c in cursor.sort([("display_order", ASCENDING)])]


def _children(database: Database, category_id: str) -> List[Dict[str, Any]]:
    return _ordered(database["category"].find({"parent_id": category_id}))


def top_level_categories(database: Database) -> List[Dict[str, Any]]:
    """Navigation tree: root categories that are not occasions, each with its children."""
    roots = _ordered(database["category"].find({"parent_id": None, "is_occasion": False}))
    for root in roots:
        root["children"] = _children(database, root["id"])
    return roots


def all_categories(database: Database) -> List[Dict[str, Any]]:
    categories = _ordered(database["category"].find())
    plain = {c["id"]: dict(c) for c in categories}
    for c in categories:
        c["children"] = [k for k in plain.values() if k.get("parent_id") == c["id"]]
        c["parent"] = plain.get(c.get("parent_id"))
    return categories


def occasion_categories(database: Database) -> List[Dict[str, Any]]:
    return get_documents(database, "category", {"is_occasion": True}, sort=[("display_order", ASCENDING)])


def category_by_slug(database: Database, slug: str) -> Optional[Dict[str, Any]]:
    category = to_str_id(database["category"].find_one({"slug": slug}))
    if category is None:
        return None
    category["children"] = _children(database, category["id"])
    category["parent"] = _find_by_id(database, "category", category["parent_id"]) if category.get("parent_id") else None
    return category


def _check_parent(database: Database, parent_id: Optional[str]) -> None:
    if parent_id and _find_by_id(database, "category", parent_id) is None:
        raise ValueError("Parent category not found")


def create_category(database: Database, category: Category) -> Dict[str, Any]:
    _check_parent(database, category.parent_id)
    return _find_by_id(database, "category", create_document(database, "category", category))


def update_category(database: Database, category_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if updates.get("parent_id") == category_id:
        raise ValueError("A category cannot be its own parent")
    _check_parent(database, updates.get("parent_id"))
    return _update(database, "category", category_id, updates)


def delete_category(database: Database, category_id: str) -> bool:
    if database["product"].count_documents({"category_id": category_id}):
        raise ValueError("Category still has products")
    if database["category"].count_documents({"parent_id": category_id}):
        raise ValueError("Category still has sub-categories")
    return _delete(database, "category", category_id)


# ------
# Users
# ------

def find_user_by_email(database: Database, email: str) -> Optional[Dict[str, Any]]:
    """Full user document, password hash included."""
    return to_str_id(database["user"].find_one({"email": email.strip().lower()}))


def user_by_id(database: Database, user_id: str) -> Optional[Dict[str, Any]]:
    return _find_by_id(database, "user", user_id, PUBLIC_USER_PROJECTION)


def create_user(database: Database, email: str, password_hash: str, first_name: Optional[str] = None,
                last_name: Optional[str] = None, role: str = "CUSTOMER", email_verified: bool = False) -> Dict[str, Any]:
    user = User(
        email=email.strip().lower(),
        password_hash=password_hash,
        first_name=first_name,
        last_name=last_name,
        role=role,
        email_verified=email_verified,
        email_verified_at=utcnow() if email_verified else None,
    )
    return user_by_id(database, create_document(database, "user", user))


def update_user(database: Database, user_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    updates = {k: v for k, v in updates.items() if k not in ("_id", "id", "password_hash", "email")}
    return _update(database, "user", user_id, updates, PUBLIC_USER_PROJECTION)


def update_user_password(database: Database, user_id: str, password_hash: str) -> bool:
    return _update(database, "user", user_id, {"password_hash": password_hash}) is not None


def mark_email_verified(database: Database, user_id: str) -> bool:
    return _update(database, "user", user_id, {"email_verified": True, "email_verified_at": utcnow()}) is not None


def list_users(database: Database) -> List[Dict[str, Any]]:
    counts = {row["_id"]: row["count"] for row in database["order"].aggregate(
        [{"$group": {"_id": "$user_id", "count": {"$sum": 1}}}]
    )}
    users = [to_str_id(u) for u in database["user"].find({}, PUBLIC_USER_PROJECTION).sort([("created_at", DESCENDING)])]
    for u in users:
        u["order_count"] = counts.get(u["id"], 0)
    return users


def user_with_orders(database: Database, user_id: str) -> Optional[Dict[str, Any]]:
    user = user_by_id(database, user_id)
    if user is None:
        return None
    user["orders"] = orders_for_user(database, user_id)
    return user


def set_user_role(database: Database, user_id: str, role: str) -> Optional[Dict[str, Any]]:
    return _update(database, "user", user_id, {"role": role}, PUBLIC_USER_PROJECTION)


def set_user_blocked(database: Database, user_id: str, is_blocked: bool) -> Optional[Dict[str, Any]]:
    return _update(database, "user", user_id, {"is_blocked": is_blocked}, PUBLIC_USER_PROJECTION)


def delete_user(database: Database, user_id: str) -> bool:
    """Remove the account and its link tokens. Orders stay for bookkeeping."""
    deleted = _delete(database, "user", user_id)
    if deleted:
        for kind in (EMAIL_VERIFICATION, PASSWORD_RESET):
            database[kind].delete_many({"user_id": user_id})
    return deleted


# -------
# Orders
# -------

def resolve_order_items(database: Database, items: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Look each cart line up by id, then slug; price comes from the product, not the cart."""
    resolved, missing = [], []
    for item in items:
        product = None
        _id = oid(item.get("product_id")) if item.get("product_id") else None
        if _id is not None:
            product = database["product"].find_one({"_id": _id}, {"price": 1})
        if product is None and item.get("product_slug"):
            product = database["product"].find_one({"slug": item["product_slug"]}, {"price": 1})
        if product is None:
            missing.append({
                "product_id": item.get("product_id"),
                "product_slug": item.get("product_slug"),
                "name": item.get("name"),
            })
            continue
        resolved.append({
            "product_id": str(product["_id"]),
            "quantity": max(1, int(item.get("quantity") or 1)),
            "size": item.get("size") or "M",
            "price": float(product.get("price") or 0),
        })
    return resolved, missing


def order_total(items: List[Dict[str, Any]]) -> float:
    return round(sum(i["price"] * i["quantity"] for i in items), 2)


def _expand_order(database: Database, order: Dict[str, Any], with_user: bool = False) -> Dict[str, Any]:
    for item in order.get("items", []):
        item["product"] = _find_by_id(database, "product", item["product_id"])
    if with_user:
        order["user"] = _find_by_id(database, "user", order["user_id"], USER_SUMMARY_PROJECTION)
    return order


def create_order(database: Database, order: Order) -> Dict[str, Any]:
    order_id = create_document(database, "order", order)
    return _expand_order(database, _find_by_id(database, "order", order_id))


def orders_for_user(database: Database, user_id: str) -> List[Dict[str, Any]]:
    cursor = database["order"].find({"user_id": user_id}).sort([("created_at", DESCENDING)])
    return [_expand_order(database, to_str_id(o)) for o in cursor]


def order_by_id(database: Database, order_id: str) -> Optional[Dict[str, Any]]:
    order = _find_by_id(database, "order", order_id)
    return _expand_order(database, order, with_user=True) if order else None


def all_orders(database: Database) -> List[Dict[str, Any]]:
    cursor = database["order"].find().sort([("created_at", DESCENDING)])
    return [_expand_order(database, to_str_id(o), with_user=True) for o in cursor]


def update_order_status(database: Database, order_id: str, status: str) -> Optional[Dict[str, Any]]:
    return _update(database, "order", order_id, {"status": status})


def dashboard_stats(database: Database) -> Dict[str, Any]:
    revenue = list(database["order"].aggregate([
        {"$match": {"payment_status": "PAID"}},
        {"$group": {"_id": None, "total": {"$sum": "$total"}}},
    ]))
    recent = [to_str_id(o) for o in database["order"].find().sort([("created_at", DESCENDING)]).limit(5)]
    for o in recent:
        o["user"] = _find_by_id(database, "user", o["user_id"], USER_SUMMARY_PROJECTION)
    return {
        "total_products": database["product"].count_documents({}),
        "total_orders": database["order"].count_documents({}),
        "total_users": database["user"].count_documents({}),
        "total_revenue": revenue[0]["total"] if revenue else 0,
        "recent_orders": recent,
    }


# -------
# Events
# -------

def create_event(database: Database, event: Event) -> Dict[str, Any]:
    doc = _naive_dates(event.model_dump())
    return _find_by_id(database, "event", create_document(database, "event", doc))


def all_events(database: Database) -> List[Dict[str, Any]]:
    return get_documents(database, "event", sort=[("created_at", DESCENDING)])


def running_events(database: Database, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or utcnow()
    cursor = database["event"].find({"is_active": True, "start_date": {"$lte": now}, "end_date": {"$gte": now}})
    return [to_str_id(e) for e in cursor if is_running(e, now)]


def featured_event(database: Database, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    for event in running_events(database, now):
        if event.get("is_featured"):
            return event
    return None


def event_by_id(database: Database, event_id: str) -> Optional[Dict[str, Any]]:
    return _find_by_id(database, "event", event_id)


def update_event(database: Database, event_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    current = event_by_id(database, event_id)
    if current is None:
        return None
    updates = _naive_dates(updates)
    start = updates.get("start_date", current["start_date"])
    end = updates.get("end_date", current["end_date"])
    if start > end:
        raise ValueError("start_date must not be after end_date")
    return _update(database, "event", event_id, updates)


def delete_event(database: Database, event_id: str) -> bool:
    return _delete(database, "event", event_id)

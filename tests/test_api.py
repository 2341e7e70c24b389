import re
from datetime import timedelta

import pytest

import queries
from conftest import PASSWORD
from database import utcnow
from schemas import Category, Event, Product

token_regex = re.compile(r"token=([0-9a-f]{64})")


def link_token(message):
    return token_regex.search(message["html"]).group(1)


@pytest.fixture
def catalog(mongo):
    bridal = queries.create_category(mongo, Category(name="Bridal", slug="bridal"))
    lawn = queries.create_category(mongo, Category(name="Lawn", slug="lawn"))
    lehenga = queries.create_product(mongo, Product(
        name="Gold Lehenga", slug="gold-lehenga", description="Hand embroidered", price=2500,
        category_id=bridal["id"], is_featured=True, sizes=["S", "M"],
    ))
    suit = queries.create_product(mongo, Product(
        name="Printed Lawn Suit", slug="printed-lawn-suit", description="Three piece", price=50,
        category_id=lawn["id"],
    ))
    return {"bridal": bridal, "lawn": lawn, "lehenga": lehenga, "suit": suit}


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


# Auth

def test_register_sets_cookie_and_sends_verification(client, mailer, mongo):
    response = client.post("/api/auth/register", json={
        "email": "Hina@Example.com", "password": PASSWORD, "first_name": "Hina",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "hina@example.com"
    assert "password_hash" not in body["user"]
    assert body["email_verification_sent"] is True
    assert "auth-token" in response.cookies
    assert mailer.sent[0]["to"] == "hina@example.com"
    assert "/verify-email?token=" in mailer.sent[0]["html"]
    assert mongo["emailverificationtoken"].count_documents({}) == 1


def test_register_reports_failed_verification_email(client, mailer):
    mailer.fail = True
    response = client.post("/api/auth/register", json={"email": "hina@example.com", "password": PASSWORD})
    assert response.status_code == 201
    assert response.json()["email_verification_sent"] is False


def test_register_rejects_duplicates_and_weak_passwords(client, make_user):
    make_user("hina@example.com")
    duplicate = client.post("/api/auth/register", json={"email": "HINA@example.com", "password": PASSWORD})
    assert duplicate.status_code == 409
    assert duplicate.json() == {"error": "An account with this email already exists"}

    weak = client.post("/api/auth/register", json={"email": "new@example.com", "password": "short"})
    assert weak.status_code == 400
    assert "uppercase" in weak.json()["error"]

    bad_email = client.post("/api/auth/register", json={"email": "not-an-email", "password": PASSWORD})
    assert bad_email.status_code == 400


def test_login_and_session(client, make_user):
    make_user("hina@example.com")
    response = client.post("/api/auth/login", json={"email": "hina@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert "max-age=86400" in response.headers["set-cookie"].lower()

    session = client.get("/api/auth/session").json()
    assert session["authenticated"] is True
    assert session["user"]["email"] == "hina@example.com"

    logout = client.delete("/api/auth/session")
    assert "max-age=0" in logout.headers["set-cookie"].lower()


def test_login_remember_me_cookie_lasts_thirty_days(client, make_user):
    make_user("hina@example.com")
    response = client.post("/api/auth/login", json={
        "email": "hina@example.com", "password": PASSWORD, "rememberMe": True,
    })
    assert "max-age=2592000" in response.headers["set-cookie"].lower()


def test_login_failures(client, make_user, mongo):
    user = make_user("hina@example.com")
    wrong = client.post("/api/auth/login", json={"email": "hina@example.com", "password": "Wrong1234"})
    unknown = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()

    queries.set_user_blocked(mongo, user["id"], True)
    blocked = client.post("/api/auth/login", json={"email": "hina@example.com", "password": PASSWORD})
    assert blocked.status_code == 403


def test_session_without_credentials(client):
    assert client.get("/api/auth/session").json() == {"authenticated": False, "user": None}


def test_verify_email_once(client, mailer, mongo):
    client.post("/api/auth/register", json={"email": "hina@example.com", "password": PASSWORD})
    token = link_token(mailer.sent[0])

    status = client.get("/api/auth/verify-email", params={"token": token}).json()
    assert status == {"valid": True, "email": "hina@example.com"}

    assert client.post("/api/auth/verify-email", json={"token": token}).status_code == 200
    assert mongo["user"].find_one({"email": "hina@example.com"})["email_verified"] is True

    again = client.post("/api/auth/verify-email", json={"token": token})
    assert again.status_code == 400
    assert again.json()["error"] == "This verification link has already been used"


def test_verify_email_rejects_unknown_token(client):
    response = client.post("/api/auth/verify-email", json={"token": "0" * 64})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid verification link"
    assert client.post("/api/auth/verify-email", json={}).status_code == 400


def test_resend_verification_never_reveals_accounts(client, mailer, make_user):
    make_user("pending@example.com")
    make_user("done@example.com", verified=True)
    answers = [
        client.put("/api/auth/verify-email", json={"email": email}).json()
        for email in ("pending@example.com", "done@example.com", "ghost@example.com")
    ]
    assert answers[0] == answers[1] == answers[2]
    assert [m["to"] for m in mailer.sent] == ["pending@example.com"]


def test_forgot_and_reset_password(client, mailer, make_user):
    make_user("hina@example.com")
    answer = client.post("/api/auth/forgot-password", json={"email": "hina@example.com"}).json()
    assert answer == client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"}).json()
    token = link_token(mailer.sent[0])

    assert client.get("/api/auth/reset-password", params={"token": token}).json()["valid"] is True

    reset = client.post("/api/auth/reset-password", json={"token": token, "password": "N3wPassword"})
    assert reset.status_code == 200
    assert mailer.sent[-1]["subject"] == "Your HJ Fashion password has been changed"

    login = client.post("/api/auth/login", json={"email": "hina@example.com", "password": "N3wPassword"})
    assert login.status_code == 200

    reuse = client.post("/api/auth/reset-password", json={"token": token, "password": "An0therOne"})
    assert reuse.status_code == 400
    assert reuse.json()["error"] == "This reset link has already been used"


LONG_PASSWORD = "Aa1" + "x" * 80


def test_register_and_login_with_very_long_password(client):
    response = client.post("/api/auth/register", json={"email": "hina@example.com", "password": LONG_PASSWORD})
    assert response.status_code == 201
    login = client.post("/api/auth/login", json={"email": "hina@example.com", "password": LONG_PASSWORD})
    assert login.status_code == 200


def test_reset_to_very_long_password(client, mailer, make_user):
    make_user("hina@example.com")
    client.post("/api/auth/forgot-password", json={"email": "hina@example.com"})
    token = link_token(mailer.sent[0])
    reset = client.post("/api/auth/reset-password", json={"token": token, "password": LONG_PASSWORD})
    assert reset.status_code == 200
    login = client.post("/api/auth/login", json={"email": "hina@example.com", "password": LONG_PASSWORD})
    assert login.status_code == 200


def test_reset_password_validates_new_password(client, mailer, make_user):
    make_user("hina@example.com")
    client.post("/api/auth/forgot-password", json={"email": "hina@example.com"})
    token = link_token(mailer.sent[0])
    weak = client.post("/api/auth/reset-password", json={"token": token, "password": "weak"})
    assert weak.status_code == 400
    # the token is still usable after a rejected password
    assert client.get("/api/auth/reset-password", params={"token": token}).json()["valid"] is True


def test_email_status_requires_admin(client, make_user, bearer):
    customer = make_user("hina@example.com")
    admin = make_user("admin@example.com", role="ADMIN")
    assert client.get("/api/auth/email-status", headers=bearer(customer)).status_code == 401
    assert client.get("/api/auth/email-status", headers=bearer(admin)).json()["success"] is True


# Catalog

def test_product_filters(client, catalog):
    expensive = client.get("/api/products", params={"minPrice": 100}).json()
    assert [p["slug"] for p in expensive] == ["gold-lehenga"]

    cheapest_first = client.get("/api/products", params={"sort": "price-low"}).json()
    assert [p["price"] for p in cheapest_first] == [50, 2500]

    lawn = client.get("/api/products", params={"category": "lawn"}).json()
    assert [p["slug"] for p in lawn] == ["printed-lawn-suit"]

    search = client.get("/api/products", params={"search": "EMBROIDERED"}).json()
    assert [p["slug"] for p in search] == ["gold-lehenga"]


def test_product_detail_carries_running_discount(client, mongo, catalog):
    queries.create_event(mongo, Event(
        name="Wedding Season", discount_percent=20, applies_to="CATEGORY", category_id=catalog["bridal"]["id"],
        start_date=utcnow() - timedelta(days=1), end_date=utcnow() + timedelta(days=1),
    ))
    lehenga = client.get("/api/products/gold-lehenga").json()
    assert lehenga["discounted_price"] == 2000
    assert lehenga["category"]["slug"] == "bridal"
    assert client.get("/api/products/printed-lawn-suit").json()["discounted_price"] is None
    assert client.get("/api/products/missing").status_code == 404


def test_category_page(client, catalog):
    page = client.get("/api/categories/bridal").json()
    assert page["category"]["name"] == "Bridal"
    assert [p["slug"] for p in page["products"]] == ["gold-lehenga"]
    assert len(client.get("/api/categories").json()) == 2


# Orders

def test_order_total_is_computed_from_catalog_prices(client, catalog, make_user, bearer):
    user = make_user("hina@example.com")
    response = client.post("/api/orders", headers=bearer(user), json={
        "items": [
            {"productId": catalog["lehenga"]["id"], "quantity": 2, "size": "S", "price": 1},
            {"slug": "printed-lawn-suit", "quantity": 1},
        ],
        "shipping_city": "Lahore",
    })
    assert response.status_code == 201
    order = response.json()
    assert order["total"] == 5050
    assert order["status"] == "PENDING"
    assert [i["price"] for i in order["items"]] == [2500, 50]


def test_order_with_unknown_product(client, catalog, make_user, bearer):
    user = make_user("hina@example.com")
    response = client.post("/api/orders", headers=bearer(user), json={
        "items": [{"slug": "gone", "name": "Old Suit"}],
    })
    assert response.status_code == 400
    assert response.json()["missing"][0]["name"] == "Old Suit"


def test_orders_require_login_and_ownership(client, catalog, make_user, bearer):
    owner = make_user("hina@example.com")
    other = make_user("sara@example.com")
    assert client.post("/api/orders", json={"items": [{"slug": "gold-lehenga"}]}).status_code == 401

    order = client.post("/api/orders", headers=bearer(owner), json={"items": [{"slug": "gold-lehenga"}]}).json()
    assert client.get(f"/api/orders/{order['id']}", headers=bearer(owner)).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=bearer(other)).status_code == 403
    assert client.get("/api/orders", headers=bearer(other)).json() == []


def test_blocked_user_cannot_order(client, mongo, catalog, make_user, bearer):
    user = make_user("hina@example.com")
    queries.set_user_blocked(mongo, user["id"], True)
    response = client.post("/api/orders", headers=bearer(user), json={"items": [{"slug": "gold-lehenga"}]})
    assert response.status_code == 403


# Profile

def test_customer_profile_update_ignores_admin_fields(client, make_user, bearer):
    user = make_user("hina@example.com")
    response = client.patch(f"/api/users/{user['id']}", headers=bearer(user), json={
        "city": "Karachi", "role": "ADMIN", "phone": "+92 300 1234567",
    })
    assert response.status_code == 200
    assert response.json()["city"] == "Karachi"
    assert response.json()["role"] == "CUSTOMER"

    bad_phone = client.patch(f"/api/users/{user['id']}", headers=bearer(user), json={"phone": "12"})
    assert bad_phone.status_code == 400


@pytest.mark.parametrize("phone,stored", [
    ("+92 300 1234567", "+923001234567"),
    ("0300-1234567", "03001234567"),
    ("(042) 3576-1234", "04235761234"),
])
def test_formatted_phone_numbers_are_accepted(client, make_user, bearer, phone, stored):
    user = make_user("hina@example.com")
    response = client.patch(f"/api/users/{user['id']}", headers=bearer(user), json={"phone": phone})
    assert response.status_code == 200
    assert response.json()["phone"] == stored


def test_admin_cannot_change_own_role_through_profile(client, make_user, bearer):
    admin = make_user("admin@example.com", role="ADMIN")
    for change in ({"role": "CUSTOMER"}, {"is_blocked": True}):
        response = client.patch(f"/api/users/{admin['id']}", headers=bearer(admin), json=change)
        assert response.status_code == 400
    assert client.get(f"/api/users/{admin['id']}", headers=bearer(admin)).json()["role"] == "ADMIN"
    renamed = client.patch(f"/api/users/{admin['id']}", headers=bearer(admin), json={"first_name": "Amna"})
    assert renamed.json()["first_name"] == "Amna"


def test_admin_can_change_other_accounts_through_profile(client, make_user, bearer):
    admin = make_user("admin@example.com", role="ADMIN")
    customer = make_user("hina@example.com")
    response = client.patch(f"/api/users/{customer['id']}", headers=bearer(admin), json={"is_blocked": True})
    assert response.json()["is_blocked"] is True


def test_users_cannot_read_each_other(client, make_user, bearer):
    hina = make_user("hina@example.com")
    sara = make_user("sara@example.com")
    assert client.get(f"/api/users/{sara['id']}", headers=bearer(hina)).status_code == 403


# Admin

def test_admin_routes_reject_customers(client, make_user, bearer):
    customer = make_user("hina@example.com")
    for path in ("/api/admin", "/api/admin/orders", "/api/admin/users", "/api/admin/events"):
        response = client.get(path, headers=bearer(customer))
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
    assert client.get("/api/admin").status_code == 401


def test_admin_dashboard_and_order_status(client, catalog, make_user, bearer):
    admin = make_user("admin@example.com", role="ADMIN")
    customer = make_user("hina@example.com")
    order = client.post("/api/orders", headers=bearer(customer), json={"items": [{"slug": "printed-lawn-suit"}]}).json()

    stats = client.get("/api/admin", headers=bearer(admin)).json()
    assert (stats["total_products"], stats["total_orders"], stats["total_users"]) == (2, 1, 2)
    assert stats["total_revenue"] == 0

    invalid = client.patch(f"/api/admin/orders/{order['id']}", headers=bearer(admin), json={"status": "LOST"})
    assert invalid.status_code == 400
    shipped = client.patch(f"/api/admin/orders/{order['id']}", headers=bearer(admin), json={"status": "SHIPPED"})
    assert shipped.json()["status"] == "SHIPPED"


def test_admin_cannot_change_own_account(client, make_user, bearer):
    admin = make_user("admin@example.com", role="ADMIN")
    response = client.patch("/api/admin/users", headers=bearer(admin),
                            json={"userId": admin["id"], "action": "role", "value": "CUSTOMER"})
    assert response.status_code == 400
    delete = client.delete("/api/admin/users", headers=bearer(admin), params={"userId": admin["id"]})
    assert delete.status_code == 400


def test_admin_blocks_and_deletes_users(client, mongo, make_user, bearer):
    admin = make_user("admin@example.com", role="ADMIN")
    customer = make_user("hina@example.com")
    blocked = client.patch("/api/admin/users", headers=bearer(admin),
                           json={"userId": customer["id"], "action": "block", "value": True})
    assert blocked.json()["is_blocked"] is True

    listed = client.get("/api/admin/users", headers=bearer(admin)).json()
    assert {u["email"] for u in listed} == {"admin@example.com", "hina@example.com"}
    assert all("password_hash" not in u for u in listed)

    assert client.delete("/api/admin/users", headers=bearer(admin), params={"userId": customer["id"]}).json() == {"success": True}
    assert mongo["user"].count_documents({}) == 1


def test_admin_catalog_management(client, catalog, make_user, bearer):
    admin = make_user("admin@example.com", role="ADMIN")
    headers = bearer(admin)

    created = client.post("/api/admin/products", headers=headers, json={
        "name": "Velvet Shawl", "slug": "velvet-shawl", "price": 120, "category_id": catalog["lawn"]["id"],
    })
    assert created.status_code == 201
    product_id = created.json()["id"]

    updated = client.patch("/api/admin/products", headers=headers, json={"productId": product_id, "price": 99})
    assert updated.json()["price"] == 99

    negative = client.patch("/api/admin/products", headers=headers, json={"productId": product_id, "price": -1})
    assert negative.status_code == 400

    duplicate = client.post("/api/admin/products", headers=headers, json={
        "name": "Copy", "slug": "velvet-shawl", "price": 1, "category_id": catalog["lawn"]["id"],
    })
    assert duplicate.status_code == 409

    in_use = client.delete("/api/admin/categories", headers=headers, params={"categoryId": catalog["lawn"]["id"]})
    assert in_use.status_code == 409

    assert client.delete("/api/admin/products", headers=headers, params={"productId": product_id}).status_code == 200


def test_admin_events(client, make_user, bearer):
    admin = make_user("admin@example.com", role="ADMIN")
    headers = bearer(admin)
    backwards = client.post("/api/admin/events", headers=headers, json={
        "name": "Broken", "discount_percent": 10,
        "start_date": "2026-06-10T00:00:00Z", "end_date": "2026-06-01T00:00:00Z",
    })
    assert backwards.status_code == 400

    event = client.post("/api/admin/events", headers=headers, json={
        "name": "Summer Sale", "discount_percent": 15,
        "start_date": "2026-06-01T00:00:00Z", "end_date": "2026-06-30T00:00:00Z",
    }).json()
    moved = client.patch("/api/admin/events", headers=headers,
                         json={"eventId": event["id"], "end_date": "2026-05-01T00:00:00Z"})
    assert moved.status_code == 400

    renamed = client.patch("/api/admin/events", headers=headers, json={"eventId": event["id"], "name": "Eid Sale"})
    assert renamed.json()["name"] == "Eid Sale"
    assert client.delete("/api/admin/events", headers=headers, params={"eventId": event["id"]}).status_code == 200

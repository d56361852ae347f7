from ageless.models_sqlalchemy.models import Category, User
from ageless.services import catalog
from ageless.services.passwords import verify_password


def test_admin_creates_user_with_temporary_password(client, db, make_user, auth_headers):
    admin = make_user(role="admin")
    resp = client.post(
        "/api/admin/users",
        json={"email": "Binder@BookMail.com", "first_name": "Roger", "role": "vendor"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 201
    body = resp.json()
    temporary = body["temporary_password"]
    assert len(temporary) == 16
    assert body["user"]["email"] == "binder@bookmail.com"
    assert body["user"]["role"] == "vendor"

    created = db.query(User).filter(User.email == "binder@bookmail.com").one()
    assert verify_password(temporary, created.password_hash)
    assert created.preferences == {"must_reset_password": True}

    login = client.post("/api/auth/login", json={"email": "binder@bookmail.com", "password": temporary})
    assert login.status_code == 200

    dup = client.post("/api/admin/users", json={"email": "binder@bookmail.com"}, headers=auth_headers(admin))
    assert dup.status_code == 409
    bad_role = client.post(
        "/api/admin/users", json={"email": "other@bookmail.com", "role": "owner"}, headers=auth_headers(admin)
    )
    assert bad_role.status_code == 400


def test_admin_cannot_delete_own_account(client, db, make_user, auth_headers):
    admin = make_user(role="admin")
    headers = auth_headers(admin)

    own = client.delete(f"/api/admin/users/{admin.id}", headers=headers)
    assert own.status_code == 400
    assert own.json()["detail"] == "You cannot delete your own account"

    other = make_user()
    assert client.delete(f"/api/admin/users/{other.id}", headers=headers).status_code == 200
    assert db.query(User).filter(User.id == other.id).first() is None
    assert client.delete(f"/api/admin/users/{other.id}", headers=headers).status_code == 404


def test_category_hierarchy_rules(client, db, make_user, auth_headers):
    headers = auth_headers(make_user(role="admin"))

    parent = client.post("/api/admin/categories", json={"name": "Fine Bindings"}, headers=headers).json()
    assert parent["slug"] == "fine-bindings"
    child = client.post(
        "/api/admin/categories", json={"name": "Vellum", "parent_id": parent["id"]}, headers=headers
    ).json()
    assert child["parent_id"] == parent["id"]

    dup = client.post("/api/admin/categories", json={"name": "Fine  Bindings!"}, headers=headers)
    assert dup.status_code == 409
    orphan = client.post("/api/admin/categories", json={"name": "Calf", "parent_id": "missing"}, headers=headers)
    assert orphan.status_code == 404

    loop = client.put(f"/api/admin/categories/{parent['id']}", json={"parent_id": parent["id"]}, headers=headers)
    assert loop.status_code == 400
    assert loop.json()["detail"] == "A category cannot be its own parent"

    blocked = client.delete(f"/api/admin/categories/{parent['id']}", headers=headers)
    assert blocked.status_code == 400
    assert blocked.json()["detail"] == "Cannot delete a category that has subcategories"

    assert client.delete(f"/api/admin/categories/{child['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/categories/{parent['id']}", headers=headers).status_code == 200
    assert db.query(Category).count() == 0


def _shelf(db, make_vendor, make_book):
    vendor = make_vendor()
    poetry = Category(name="Poetry", slug="poetry")
    db.add(poetry)
    db.commit()

    books = {
        "walden": make_book(vendor, title="Walden", author="Henry David Thoreau", price="250.00"),
        "leaves": make_book(vendor, title="Leaves of Grass", author="Walt Whitman", price="900.00"),
        "ariel": make_book(vendor, title="Ariel", author="Sylvia Plath", price="40.00"),
    }
    books["leaves"].categories.append(poetry)
    books["ariel"].categories.append(poetry)
    db.commit()
    return books


def test_catalog_search_and_filters(db, make_vendor, make_book):
    _shelf(db, make_vendor, make_book)

    def titles(**filters):
        return [b["title"] for b in catalog.list_books(db, **filters)["items"]]

    assert titles(q="whitman") == ["Leaves of Grass"]
    assert titles(q="WALD") == ["Walden"]
    assert titles(category="poetry", sort="title") == ["Ariel", "Leaves of Grass"]
    assert titles(min_price=100, max_price=500) == ["Walden"]
    assert titles(min_price=100, sort="price_desc") == ["Leaves of Grass", "Walden"]
    assert titles(sort="price_asc") == ["Ariel", "Walden", "Leaves of Grass"]
    assert titles(sort="title") == ["Ariel", "Leaves of Grass", "Walden"]
    assert titles(category="no-such-shelf") == []


def test_catalog_page_size_is_capped(client, db, make_vendor, make_book):
    _shelf(db, make_vendor, make_book)

    listing = catalog.list_books(db, page=1, limit=500)
    assert listing["pagination"]["limit"] == 100
    assert listing["pagination"]["total"] == 3

    paged = catalog.list_books(db, sort="title", page=2, limit=2)
    assert [b["title"] for b in paged["items"]] == ["Walden"]
    assert paged["pagination"]["pages"] == 2

    assert client.get("/api/books", params={"limit": 101}).status_code == 422
    assert client.get("/api/books", params={"min_price": -1}).status_code == 422
    resp = client.get("/api/books", params={"limit": 100, "sort": "price_desc", "category": "poetry"})
    assert [b["title"] for b in resp.json()["items"]] == ["Leaves of Grass", "Ariel"]

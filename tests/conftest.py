import os
import uuid
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["START_BACKGROUND_WORKERS"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("PAYPAL_CLIENT_ID", None)
os.environ.pop("SENDGRID_API_KEY", None)
os.environ.pop("TWILIO_ACCOUNT_SID", None)

import pytest
from fastapi.testclient import TestClient

from ageless.main import app
from ageless.models_sqlalchemy import SessionLocal, engine, get_db
from ageless.models_sqlalchemy.models import Base, Book, Product, User, Vendor
from ageless.services.auth import token_for_user
from ageless.services.passwords import hash_password

PASSWORD = "Vellum#Quarto92"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(role="customer", status="active", **fields):
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=fields.pop("email", f"reader_{suffix}@bookmail.com"),
            password_hash=fields.pop("password_hash", PASSWORD_HASH),
            first_name=fields.pop("first_name", "Ada"),
            last_name=fields.pop("last_name", "Byron"),
            role=role,
            status=status,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_vendor(db, make_user):
    def _make(user=None, status="approved", **fields):
        user = user or make_user(role="vendor")
        suffix = uuid.uuid4().hex[:6]
        vendor = Vendor(
            user_id=user.id,
            shop_name=fields.pop("shop_name", f"Folio {suffix}"),
            shop_url=fields.pop("shop_url", f"folio-{suffix}"),
            status=status,
            commission_rate=fields.pop("commission_rate", Decimal("0.0800")),
            **fields,
        )
        db.add(vendor)
        db.commit()
        db.refresh(vendor)
        return vendor

    return _make


@pytest.fixture
def make_book(db):
    def _make(vendor, price="100.00", quantity=1, status="published", **fields):
        book = Book(
            vendor_id=vendor.id,
            title=fields.pop("title", "The Compleat Angler"),
            author=fields.pop("author", "Izaak Walton"),
            price=Decimal(price),
            quantity=quantity,
            status=status,
            **fields,
        )
        db.add(book)
        db.commit()
        db.refresh(book)
        return book

    return _make


@pytest.fixture
def make_product(db):
    def _make(vendor, price="40.00", quantity=1, status="active", **fields):
        product = Product(
            vendor_id=vendor.id,
            title=fields.pop("title", "Brass Bookends"),
            price=Decimal(price),
            quantity=quantity,
            status=status,
            **fields,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}

    return _headers

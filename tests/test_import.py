from datetime import datetime

import pytest

from ageless.models_sqlalchemy.models import Book, BookMedia
from ageless.services import import_service
from ageless.services.errors import NotFoundError, ValidationFailed
from ageless.services.import_service import (
    FIELDS_BY_KEY,
    auto_detect_mappings,
    generate_error_csv,
    normalize_value,
    parse_csv,
    validate_rows,
)
from ageless.services.import_staging import ImportStagingStore

CSV = (
    "\ufeffTitle,Author,ISBN,Price,Qty,Condition,Status,Images,Year\n"
    'Moby-Dick,Herman Melville,9780000000001,"$1,250.00",2,Very Good,For Sale,'
    "http://img.example.com/1.jpg|http://img.example.com/2.jpg,c. 1851\n"
    "Walden,Henry David Thoreau,9780000000002,45,1,good,draft,,1854\n"
    ",Anonymous,,abc,1,,,,\n"
    ",,,,,,,,\n"
)


class DummyRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def store():
    return ImportStagingStore()


def test_parse_csv_strips_bom_and_blank_rows():
    headers, rows, total = parse_csv(CSV.encode("utf-8"))
    assert headers[0] == "Title"
    assert total == 3
    assert rows[1]["Author"] == "Henry David Thoreau"

    _, limited, total = parse_csv(CSV, max_rows=1)
    assert len(limited) == 1
    assert total == 3


def test_parse_csv_rejects_non_utf8_bytes():
    latin1 = "Title,Author,Price\nLes Mis\u00e9rables,Victor Hugo,90\n".encode("latin-1")
    with pytest.raises(ValidationFailed, match="CSV file must be UTF-8 encoded"):
        parse_csv(latin1)


def test_auto_detect_mappings():
    mappings = auto_detect_mappings(["Book Title", "Qty", "ISBN-13", "Jacket Cond", "Shelf Location"])
    assert mappings["Book Title"] == "title"
    assert mappings["Qty"] == "quantity"
    assert mappings["ISBN-13"] == "isbn"
    assert mappings["Jacket Cond"] == "condition"
    assert mappings["Shelf Location"] is None


def test_normalize_value():
    assert normalize_value("$1,250.00", FIELDS_BY_KEY["price"]) == 1250.0
    assert normalize_value("not a price", FIELDS_BY_KEY["price"]) is None
    assert normalize_value("c. 1851", FIELDS_BY_KEY["publication_year"]) == 1851
    assert normalize_value("Very Good", FIELDS_BY_KEY["condition"]) == "very-good"
    assert normalize_value("mint", FIELDS_BY_KEY["condition"]) is None
    assert normalize_value("For Sale", FIELDS_BY_KEY["status"]) == "published"
    assert normalize_value("", FIELDS_BY_KEY["status"]) == "draft"
    assert normalize_value("Yes", FIELDS_BY_KEY["is_signed"]) is True
    assert normalize_value("a.jpg, http://x/b.jpg | /c.png", FIELDS_BY_KEY["images"]) == ["http://x/b.jpg", "/c.png"]


def test_validate_rows():
    rows = [
        {"_row_index": 1, "title": "Walden", "price": 45.0, "quantity": 1},
        {"_row_index": 2, "title": "", "price": None, "quantity": -1},
        {"_row_index": 3, "title": "Future", "price": 10.0, "publication_year": 2999},
    ]
    valid, invalid, errors = validate_rows(rows, today=datetime(2026, 1, 1))

    assert [r["_row_index"] for r in valid] == [1]
    assert [e["row_index"] for e in errors] == [2, 3]
    assert {e["field"] for e in invalid[0]["_errors"]} == {"title", "price", "quantity"}
    assert invalid[1]["_errors"][0]["message"] == "Publication year must be between 1000 and 2027"


async def test_stage_remap_and_browse(store):
    staged = await import_service.stage_csv_import(CSV, {"file_name": "catalog.csv"}, store=store)
    import_id = staged["import_id"]

    assert store.backend == "memory"
    assert staged["stats"]["total_rows"] == 3
    assert staged["stats"]["valid_rows"] == 2
    assert staged["stats"]["invalid_rows"] == 1
    assert staged["suggested_mappings"]["Qty"] == "quantity"
    assert staged["validation_errors"][0]["row_index"] == 3

    invalid = await import_service.get_staged_rows(import_id, row_filter="invalid", store=store)
    assert invalid["pagination"]["total"] == 1

    remapped = await import_service.remap_staged_import(
        import_id, {"Title": "title", "Price": "price", "Author": "__ignore__"}, store=store
    )
    assert remapped["stats"]["valid_rows"] == 2
    assert "author" not in remapped["preview_rows"][0]

    with pytest.raises(ValidationFailed, match="Unknown target field"):
        await import_service.remap_staged_import(import_id, {"Title": "headline"}, store=store)

    status = await import_service.import_status(import_id, store=store)
    assert status["status"] == "staged"
    assert status["meta"]["file_name"] == "catalog.csv"


async def test_stage_rejects_empty_files(store):
    with pytest.raises(ValidationFailed, match="no headers"):
        await import_service.stage_csv_import("", store=store)
    with pytest.raises(ValidationFailed, match="no data rows"):
        await import_service.stage_csv_import("Title,Price\n", store=store)


async def test_commit_creates_books_once(db, store, make_vendor, make_user):
    vendor = make_vendor()
    staged = await import_service.stage_csv_import(CSV, store=store)

    result = await import_service.commit_import(
        db, staged["import_id"], vendor.id, make_user().id, mode="upsert", match_strategy="isbn", store=store
    )

    assert result["created_count"] == 2
    assert result["failed_count"] == 0
    moby = db.query(Book).filter(Book.title == "Moby-Dick").one()
    assert moby.status == "published"
    assert moby.quantity == 2
    assert moby.condition == "very-good"
    assert moby.publication_year == 1851
    assert db.query(BookMedia).filter(BookMedia.book_id == moby.id).count() == 2
    assert db.query(Book).filter(Book.title == "Walden").one().status == "draft"

    with pytest.raises(ValidationFailed, match="Import has already been committed"):
        await import_service.commit_import(db, staged["import_id"], vendor.id, store=store)

    status = await import_service.import_status(staged["import_id"], store=store)
    assert status["status"] == "completed"
    assert status["result"]["meta"]["vendor_id"] == vendor.id


async def test_commit_update_mode_matches_by_isbn(db, store, make_vendor, make_book):
    vendor = make_vendor()
    existing = make_book(vendor, title="Walden (old listing)", isbn="9780000000002", price="30.00")
    staged = await import_service.stage_csv_import(CSV, store=store)

    result = await import_service.commit_import(
        db, staged["import_id"], vendor.id, mode="update", match_strategy="isbn", store=store
    )

    assert result["updated_count"] == 1
    assert result["skipped_count"] == 1
    db.refresh(existing)
    assert existing.title == "Walden"
    assert float(existing.price) == 45.0


async def test_commit_validates_options(db, store, make_vendor):
    vendor = make_vendor()
    staged = await import_service.stage_csv_import(CSV, store=store)
    with pytest.raises(ValidationFailed, match="Invalid import mode"):
        await import_service.commit_import(db, staged["import_id"], vendor.id, mode="merge", store=store)
    with pytest.raises(ValidationFailed, match="Invalid match strategy"):
        await import_service.commit_import(db, staged["import_id"], vendor.id, match_strategy="color", store=store)
    with pytest.raises(NotFoundError):
        await import_service.commit_import(db, "imp_missing", vendor.id, store=store)


async def test_error_csv(store):
    staged = await import_service.stage_csv_import(CSV, store=store)
    content = await import_service.error_csv_for(staged["import_id"], store=store)

    header, line = content.strip().split("\n")
    assert header.endswith(",errors")
    assert "title: Title is required; price: Price must be a valid positive number" in line
    assert generate_error_csv([{"_row_index": 1, "title": "ok"}]) == ""


async def test_store_uses_injected_redis_client():
    client = DummyRedis()
    store = ImportStagingStore(redis_client=client)

    await store.stage("imp_1", {"status": "staged", "stats": {}})
    await store.update("imp_1", {"status": "committed"})
    await store.store_result("imp_1", {"created_count": 1})

    assert store.backend == "redis"
    assert client.ttls["import:staging:imp_1"] == 1800
    assert client.ttls["import:result:imp_1"] == 604800
    assert (await store.get("imp_1"))["status"] == "committed"
    assert (await store.get_result("imp_1"))["created_count"] == 1

    await store.delete("imp_1")
    assert await store.get("imp_1") is None
    assert await store.update("imp_1", {"status": "x"}) is None

"""CSV bulk import of books: parse, auto-map, validate, stage, commit.

Uploads are staged (see ``import_staging``) so the vendor can review the
column mapping and invalid rows before anything touches the catalog.
"""
from __future__ import annotations

import csv
import io
import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Book, BookMedia
from ageless.services.errors import NotFoundError, ValidationFailed
from ageless.services.import_staging import ImportStagingStore, generate_import_id, staging_store
from ageless.utils.logger import logger
from ageless.utils.money import quantize

MAX_ROWS = 5000
PREVIEW_ROWS = 100
BATCH_SIZE = 100
MAX_PRICE = 999999.99
IMPORT_MODES = ("create", "update", "upsert")
MATCH_STRATEGIES = ("sku", "isbn", "title_author", "wp_post_id", "none")

CONDITIONS = ["new", "like-new", "very-good", "good", "acceptable", "fair", "poor"]
BOOK_STATUSES = ["draft", "pending", "published", "sold", "archived"]

TARGET_FIELDS: List[Dict[str, Any]] = [
    {"key": "title", "label": "Title", "required": True, "type": "string"},
    {"key": "author", "label": "Author", "required": False, "type": "string"},
    {"key": "isbn", "label": "ISBN", "required": False, "type": "string"},
    {"key": "description", "label": "Description", "required": False, "type": "text"},
    {"key": "short_description", "label": "Short Description", "required": False, "type": "text"},
    {"key": "price", "label": "Price", "required": True, "type": "number"},
    {"key": "quantity", "label": "Quantity", "required": False, "type": "number", "default": 1},
    {"key": "condition", "label": "Condition", "required": False, "type": "enum", "options": CONDITIONS},
    {"key": "category", "label": "Category", "required": False, "type": "string"},
    {
        "key": "status",
        "label": "Status",
        "required": False,
        "type": "enum",
        "options": BOOK_STATUSES,
        "default": "draft",
    },
    {"key": "sku", "label": "SKU", "required": False, "type": "string"},
    {"key": "images", "label": "Images (URLs)", "required": False, "type": "images"},
    {"key": "publisher", "label": "Publisher", "required": False, "type": "string"},
    {"key": "publication_year", "label": "Publication Year", "required": False, "type": "number"},
    {"key": "edition", "label": "Edition", "required": False, "type": "string"},
    {"key": "language", "label": "Language", "required": False, "type": "string", "default": "English"},
    {"key": "binding", "label": "Binding", "required": False, "type": "string"},
    {"key": "is_signed", "label": "Signed", "required": False, "type": "boolean"},
    {"key": "weight", "label": "Weight", "required": False, "type": "number"},
    {"key": "wp_post_id", "label": "WP Post ID", "required": False, "type": "number"},
    {"key": "sid", "label": "SID (Internal ID)", "required": False, "type": "string"},
    {"key": "keywords", "label": "Keywords/Tags", "required": False, "type": "string"},
]
FIELDS_BY_KEY = {f["key"]: f for f in TARGET_FIELDS}

COLUMN_ALIASES: Dict[str, List[str]] = {
    "title": ["title", "name", "product_name", "book_title", "item_name", "product_title"],
    "author": ["author", "authors", "writer", "by", "creator"],
    "isbn": ["isbn", "isbn10", "isbn_10", "isbn13", "isbn_13"],
    "description": [
        "description", "desc", "details", "full_description",
        "long_description", "product_description", "annotation",
    ],
    "short_description": ["short_description", "short_desc", "summary", "brief", "subtitle", "excerpt"],
    "price": ["price", "retail_price", "list_price", "sale_price", "amount", "unit_price"],
    "quantity": ["quantity", "qty", "stock", "inventory", "stock_quantity", "in_stock", "volumes"],
    "condition": ["condition", "item_condition", "book_condition", "state", "cond", "jacket_cond"],
    "category": ["category", "categories", "genre", "keywords", "tags", "lists", "subject"],
    "status": ["status", "availability", "listing_status"],
    "sku": ["sku", "product_code", "item_number", "code", "barcode", "book_id"],
    "images": [
        "images", "image", "image_url", "image_urls", "photo",
        "photos", "picture", "pictures", "thumbnail",
    ],
    "publisher": ["publisher", "pub", "publishing_house", "imprint", "place_pub"],
    "publication_year": [
        "publication_year", "year", "pub_year", "date_pub",
        "year_published", "date_published", "pub_date",
    ],
    "edition": ["edition", "ed", "printing"],
    "language": ["language", "lang", "languages"],
    "binding": ["binding", "binding_type", "format", "cover_type", "book_format"],
    "is_signed": ["signed", "is_signed", "autographed", "signed_text"],
    "weight": ["weight", "shipping_weight", "item_weight"],
    "wp_post_id": ["wp_post_id", "wordpress_id", "post_id"],
    "sid": ["sid", "internal_id", "external_id", "ref"],
    "keywords": ["keywords", "tags", "keyword", "search_terms"],
}

STATUS_MAP = {
    "for sale": "published",
    "active": "published",
    "published": "published",
    "draft": "draft",
    "sold": "sold",
    "archived": "archived",
    "pending": "pending",
}

_SEPARATORS = re.compile(r"[\s\-.]+")
_YEAR = re.compile(r"\b(\d{4})\b")
_IMAGE_SPLIT = re.compile(r"\s*\|\s*|\s*,\s*")


def _normalize_header(name: str) -> str:
    return _SEPARATORS.sub("_", name.strip().lower())


def auto_detect_mappings(columns: List[str]) -> Dict[str, Optional[str]]:
    """Suggest ``{csv column: target field}``; unmatched columns map to None."""
    mappings: Dict[str, Optional[str]] = {}
    used = set()

    for col in columns:
        normalized = _normalize_header(col)
        best, best_score = None, 0.0

        for target, aliases in COLUMN_ALIASES.items():
            if target in used:
                continue
            for alias in aliases:
                alias_norm = _normalize_header(alias)
                if normalized == alias_norm:
                    best, best_score = target, 100.0
                    break
                if normalized and (alias_norm in normalized or normalized in alias_norm):
                    score = 50 + (len(alias_norm) / len(normalized)) * 30
                    if score > best_score:
                        best, best_score = target, score
            if best_score == 100.0:
                break

        if best and best_score >= 40:
            mappings[col] = best
            used.add(best)
        else:
            mappings[col] = None
    return mappings


def parse_csv(content: Union[str, bytes], max_rows: int = MAX_ROWS) -> Tuple[List[str], List[Dict[str, str]], int]:
    """Return (headers, rows, total_parsed). Only the first ``max_rows`` rows are kept."""
    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            logger.warning("[import] Rejected CSV with invalid UTF-8 at byte %s", exc.start)
            raise ValidationFailed("CSV file must be UTF-8 encoded") from exc
    else:
        text = content.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    headers = [h.strip() for h in (reader.fieldnames or []) if h is not None and h.strip()]

    rows: List[Dict[str, str]] = []
    total = 0
    for raw in reader:
        record = {}
        for key, value in raw.items():
            if key is None:
                continue
            record[key.strip()] = value.strip() if isinstance(value, str) else ""
        if not any(record.values()):
            continue
        if total < max_rows:
            rows.append(record)
        total += 1
    return headers, rows, total


def _default(field: Dict[str, Any]) -> Any:
    return field.get("default")


def normalize_value(value: Any, field: Dict[str, Any]) -> Any:
    if value is None:
        return _default(field)
    text = str(value).strip()
    if not text:
        return _default(field)

    kind = field["type"]
    if kind == "number":
        if field["key"] == "publication_year":
            match = _YEAR.search(text)
            return int(match.group(1)) if match else None
        try:
            return float(text.replace(",", "").replace("$", ""))
        except ValueError:
            return None
    if kind == "boolean":
        return text.lower() in ("y", "yes", "true", "1", "signed")
    if kind == "enum":
        if field["key"] == "status":
            return STATUS_MAP.get(text.lower()) or _default(field)
        lowered = re.sub(r"[\s_]+", "-", text.lower())
        if lowered in field.get("options", []):
            return lowered
        return _default(field)
    if kind == "images":
        return [u for u in (p.strip() for p in _IMAGE_SPLIT.split(text)) if u and (u.startswith("http") or u.startswith("/"))]
    return text


def apply_mappings(rows: List[Dict[str, str]], mappings: Dict[str, Optional[str]]) -> List[Dict[str, Any]]:
    normalized_rows = []
    for index, row in enumerate(rows, start=1):
        normalized: Dict[str, Any] = {"_row_index": index}
        for column, target in mappings.items():
            if not target or target == "__ignore__":
                continue
            field = FIELDS_BY_KEY.get(target)
            if field is None:
                continue
            normalized[target] = normalize_value(row.get(column), field)
        for field in TARGET_FIELDS:
            if field["key"] not in normalized and "default" in field:
                normalized[field["key"]] = field["default"]
        normalized_rows.append(normalized)
    return normalized_rows


def validate_rows(rows: List[Dict[str, Any]], today: Optional[datetime] = None):
    """Split rows into (valid, invalid, errors). Invalid rows carry ``_errors``."""
    max_year = (today or datetime.utcnow()).year + 1
    valid, invalid, errors = [], [], []

    for row in rows:
        row_errors = []
        title = row.get("title")
        price = row.get("price")
        quantity = row.get("quantity")
        year = row.get("publication_year")

        if not title or not str(title).strip():
            row_errors.append({"field": "title", "message": "Title is required"})
        if price is None or price < 0:
            row_errors.append({"field": "price", "message": "Price must be a valid positive number"})
        if quantity is not None and quantity < 0:
            row_errors.append({"field": "quantity", "message": "Quantity must be a non-negative number"})
        if year and (year < 1000 or year > max_year):
            row_errors.append(
                {"field": "publication_year", "message": f"Publication year must be between 1000 and {max_year}"}
            )
        if price is not None and price > MAX_PRICE:
            row_errors.append({"field": "price", "message": "Price exceeds maximum allowed value"})
        if title and len(str(title)) > 500:
            row_errors.append({"field": "title", "message": "Title exceeds 500 characters"})

        if row_errors:
            invalid.append({**row, "_errors": row_errors})
            errors.append({"row_index": row["_row_index"], "errors": row_errors})
        else:
            valid.append(row)
    return valid, invalid, errors


def _stats(total_rows: int, total_parsed: int, valid: int, invalid: int) -> Dict[str, Any]:
    return {
        "total_rows": total_rows,
        "total_parsed": total_parsed,
        "valid_rows": valid,
        "invalid_rows": invalid,
        "truncated": total_parsed > MAX_ROWS,
    }


async def stage_csv_import(
    content: Union[str, bytes],
    meta: Optional[Dict[str, Any]] = None,
    store: ImportStagingStore = staging_store,
) -> Dict[str, Any]:
    import_id = generate_import_id()
    headers, rows, total_parsed = parse_csv(content)
    if not headers:
        raise ValidationFailed("CSV file has no headers or is empty")
    if not rows:
        raise ValidationFailed("CSV file has no data rows")

    suggested = auto_detect_mappings(headers)
    valid, invalid, errors = validate_rows(apply_mappings(rows, suggested))
    stats = _stats(len(rows), total_parsed, len(valid), len(invalid))
    normalized = valid + invalid

    meta = dict(meta or {})
    meta.setdefault("file_name", "import.csv")
    meta["uploaded_at"] = datetime.utcnow().isoformat()

    await store.stage(
        import_id,
        {
            "import_id": import_id,
            "csv_headers": headers,
            "suggested_mappings": suggested,
            "current_mappings": suggested,
            "raw_rows": rows,
            "normalized_rows": normalized,
            "validation_errors": errors,
            "stats": stats,
            "meta": meta,
            "status": "staged",
        },
    )
    logger.info("[import] Staged %s: %s rows (%s invalid)", import_id, len(rows), len(invalid))
    return {
        "import_id": import_id,
        "csv_headers": headers,
        "suggested_mappings": suggested,
        "stats": stats,
        "validation_errors": errors,
        "preview_rows": normalized[:PREVIEW_ROWS],
        "target_fields": TARGET_FIELDS,
    }


async def _require_staged(import_id: str, store: ImportStagingStore) -> Dict[str, Any]:
    staging = await store.get(import_id)
    if staging is None:
        raise NotFoundError("Import session not found or expired")
    return staging


async def remap_staged_import(
    import_id: str,
    mappings: Dict[str, Optional[str]],
    store: ImportStagingStore = staging_store,
) -> Dict[str, Any]:
    staging = await _require_staged(import_id, store)
    unknown = [t for t in mappings.values() if t and t != "__ignore__" and t not in FIELDS_BY_KEY]
    if unknown:
        raise ValidationFailed(f"Unknown target field(s): {', '.join(sorted(set(unknown)))}")

    valid, invalid, errors = validate_rows(apply_mappings(staging["raw_rows"], mappings))
    stats = _stats(len(staging["raw_rows"]), staging["stats"]["total_parsed"], len(valid), len(invalid))
    normalized = valid + invalid
    await store.update(
        import_id,
        {
            "current_mappings": mappings,
            "normalized_rows": normalized,
            "validation_errors": errors,
            "stats": stats,
        },
    )
    return {
        "import_id": import_id,
        "stats": stats,
        "validation_errors": errors,
        "preview_rows": normalized[:PREVIEW_ROWS],
    }


async def get_staged_rows(
    import_id: str,
    page: int = 1,
    limit: int = 50,
    row_filter: str = "all",
    store: ImportStagingStore = staging_store,
) -> Dict[str, Any]:
    staging = await _require_staged(import_id, store)
    rows = staging["normalized_rows"]
    if row_filter == "valid":
        rows = [r for r in rows if not r.get("_errors")]
    elif row_filter == "invalid":
        rows = [r for r in rows if r.get("_errors")]

    total = len(rows)
    offset = (page - 1) * limit
    return {
        "rows": rows[offset:offset + limit],
        "pagination": {"page": page, "limit": limit, "total": total, "total_pages": -(-total // limit) if limit else 0},
    }


async def import_status(import_id: str, store: ImportStagingStore = staging_store) -> Dict[str, Any]:
    result = await store.get_result(import_id)
    if result is not None:
        return {"import_id": import_id, "status": "completed", "result": result}
    staging = await _require_staged(import_id, store)
    return {"import_id": import_id, "status": staging["status"], "stats": staging["stats"], "meta": staging["meta"]}


def _find_existing(db: Session, vendor_id: str, row: Dict[str, Any], strategy: str) -> Optional[Book]:
    query = db.query(Book).filter(Book.vendor_id == vendor_id)
    if strategy == "isbn" and row.get("isbn"):
        return query.filter(Book.isbn == row["isbn"]).first()
    if strategy == "sku" and row.get("sku"):
        return query.filter(Book.sid == row["sku"]).first()
    if strategy == "title_author" and row.get("title") and row.get("author"):
        return query.filter(
            func.lower(Book.title) == str(row["title"]).lower(),
            func.lower(Book.author) == str(row["author"]).lower(),
        ).first()
    if strategy == "wp_post_id" and row.get("wp_post_id"):
        return query.filter(Book.wp_post_id == int(row["wp_post_id"])).first()
    return None


def _book_fields(row: Dict[str, Any], default_status: str) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "title": row["title"],
        "author": row.get("author"),
        "isbn": row.get("isbn") or None,
        "description": row.get("description"),
        "short_description": row.get("short_description") or None,
        "price": quantize(row["price"]),
        "quantity": int(row.get("quantity") or 1),
        "condition": row.get("condition") or "good",
        "category": row.get("category") or None,
        "status": row.get("status") or default_status,
        "language": row.get("language") or "English",
    }
    if row.get("sku"):
        data["sid"] = row["sku"]
    elif row.get("sid"):
        data["sid"] = row["sid"]
    if row.get("publisher"):
        data["publisher"] = row["publisher"]
    if row.get("publication_year"):
        data["publication_year"] = int(row["publication_year"])
    if row.get("edition"):
        data["edition"] = row["edition"]
    if row.get("binding"):
        data["binding"] = row["binding"]
    if row.get("is_signed") is not None:
        data["is_signed"] = bool(row["is_signed"])
    if row.get("weight"):
        data["weight"] = quantize(row["weight"])
    if row.get("wp_post_id"):
        data["wp_post_id"] = int(row["wp_post_id"])
    if row.get("keywords"):
        data["keywords"] = row["keywords"]
    return data


def _replace_media(db: Session, book: Book, images: List[str], is_new: bool) -> None:
    if not is_new:
        db.query(BookMedia).filter(BookMedia.book_id == book.id).delete(synchronize_session=False)
    for position, url in enumerate(images):
        db.add(
            BookMedia(
                book_id=book.id,
                image_url=url.strip(),
                thumbnail_url=url.strip(),
                display_order=position,
                is_primary=position == 0,
            )
        )


async def commit_import(
    db: Session,
    import_id: str,
    vendor_id: str,
    user_id: Optional[str] = None,
    mode: str = "upsert",
    match_strategy: str = "sku",
    default_status: str = "draft",
    store: ImportStagingStore = staging_store,
) -> Dict[str, Any]:
    staging = await _require_staged(import_id, store)
    if staging.get("status") == "committed":
        raise ValidationFailed("Import has already been committed")
    if mode not in IMPORT_MODES:
        raise ValidationFailed(f"Invalid import mode: {mode}")
    if match_strategy not in MATCH_STRATEGIES:
        raise ValidationFailed(f"Invalid match strategy: {match_strategy}")

    rows = [r for r in staging["normalized_rows"] if not r.get("_errors")]
    created = updated = skipped = failed = 0
    failures: List[Dict[str, Any]] = []
    created_ids: List[str] = []

    for start in range(0, len(rows), BATCH_SIZE):
        batch = rows[start:start + BATCH_SIZE]
        batch_created, batch_updated, batch_skipped = 0, 0, 0
        batch_ids: List[str] = []
        batch_failures: List[Dict[str, Any]] = []
        try:
            for row in batch:
                try:
                    existing = None
                    if mode != "create" and match_strategy != "none":
                        existing = _find_existing(db, vendor_id, row, match_strategy)
                    fields = _book_fields(row, default_status)
                    images = row.get("images") or []

                    if existing is not None:
                        if mode == "create":
                            batch_skipped += 1
                            continue
                        for name, value in fields.items():
                            setattr(existing, name, value)
                        if images:
                            _replace_media(db, existing, images, is_new=False)
                        batch_updated += 1
                    else:
                        if mode == "update":
                            batch_skipped += 1
                            continue
                        book = Book(id=str(uuid.uuid4()), vendor_id=vendor_id, views=0, **fields)
                        db.add(book)
                        if images:
                            _replace_media(db, book, images, is_new=True)
                        batch_created += 1
                        batch_ids.append(book.id)
                    db.flush()
                except (ValueError, TypeError, ArithmeticError) as exc:
                    batch_failures.append({"row_index": row["_row_index"], "title": row.get("title"), "error": str(exc)})
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.error("[import] Batch starting at row %s failed for %s: %s", start + 1, import_id, exc)
            failed += len(batch)
            failures.extend(
                {"row_index": r["_row_index"], "title": r.get("title"), "error": f"Batch error: {exc}"}
                for r in batch
            )
            continue

        created += batch_created
        updated += batch_updated
        skipped += batch_skipped
        failed += len(batch_failures)
        failures.extend(batch_failures)
        created_ids.extend(batch_ids)

    result = {
        "import_id": import_id,
        "status": "completed",
        "created_count": created,
        "updated_count": updated,
        "skipped_count": skipped,
        "failed_count": failed,
        "total_processed": created + updated + skipped + failed,
        "failures": failures,
        "created_ids": created_ids,
        "completed_at": datetime.utcnow().isoformat(),
        "meta": {
            **staging.get("meta", {}),
            "user_id": user_id,
            "vendor_id": vendor_id,
            "mode": mode,
            "match_strategy": match_strategy,
            "default_status": default_status,
        },
    }
    await store.store_result(import_id, result)
    await store.update(import_id, {"status": "committed"})
    logger.info(
        "[import] Committed %s: created=%s updated=%s skipped=%s failed=%s",
        import_id, created, updated, skipped, failed,
    )
    return result


def generate_error_csv(rows: List[Dict[str, Any]]) -> str:
    invalid = [r for r in rows if r.get("_errors")]
    if not invalid:
        return ""

    fields = [k for k in invalid[0].keys() if not k.startswith("_")]
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(fields + ["errors"])
    for row in invalid:
        values = []
        for name in fields:
            value = row.get(name)
            if value is None:
                values.append("")
            elif isinstance(value, list):
                values.append("|".join(str(v) for v in value))
            else:
                values.append(str(value))
        values.append("; ".join(f"{e['field']}: {e['message']}" for e in row["_errors"]))
        writer.writerow(values)
    return buffer.getvalue()


async def error_csv_for(import_id: str, store: ImportStagingStore = staging_store) -> str:
    staging = await _require_staged(import_id, store)
    return generate_error_csv(staging["normalized_rows"])

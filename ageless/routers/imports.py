from typing import Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User, Vendor
from ageless.services import import_service
from ageless.services.auth import admin_required, vendor_required
from ageless.services.import_staging import staging_store
from ageless.utils.logger import logger

vendor_router = APIRouter(prefix="/api/vendor/import", tags=["import"])
admin_router = APIRouter(prefix="/api/admin/import", tags=["admin-import"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class RemapRequest(BaseModel):
    mappings: Dict[str, Optional[str]]


class CommitRequest(BaseModel):
    mode: str = "upsert"
    match_strategy: str = Field("sku", alias="matchStrategy")
    default_status: str = Field("draft", alias="defaultStatus")
    vendor_id: Optional[str] = Field(None, alias="vendorId")

    class Config:
        populate_by_name = True


async def _read_upload(file: UploadFile) -> bytes:
    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only CSV files are supported")
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File exceeds 10 MB")
    return content


async def _owned_import(import_id: str, vendor: Vendor) -> None:
    staging = await staging_store.get(import_id)
    if staging is not None and staging.get("meta", {}).get("vendor_id") != vendor.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import session not found or expired")


def _error_csv_response(import_id: str, content: str) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=import_errors_{import_id}.csv"},
    )


# ---- Vendor ----


@vendor_router.get("/fields")
async def target_fields(vendor: Vendor = Depends(vendor_required)):
    return {"fields": import_service.TARGET_FIELDS}


@vendor_router.post("/upload")
async def vendor_upload(file: UploadFile = File(...), vendor: Vendor = Depends(vendor_required)):
    content = await _read_upload(file)
    logger.info(f"[import] Vendor {vendor.id} uploaded {file.filename} ({len(content)} bytes)")
    return await import_service.stage_csv_import(
        content, meta={"file_name": file.filename, "vendor_id": vendor.id, "uploaded_by": vendor.user_id}
    )


@vendor_router.post("/{import_id}/mappings")
async def vendor_remap(import_id: str, payload: RemapRequest, vendor: Vendor = Depends(vendor_required)):
    await _owned_import(import_id, vendor)
    return await import_service.remap_staged_import(import_id, payload.mappings)


@vendor_router.get("/{import_id}/rows")
async def vendor_rows(
    import_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    row_filter: str = Query("all", alias="filter", pattern="^(all|valid|invalid)$"),
    vendor: Vendor = Depends(vendor_required),
):
    await _owned_import(import_id, vendor)
    return await import_service.get_staged_rows(import_id, page, limit, row_filter)


@vendor_router.get("/{import_id}/status")
async def vendor_status(import_id: str, vendor: Vendor = Depends(vendor_required)):
    await _owned_import(import_id, vendor)
    return await import_service.import_status(import_id)


@vendor_router.post("/{import_id}/commit")
async def vendor_commit(
    import_id: str,
    payload: CommitRequest,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    await _owned_import(import_id, vendor)
    return await import_service.commit_import(
        db,
        import_id,
        vendor.id,
        user_id=vendor.user_id,
        mode=payload.mode,
        match_strategy=payload.match_strategy,
        default_status=payload.default_status,
    )


@vendor_router.get("/{import_id}/errors.csv")
async def vendor_error_csv(import_id: str, vendor: Vendor = Depends(vendor_required)):
    await _owned_import(import_id, vendor)
    return _error_csv_response(import_id, await import_service.error_csv_for(import_id))


# ---- Admin ----


@admin_router.post("/upload")
async def admin_upload(
    file: UploadFile = File(...),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    current_user: User = Depends(admin_required),
):
    content = await _read_upload(file)
    logger.info(f"[import] Admin {current_user.email} uploaded {file.filename} for vendor={vendor_id}")
    return await import_service.stage_csv_import(
        content, meta={"file_name": file.filename, "vendor_id": vendor_id, "uploaded_by": current_user.id}
    )


@admin_router.post("/{import_id}/mappings")
async def admin_remap(import_id: str, payload: RemapRequest, current_user: User = Depends(admin_required)):
    return await import_service.remap_staged_import(import_id, payload.mappings)


@admin_router.get("/{import_id}/rows")
async def admin_rows(
    import_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    row_filter: str = Query("all", alias="filter", pattern="^(all|valid|invalid)$"),
    current_user: User = Depends(admin_required),
):
    return await import_service.get_staged_rows(import_id, page, limit, row_filter)


@admin_router.get("/{import_id}/status")
async def admin_status(import_id: str, current_user: User = Depends(admin_required)):
    return await import_service.import_status(import_id)


@admin_router.post("/{import_id}/commit")
async def admin_commit(
    import_id: str,
    payload: CommitRequest,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    staging = await staging_store.get(import_id)
    vendor_id = payload.vendor_id or (staging or {}).get("meta", {}).get("vendor_id")
    if not vendor_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="vendorId is required for admin imports")
    if db.query(Vendor).filter(Vendor.id == vendor_id).first() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vendor not found")
    return await import_service.commit_import(
        db,
        import_id,
        vendor_id,
        user_id=current_user.id,
        mode=payload.mode,
        match_strategy=payload.match_strategy,
        default_status=payload.default_status,
    )


@admin_router.get("/{import_id}/errors.csv")
async def admin_error_csv(import_id: str, current_user: User = Depends(admin_required)):
    return _error_csv_response(import_id, await import_service.error_csv_for(import_id))

"""
Admin endpoints - keyword table editing and image uploads.

Serves the static admin page, reads and saves reply settings, and stores
uploaded images so their public URLs can be used in image rules and flex
templates.
"""
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import FileResponse
from pydantic import BaseModel

from app.config import settings
from app.domain.reply_settings import SettingsValidationError
from app.services.settings_store import (
    SettingsPersistenceError,
    SettingsStore,
    get_settings_store,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ADMIN_PAGE = Path(__file__).parent.parent / "static" / "admin.html"

# Image types LINE can display
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


class SettingsUpdateRequest(BaseModel):
    """Full or partial settings document; omitted fields are left unchanged"""
    prompt: Optional[str] = None
    keywords: Optional[List[Any]] = None
    flex_templates: Optional[Dict[str, Any]] = None


class SettingsUpdateResponse(BaseModel):
    """Response model for settings save"""
    status: str
    message: str
    rules: int


class UploadResponse(BaseModel):
    """Public URLs of the uploaded images"""
    urls: List[str]


@router.get("/admin")
async def admin_page():
    """Serve the admin page"""
    return FileResponse(ADMIN_PAGE)


@router.get("/admin/settings")
async def read_settings(store: SettingsStore = Depends(get_settings_store)):
    """Return the current reply settings"""
    return store.snapshot.to_document()


@router.post("/admin/settings", response_model=SettingsUpdateResponse)
async def save_settings(
    update: SettingsUpdateRequest,
    store: SettingsStore = Depends(get_settings_store)
):
    """
    Save reply settings.

    The new document is validated and written to disk before it replaces the
    in-memory settings; on any failure the previous settings stay active.
    """
    try:
        snapshot = store.save(update.model_dump(exclude_none=True))
    except SettingsValidationError as e:
        logger.warning(f"⚠️ Rejected invalid settings: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except SettingsPersistenceError as e:
        logger.error(f"❌ Save error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="บันทึกล้มเหลว"
        )

    return SettingsUpdateResponse(status="ok", message="บันทึกแล้ว", rules=len(snapshot.rules))


@router.post("/upload", response_model=UploadResponse)
async def upload_images(
    request: Request,
    images: List[UploadFile] = File(...)
):
    """
    Upload one or more images.

    Files get random names (not guessable, no collisions) and are served
    publicly from /uploads/{filename}. The whole batch is checked before
    anything is written, so a rejected batch leaves no files behind.
    """
    accepted = []
    for image in images:
        extension = ALLOWED_IMAGE_TYPES.get(image.content_type or "")
        if extension is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported image type: {image.content_type}. Supported: JPEG, PNG"
            )

        content = await image.read()
        if len(content) > settings.max_upload_size:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File too large: {image.filename} ({len(content)} bytes, max {settings.max_upload_size})"
            )
        accepted.append((extension, content))

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    urls = []
    for extension, content in accepted:
        filename = f"{uuid.uuid4().hex}{extension}"
        (upload_dir / filename).write_bytes(content)
        urls.append(str(request.url_for("uploads", path=filename)))
        logger.info(f"✅ Stored upload {filename} ({len(content)} bytes)")

    return UploadResponse(urls=urls)

import logging
import uuid
from pathlib import Path
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from formbuilder.config import settings
from formbuilder.database import Backend, get_backend
from formbuilder.routers.deps import load_fields
from formbuilder.schemas import FieldType
from formbuilder.validation import check_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])

# Files are served statically at /uploads/{filename}
UPLOAD_DIR = Path(settings.UPLOAD_DIR)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

CHUNK_SIZE = 1024 * 1024  # 1MB chunks


class DeleteFileRequest(BaseModel):
    url: str


@router.post("/forms/{form_id}/fields/{field_id}/upload")
async def upload_file(form_id: str, field_id: str, file: UploadFile = File(...), backend: Backend = Depends(get_backend)):
    """
    Store a file for a ``file`` field and return the value to submit for it.
    The field's allowed extensions and maximum size are enforced here as
    well as on submission.
    """
    fields = {f.id: f for f in await load_fields(backend, form_id, active_only=True)}
    field = fields.get(field_id)
    if field is None:
        raise HTTPException(status_code=404, detail="Field not found")
    if field.type != FieldType.FILE:
        raise HTTPException(status_code=400, detail="Field does not accept files")

    original_name = file.filename or "unknown"
    reason = check_file(field, original_name, None)
    if reason:
        raise HTTPException(status_code=400, detail=reason)

    unique_filename = f"{uuid.uuid4().hex}{Path(original_name).suffix}"
    file_path = UPLOAD_DIR / unique_filename

    max_size = settings.MAX_UPLOAD_SIZE
    total_size = 0
    try:
        with open(file_path, "wb") as buffer:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > max_size:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File size exceeds maximum allowed size of {max_size / (1024 * 1024):.0f}MB",
                    )
                buffer.write(chunk)
    except HTTPException:
        file_path.unlink(missing_ok=True)
        raise
    except OSError as e:
        file_path.unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail=f"File upload failed: {e}")

    reason = check_file(field, original_name, total_size)
    if reason:
        file_path.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail=reason)

    logger.info(f"Stored upload {unique_filename} ({total_size} bytes) for field {field_id}")
    return {
        "url": f"/uploads/{unique_filename}",
        "name": original_name,
        "filename": unique_filename,
        "size": total_size,
        "type": file.content_type,
    }


@router.post("/uploads/delete")
async def delete_file(request: DeleteFileRequest):
    """
    Delete an uploaded file by URL.
    Expects JSON body: {"url": "/uploads/filename"} or full URL
    """
    url = request.url.strip()
    if "://" in url:
        url = urlparse(url).path

    if not url.startswith("/uploads/"):
        raise HTTPException(status_code=400, detail="Invalid file URL format")

    filename = url[len("/uploads/"):].split("/")[-1]
    if not filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    file_path = UPLOAD_DIR / filename
    if not file_path.exists():
        # idempotent
        return {"status": "ok", "message": "File not found (already deleted or never existed)"}

    file_path.unlink()
    return {"status": "ok", "message": f"File {filename} deleted successfully"}

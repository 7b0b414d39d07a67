from pathlib import Path

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from stampbot.config import get_settings

router = APIRouter()


@router.get("/media/{media_path:path}")
async def serve_media(media_path: str):
    """Serve uploads kept by the direct-database backend."""
    normalized_path = (media_path or "").strip().lstrip("/")
    if not normalized_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing media path")

    base_dir = Path(get_settings().media_storage_dir).resolve()
    target_path = (base_dir / normalized_path).resolve()
    if base_dir not in target_path.parents:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid media path")
    if not target_path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media not found")

    return FileResponse(target_path)

import logging
import os

import aiofiles
from fastapi import APIRouter, File, Header, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from app.errors import PreconditionError
from app.models import MediaFile, SessionStatus
from app.routes.processing import get_orchestrator, precondition_to_http
from app.routes.sessions import get_repository
from app.services.storage import StorageService
from app.services.streaming import InvalidRange, MediaNotFound, RangeStreamer, StreamError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["media"])

UPLOAD_CHUNK_SIZE = 1024 * 1024


def get_streamer(request: Request) -> RangeStreamer:
    return request.app.state.streamer


def _check_file_type(file_type: str) -> None:
    if file_type not in ("audio", "video"):
        raise HTTPException(status_code=404, detail=f"Unknown file type: {file_type}")


# ------------------------------------------------------------------
# Upload
# ------------------------------------------------------------------


@router.post("/upload/{file_type}/{session_id}")
async def upload_media(
    file_type: str, session_id: int, request: Request, file: UploadFile = File(...)
) -> dict:
    """Store a recording for a session and start processing it."""
    _check_file_type(file_type)
    repository = get_repository(request)

    session = await repository.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    if session.status == SessionStatus.PROCESSING:
        raise HTTPException(status_code=409, detail="Session is already being processed.")

    filename = file.filename or "upload"
    valid = (
        StorageService.is_valid_video_file(filename)
        if file_type == "video"
        else StorageService.is_valid_audio_file(filename)
    )
    if not valid:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported {file_type} file type: {StorageService.extension(filename)}",
        )

    upload_dir = StorageService.upload_dir(session_id, request.app.state.uploads_root)
    saved_path = os.path.join(upload_dir, StorageService.upload_filename(file_type, filename))
    size = 0
    async with aiofiles.open(saved_path, "wb") as f:
        while chunk := await file.read(UPLOAD_CHUNK_SIZE):
            size += len(chunk)
            await f.write(chunk)

    media = MediaFile(
        path=saved_path,
        size=size,
        mimetype=file.content_type or "application/octet-stream",
    )
    if not await repository.set_media_file(session_id, file_type, media):
        os.remove(saved_path)
        raise HTTPException(status_code=409, detail="Session is already being processed.")
    LOGGER.info(
        "Stored %s for session %s (%s)",
        file_type,
        session_id,
        StorageService.format_file_size(size),
    )

    try:
        await get_orchestrator(request).start(session_id)
    except PreconditionError as exc:
        raise precondition_to_http(exc)

    return {
        "message": f"{file_type.capitalize()} uploaded. AI processing has started.",
        "file": media.to_dict(),
    }


# ------------------------------------------------------------------
# Playback
# ------------------------------------------------------------------


@router.get("/stream/{session_id}/{file_type}")
async def stream_media(
    session_id: int,
    file_type: str,
    request: Request,
    range: str | None = Header(default=None),
) -> StreamingResponse:
    """Serve a session's media with byte-range support for seeking."""
    _check_file_type(file_type)
    session = await get_repository(request).get(session_id)
    media = session.media(file_type) if session else None
    if media is None:
        raise HTTPException(status_code=404, detail="File not found")

    try:
        stream = await get_streamer(request).open(media.path, range, media.mimetype)
    except MediaNotFound:
        raise HTTPException(status_code=404, detail="File not found")
    except InvalidRange as exc:
        raise HTTPException(
            status_code=416,
            detail="Requested range not satisfiable",
            headers={"Content-Range": f"bytes */{exc.file_size}"},
        )
    except StreamError:
        LOGGER.exception("Streaming error for session %s", session_id)
        raise HTTPException(status_code=500, detail="Error streaming file")

    return StreamingResponse(
        stream.body,
        status_code=stream.status_code,
        headers=stream.headers,
        background=BackgroundTask(stream.aclose),
    )

"""FastAPI router for recording upload and download endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from .schemas import DOWNLOAD_PREFIX, RecordingListResponse, RecordingUploadResponse
from .service import RecordingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recordings"])


def get_recording_service(request: Request) -> RecordingService:
    """Return the recording service configured for this application."""
    settings = request.app.state.config.recordings
    return RecordingService.get_instance(
        upload_dir=settings.upload_dir,
        db_path=settings.db_path,
        max_file_size_bytes=settings.max_file_size_bytes,
    )


def _parse_count(value: Optional[str]) -> int:
    try:
        return int(value) if value else 1
    except ValueError:
        return 1


@router.post("/api/upload-recording", response_model=RecordingUploadResponse)
async def upload_recording(
    request: Request,
    recording: Optional[UploadFile] = File(None),
    roomCode: Optional[str] = Form(None),
    userEmail: Optional[str] = Form(None),
    duration: Optional[str] = Form(None),
    recordingType: Optional[str] = Form(None),
    participantCount: Optional[str] = Form(None),
):
    """Upload a meeting recording.

    Args:
        recording: The WebM recording.
        roomCode: Room the recording was made in.
        userEmail: Identity of the uploader.
        duration: Client-reported duration.
        recordingType: ``single`` or ``room``.
        participantCount: Participants at recording time.

    Returns:
        RecordingUploadResponse with the stored filename and metadata.

    Raises:
        HTTPException 400: If no file was sent
        HTTPException 413: If the recording exceeds the size limit
        HTTPException 500: If the upload fails
    """
    if recording is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    service = get_recording_service(request)
    content = await recording.read()
    if len(content) > service.max_file_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Recording exceeds limit of {service.max_file_size_bytes // (1024 * 1024)}MB"
        )

    try:
        metadata = service.save_recording(
            content,
            room_code=roomCode,
            user_email=userEmail,
            recording_type=recordingType,
            participant_count=_parse_count(participantCount),
            duration=duration,
        )
    except ValueError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except Exception as e:
        logger.error(f"[Recordings] Upload failed: {e}")
        raise HTTPException(status_code=500, detail="Upload failed")

    return RecordingUploadResponse(
        filename=metadata.filename,
        path=metadata.path,
        size=metadata.fileSize,
        duration=metadata.duration,
        recordingType=metadata.recordingType,
        participantCount=metadata.participantCount,
        metadata=metadata,
    )


@router.get("/api/recordings/{room_code}", response_model=RecordingListResponse)
async def list_recordings(request: Request, room_code: str) -> RecordingListResponse:
    recordings = get_recording_service(request).list_room_recordings(room_code)
    return RecordingListResponse(data=recordings, total=len(recordings))


@router.get(DOWNLOAD_PREFIX + "/{filename}")
async def download_recording(request: Request, filename: str):
    """Download a catalogued recording by filename.

    Raises:
        HTTPException 404: Unknown filename or file missing on disk
    """
    file_path = get_recording_service(request).get_recording_path(filename)
    if file_path is None:
        raise HTTPException(status_code=404, detail="Recording not found")

    return FileResponse(path=file_path, filename=filename, media_type="video/webm")

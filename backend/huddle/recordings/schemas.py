"""Pydantic schemas for meeting recordings.

This module defines the data models for recording uploads:
- RecordingMetadata: Recording information written to the JSON sidecar
  and catalogued in DuckDB
- RecordingUploadResponse: API response after a successful upload
- RecordingListResponse: Recordings of one room

Recordings are stored flat in the upload directory as
``recording-<timestamp>-<ROOM>-<suffix>.webm`` next to a ``<filename>.json``
sidecar holding the same metadata.
"""
from typing import List

from pydantic import BaseModel, Field

# Public URL prefix recordings are served under
DOWNLOAD_PREFIX = "/uploads/recordings"

# File size limit: 100MB
MAX_RECORDING_SIZE_BYTES = 100 * 1024 * 1024


class RecordingMetadata(BaseModel):
    """Metadata for an uploaded recording.

    Field names follow the JSON sidecar format, so ``model_dump()`` is
    written to disk as is.
    """
    filename: str = Field(..., description="Stored filename")
    roomCode: str = Field(..., description="Room the recording was made in")
    userEmail: str = Field(..., description="Uploader identity")
    recordingType: str = Field(default="single", description="single or room recording")
    participantCount: int = Field(default=1, description="Participants at recording time")
    duration: str = Field(default="unknown", description="Client-reported duration")
    fileSize: int = Field(..., description="File size in bytes")
    uploadedAt: str = Field(..., description="Upload time, ISO 8601 UTC")
    path: str = Field(..., description="Download path")


class RecordingUploadResponse(BaseModel):
    success: bool = True
    filename: str
    path: str
    size: int
    duration: str
    recordingType: str
    participantCount: int
    metadata: RecordingMetadata


class RecordingListResponse(BaseModel):
    success: bool = True
    data: List[RecordingMetadata]
    total: int

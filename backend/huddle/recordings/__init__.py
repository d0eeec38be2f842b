"""Recording upload and storage module for Huddle.

Recordings are written to the upload directory with a JSON sidecar each,
and catalogued in DuckDB for listing and download.
"""

from .schemas import RecordingMetadata, RecordingUploadResponse
from .service import RecordingService, build_filename

__all__ = [
    "RecordingMetadata",
    "RecordingUploadResponse",
    "RecordingService",
    "build_filename",
]

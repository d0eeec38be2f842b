"""Recording storage service for Huddle.

Handles recording storage on disk and metadata tracking in DuckDB.
Recordings are stored in: <upload_dir>/recording-<timestamp>-<ROOM>-<suffix>.webm
with a ``<filename>.json`` sidecar next to each file.
"""
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import duckdb

from .schemas import DOWNLOAD_PREFIX, MAX_RECORDING_SIZE_BYTES, RecordingMetadata

logger = logging.getLogger(__name__)

_UNSAFE_CODE_CHARS = re.compile(r"[^A-Z0-9]")


def _iso(moment: datetime) -> str:
    """UTC ISO 8601 with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_filename(room_code: Optional[str], moment: datetime) -> str:
    """Name a new recording: ``recording-<timestamp>-<ROOM>-<suffix>.webm``.

    The room code is reduced to ``[A-Z0-9]`` so it cannot escape the upload
    directory; the random suffix keeps concurrent uploads apart.
    """
    room = _UNSAFE_CODE_CHARS.sub("", (room_code or "").upper()) or "UNKNOWN"
    timestamp = re.sub(r"[:.]", "-", _iso(moment))
    return f"recording-{timestamp}-{room}-{uuid.uuid4().hex[:6]}.webm"


class RecordingService:
    """Service for storing and cataloguing meeting recordings."""

    _instance: Optional["RecordingService"] = None
    _upload_dir: str = "uploads/recordings"
    _db_path: str = "recordings.duckdb"

    def __init__(
        self,
        upload_dir: Optional[str] = None,
        db_path: Optional[str] = None,
        max_file_size_bytes: int = MAX_RECORDING_SIZE_BYTES,
    ):
        if upload_dir:
            self._upload_dir = upload_dir
        if db_path:
            self._db_path = db_path
        self.max_file_size_bytes = max_file_size_bytes

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._ensure_upload_dir()
        self._initialize_db()

    @classmethod
    def get_instance(
        cls,
        upload_dir: Optional[str] = None,
        db_path: Optional[str] = None,
        max_file_size_bytes: int = MAX_RECORDING_SIZE_BYTES,
    ) -> "RecordingService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls(upload_dir, db_path, max_file_size_bytes)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        if cls._instance and cls._instance._connection:
            cls._instance._connection.close()
        cls._instance = None

    @property
    def upload_dir(self) -> Path:
        return Path(self._upload_dir)

    def _ensure_upload_dir(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS recordings (
                filename VARCHAR PRIMARY KEY,
                room_code VARCHAR NOT NULL,
                user_email VARCHAR NOT NULL,
                recording_type VARCHAR NOT NULL,
                participant_count INTEGER NOT NULL,
                duration VARCHAR NOT NULL,
                file_size BIGINT NOT NULL,
                uploaded_at TIMESTAMP NOT NULL,
                path VARCHAR NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_recordings_room_code ON recordings(room_code)
        """)

    def save_recording(
        self,
        content: bytes,
        room_code: Optional[str],
        user_email: Optional[str],
        recording_type: Optional[str] = None,
        participant_count: Optional[int] = None,
        duration: Optional[str] = None,
    ) -> RecordingMetadata:
        """Write a recording and its sidecar to disk and catalogue it.

        Args:
            content: Recording bytes (WebM).
            room_code: Room the recording was made in.
            user_email: Identity of the uploader.
            recording_type: ``single`` (default) or ``room``.
            participant_count: Participants at recording time (default 1).
            duration: Client-reported duration (default ``unknown``).

        Returns:
            RecordingMetadata as written to the sidecar.

        Raises:
            ValueError: If the recording exceeds the size limit.
        """
        size_bytes = len(content)
        if size_bytes > self.max_file_size_bytes:
            raise ValueError(
                f"Recording size ({size_bytes} bytes) exceeds limit "
                f"({self.max_file_size_bytes} bytes)"
            )

        uploaded_at = datetime.now(timezone.utc)
        filename = build_filename(room_code, uploaded_at)
        metadata = RecordingMetadata(
            filename=filename,
            roomCode=(room_code or "").strip().upper(),
            userEmail=user_email or "",
            recordingType=recording_type or "single",
            participantCount=participant_count or 1,
            duration=duration or "unknown",
            fileSize=size_bytes,
            uploadedAt=_iso(uploaded_at),
            path=f"{DOWNLOAD_PREFIX}/{filename}",
        )

        file_path = self.upload_dir / filename
        file_path.write_bytes(content)
        sidecar_path = self.upload_dir / f"{filename}.json"
        sidecar_path.write_text(json.dumps(metadata.model_dump(), indent=2), encoding="utf-8")

        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO recordings
            (filename, room_code, user_email, recording_type, participant_count,
             duration, file_size, uploaded_at, path)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                metadata.filename,
                metadata.roomCode,
                metadata.userEmail,
                metadata.recordingType,
                metadata.participantCount,
                metadata.duration,
                metadata.fileSize,
                uploaded_at.replace(tzinfo=None),
                metadata.path,
            ]
        )

        logger.info(
            f"[Recordings] {metadata.recordingType} recording uploaded: {filename} "
            f"by {metadata.userEmail} in room {metadata.roomCode} "
            f"({metadata.participantCount} participants, {size_bytes} bytes)"
        )
        return metadata

    def _row_to_metadata(self, row) -> RecordingMetadata:
        return RecordingMetadata(
            filename=row[0],
            roomCode=row[1],
            userEmail=row[2],
            recordingType=row[3],
            participantCount=row[4],
            duration=row[5],
            fileSize=row[6],
            uploadedAt=_iso(row[7].replace(tzinfo=timezone.utc)),
            path=row[8],
        )

    def get_recording(self, filename: str) -> Optional[RecordingMetadata]:
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT filename, room_code, user_email, recording_type, participant_count,
                   duration, file_size, uploaded_at, path
            FROM recordings
            WHERE filename = ?
            """,
            [filename]
        ).fetchone()
        return self._row_to_metadata(row) if row else None

    def get_recording_path(self, filename: str) -> Optional[Path]:
        """Path on disk of a catalogued recording, or None."""
        if self.get_recording(filename) is None:
            return None
        file_path = self.upload_dir / filename
        if not file_path.exists():
            return None
        return file_path

    def list_room_recordings(self, room_code: str) -> List[RecordingMetadata]:
        """Recordings of a room, oldest first."""
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT filename, room_code, user_email, recording_type, participant_count,
                   duration, file_size, uploaded_at, path
            FROM recordings
            WHERE room_code = ?
            ORDER BY uploaded_at ASC
            """,
            [room_code.strip().upper()]
        ).fetchall()
        return [self._row_to_metadata(row) for row in rows]

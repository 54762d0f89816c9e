import json
from datetime import datetime, timezone

import aiosqlite

from app.database import get_async_conn
from app.models import (
    Analytics,
    MediaFile,
    Session,
    SessionStatus,
    SlideText,
    StoredSummary,
    Transcript,
)

MEDIA_TYPES = ("audio", "video")


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _media_from_row(row: aiosqlite.Row, prefix: str) -> MediaFile | None:
    path = row[f"{prefix}_path"]
    if not path:
        return None
    return MediaFile(
        path=path,
        size=row[f"{prefix}_size"] or 0,
        mimetype=row[f"{prefix}_mimetype"] or "application/octet-stream",
        seekable=bool(row["video_seekable"]) if prefix == "video" else False,
    )


def _session_from_row(row: aiosqlite.Row) -> Session:
    transcript = None
    if row["transcript_processed_at"] is not None:
        transcript = Transcript(
            text=row["transcript_text"] or "",
            processed_at=row["transcript_processed_at"],
        )

    summary = None
    if row["summary_json"]:
        data = json.loads(row["summary_json"])
        summary = StoredSummary(
            text=data.get("text", []),
            key_points=data.get("keyPoints", []),
            assignments=data.get("assignments", []),
            degraded=data.get("degraded", False),
            processed_at=row["summary_processed_at"],
        )

    slides = [
        SlideText(
            text=s["text"],
            timestamp=s["timestamp"],
            confidence=s["confidence"],
            extracted_at=s["extractedAt"],
        )
        for s in json.loads(row["slides_json"] or "[]")
    ]

    return Session(
        id=row["id"],
        name=row["name"],
        status=SessionStatus(row["status"]),
        audio=_media_from_row(row, "audio"),
        video=_media_from_row(row, "video"),
        transcript=transcript,
        summary=summary,
        slides=slides,
        analytics=Analytics(
            view_count=row["view_count"],
            last_viewed=row["last_viewed"],
            qa_queries=json.loads(row["qa_queries_json"] or "[]"),
        ),
        created_at=str(row["created_at"]),
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SessionRepository:
    """Point reads and field-level writes against the ``sessions`` table.

    Every write is a single UPDATE naming only the columns it owns, so the
    pipeline never clobbers fields maintained by other paths (analytics,
    uploads).
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path

    async def _connect(self) -> aiosqlite.Connection:
        return await get_async_conn(self.db_path)

    async def _update(self, sql: str, params: tuple) -> int:
        conn = await self._connect()
        try:
            cursor = await conn.execute(sql, params)
            await conn.commit()
            return cursor.rowcount
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, session_id: int) -> Session | None:
        conn = await self._connect()
        try:
            row = await conn.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            )
            record = await row.fetchone()
            return _session_from_row(record) if record else None
        finally:
            await conn.close()

    async def list_sessions(self, status: SessionStatus | None = None) -> list[Session]:
        conn = await self._connect()
        try:
            if status is not None:
                rows = await conn.execute(
                    "SELECT * FROM sessions WHERE status = ? ORDER BY id DESC",
                    (status.value,),
                )
            else:
                rows = await conn.execute("SELECT * FROM sessions ORDER BY id DESC")
            return [_session_from_row(row) for row in await rows.fetchall()]
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    # Writes owned by the application
    # ------------------------------------------------------------------

    async def create(self, name: str) -> Session:
        conn = await self._connect()
        try:
            cursor = await conn.execute(
                "INSERT INTO sessions (name, status) VALUES (?, ?)",
                (name, SessionStatus.RECORDING.value),
            )
            await conn.commit()
            row = await conn.execute(
                "SELECT * FROM sessions WHERE id = ?", (cursor.lastrowid,)
            )
            return _session_from_row(await row.fetchone())
        finally:
            await conn.close()

    async def set_media_file(
        self, session_id: int, file_type: str, media: MediaFile
    ) -> bool:
        """Attach an uploaded file. Refused while a pipeline run is in flight."""
        if file_type not in MEDIA_TYPES:
            raise ValueError(f"Unknown media type: {file_type}")
        extra = ", video_seekable = 0" if file_type == "video" else ""
        changed = await self._update(
            f"UPDATE sessions SET {file_type}_path = ?, {file_type}_size = ?, "
            f"{file_type}_mimetype = ?{extra} WHERE id = ? AND status != ?",
            (
                media.path,
                media.size,
                media.mimetype,
                session_id,
                SessionStatus.PROCESSING.value,
            ),
        )
        return changed > 0

    async def record_view(self, session_id: int) -> None:
        await self._update(
            "UPDATE sessions SET view_count = view_count + 1, last_viewed = ? "
            "WHERE id = ?",
            (utcnow(), session_id),
        )

    async def add_qa_query(
        self, session_id: int, query: str, response: str, timestamp: str
    ) -> bool:
        """Append one entry to ``analytics.qaQueries`` without reading the row."""
        entry = json.dumps({"query": query, "response": response, "timestamp": timestamp})
        changed = await self._update(
            "UPDATE sessions SET qa_queries_json = "
            "json_insert(qa_queries_json, '$[#]', json(?)) WHERE id = ?",
            (entry, session_id),
        )
        return changed > 0

    # ------------------------------------------------------------------
    # Writes owned by the pipeline
    # ------------------------------------------------------------------

    async def begin_processing(self, session_id: int) -> bool:
        """Atomically move a session with media into ``processing``.

        Returns False when the row is missing, has no media, or is already
        processing; nothing is written in that case.
        """
        changed = await self._update(
            "UPDATE sessions SET status = ? WHERE id = ? AND status != ? "
            "AND (audio_path IS NOT NULL OR video_path IS NOT NULL)",
            (
                SessionStatus.PROCESSING.value,
                session_id,
                SessionStatus.PROCESSING.value,
            ),
        )
        return changed > 0

    async def mark_video_seekable(self, session_id: int, size: int) -> None:
        await self._update(
            "UPDATE sessions SET video_seekable = 1, video_size = ? WHERE id = ?",
            (size, session_id),
        )

    async def complete(
        self,
        session_id: int,
        transcript: Transcript,
        summary: StoredSummary,
        slides: list[SlideText] | None = None,
    ) -> None:
        """Write transcript, summary, optional slides and ``completed`` at once."""
        summary_json = json.dumps({
            "text": summary.text,
            "keyPoints": summary.key_points,
            "assignments": summary.assignments,
            "degraded": summary.degraded,
        })
        columns = [
            "transcript_text = ?",
            "transcript_processed_at = ?",
            "summary_json = ?",
            "summary_processed_at = ?",
            "status = ?",
        ]
        params: list = [
            transcript.text,
            transcript.processed_at,
            summary_json,
            summary.processed_at,
            SessionStatus.COMPLETED.value,
        ]
        if slides is not None:
            columns.append("slides_json = ?")
            params.append(json.dumps([s.to_dict() for s in slides]))
        params.append(session_id)
        await self._update(
            f"UPDATE sessions SET {', '.join(columns)} WHERE id = ?", tuple(params)
        )

    async def mark_failed(self, session_id: int) -> None:
        await self._update(
            "UPDATE sessions SET status = ? WHERE id = ?",
            (SessionStatus.FAILED.value, session_id),
        )

    async def fail_orphaned(self) -> int:
        """Fail every ``processing`` row. Only safe before any run is started."""
        return await self._update(
            "UPDATE sessions SET status = ? WHERE status = ?",
            (SessionStatus.FAILED.value, SessionStatus.PROCESSING.value),
        )

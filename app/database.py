import aiosqlite

from app.config import settings

CREATE_SESSIONS = """
CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'recording'
        CHECK (status IN ('recording', 'processing', 'completed', 'failed')),
    audio_path TEXT,
    audio_size INTEGER,
    audio_mimetype TEXT,
    video_path TEXT,
    video_size INTEGER,
    video_mimetype TEXT,
    video_seekable INTEGER NOT NULL DEFAULT 0,
    transcript_text TEXT,
    transcript_processed_at TEXT,
    summary_json TEXT,
    summary_processed_at TEXT,
    slides_json TEXT NOT NULL DEFAULT '[]',
    view_count INTEGER NOT NULL DEFAULT 0,
    last_viewed TEXT,
    qa_queries_json TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_STATUS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions (status)
"""

_DDL = [CREATE_SESSIONS, CREATE_STATUS_INDEX]


async def init_db(db_path: str | None = None) -> None:
    """Create all tables. Called once at server startup via FastAPI lifespan."""
    async with aiosqlite.connect(db_path or settings.database_path) as db:
        for stmt in _DDL:
            await db.execute(stmt)
        await db.commit()


async def get_async_conn(db_path: str | None = None) -> aiosqlite.Connection:
    """Async connection; one per operation, closed by the caller."""
    conn = await aiosqlite.connect(db_path or settings.database_path)
    await conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = aiosqlite.Row
    return conn

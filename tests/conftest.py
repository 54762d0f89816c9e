import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.database import init_db
from app.models import MediaFile
from app.services.session_store import SessionRepository


@pytest.fixture()
def repository(tmp_path: Path) -> SessionRepository:
    db_path = str(tmp_path / "sessions.db")
    asyncio.run(init_db(db_path))
    return SessionRepository(db_path)


@pytest.fixture()
def video_file(tmp_path: Path) -> Path:
    path = tmp_path / "uploads" / "video-1.webm"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"original-video")
    return path


@pytest.fixture()
def audio_file(tmp_path: Path) -> Path:
    path = tmp_path / "uploads" / "audio-1.mp3"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"original-audio")
    return path


def _create_session(repository: SessionRepository, file_type: str | None, path: Path | None) -> int:
    async def _create() -> int:
        session = await repository.create("Linear Algebra 101")
        if file_type is not None:
            await repository.set_media_file(
                session.id,
                file_type,
                MediaFile(path=str(path), size=path.stat().st_size, mimetype=f"{file_type}/webm"),
            )
        return session.id

    return asyncio.run(_create())


@pytest.fixture()
def session_with_video(repository: SessionRepository, video_file: Path) -> int:
    return _create_session(repository, "video", video_file)


@pytest.fixture()
def session_with_audio(repository: SessionRepository, audio_file: Path) -> int:
    return _create_session(repository, "audio", audio_file)


@pytest.fixture()
def empty_session(repository: SessionRepository) -> int:
    return _create_session(repository, None, None)

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import settings
from app.database import init_db
from app.logging_utils import configure_logging
from app.pipeline import PipelineOrchestrator
from app.routes import media, processing, sessions
from app.services.qa import QAService
from app.services.session_store import SessionRepository
from app.services.streaming import RangeStreamer

LOGGER = logging.getLogger(__name__)


def create_app(
    *,
    repository: SessionRepository | None = None,
    orchestrator: PipelineOrchestrator | None = None,
    uploads_root: str | None = None,
    qa: QAService | None = None,
) -> FastAPI:
    """Build the application. Tests pass their own repository, orchestrator and Q&A."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables and wire the pipeline; cancel in-flight runs on shutdown."""
        configure_logging(settings.log_level)
        repo = repository or SessionRepository()
        await init_db(repo.db_path)
        orphaned = await repo.fail_orphaned()
        if orphaned:
            LOGGER.warning(
                "Marked %d session(s) left in processing by a previous run as failed",
                orphaned,
            )

        pipeline = orchestrator
        if pipeline is None:
            from app.pipeline.factory import build_orchestrator

            pipeline = build_orchestrator(settings, repo)

        app.state.repository = repo
        app.state.orchestrator = pipeline
        app.state.qa = qa or QAService()
        app.state.streamer = RangeStreamer(settings.stream_chunk_size)
        app.state.uploads_root = uploads_root or settings.uploads_root
        yield
        await pipeline.shutdown()
        await app.state.qa.aclose()

    app = FastAPI(
        title="class-session-pipeline",
        description="Transcripts, summaries and slide text for recorded classes",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(sessions.router)
    app.include_router(processing.router)
    app.include_router(media.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from app.errors import QAError
from app.models import SessionStatus
from app.services.qa import QAService
from app.services.session_store import SessionRepository, utcnow

router = APIRouter(prefix="/api", tags=["sessions"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class SessionCreate(BaseModel):
    name: str


class QuestionAsk(BaseModel):
    question: str


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def get_repository(request: Request) -> SessionRepository:
    return request.app.state.repository


def get_qa(request: Request) -> QAService:
    return request.app.state.qa


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.post("/sessions", status_code=201)
async def create_session(body: SessionCreate, request: Request) -> dict:
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Session name is required")
    session = await get_repository(request).create(name[:200])
    return session.to_dict()


@router.get("/sessions")
async def list_sessions(request: Request, status: SessionStatus | None = None) -> list[dict]:
    sessions = await get_repository(request).list_sessions(status)
    return [s.to_dict() for s in sessions]


@router.get("/sessions/{session_id}")
async def get_session(session_id: int, request: Request) -> dict:
    repository = get_repository(request)
    session = await repository.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    await repository.record_view(session_id)
    return session.to_dict()


@router.post("/sessions/{session_id}/qa")
async def ask_question(session_id: int, body: QuestionAsk, request: Request) -> dict:
    """Answer a question from the session's transcript and record it in analytics."""
    question = body.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is required")

    repository = get_repository(request)
    session = await repository.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    if session.transcript is None:
        raise HTTPException(
            status_code=400, detail="No transcript available for this session."
        )

    summary = session.summary.text if session.summary else None
    try:
        answer = await get_qa(request).answer(question, session.transcript.text, summary)
    except QAError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))

    asked_at = utcnow()
    await repository.add_qa_query(session_id, question, answer, asked_at)
    return {"question": question, "answer": answer, "timestamp": asked_at}

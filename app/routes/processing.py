from fastapi import APIRouter, HTTPException, Request

from app.errors import AlreadyProcessing, NoMediaAvailable, NotFound, PreconditionError
from app.pipeline import PipelineOrchestrator

router = APIRouter(prefix="/api", tags=["processing"])


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator


def precondition_to_http(exc: PreconditionError) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, NoMediaAvailable):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AlreadyProcessing):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.post("/process/{session_id}", status_code=202)
async def start_processing(session_id: int, request: Request) -> dict:
    """Start the AI pipeline in the background. Poll the session for the outcome."""
    try:
        await get_orchestrator(request).start(session_id)
    except PreconditionError as exc:
        raise precondition_to_http(exc)
    return {
        "session_id": session_id,
        "status": "processing",
        "message": "AI processing has started in the background.",
    }


@router.post("/process/{session_id}/cancel")
async def cancel_processing(session_id: int, request: Request) -> dict:
    if not get_orchestrator(request).cancel(session_id):
        raise HTTPException(
            status_code=409, detail="No active processing for this session."
        )
    return {"session_id": session_id, "status": "cancelling"}

"""
Mock exam session routes.

Endpoints:
- POST   /api/exam-sessions
- GET    /api/exam-sessions/{session_id}
- POST   /api/exam-sessions/{session_id}/start
- PUT    /api/exam-sessions/{session_id}/answers/{question_id}
- POST   /api/exam-sessions/{session_id}/navigate
- POST   /api/exam-sessions/{session_id}/submit
- POST   /api/exam-sessions/{session_id}/reset
- DELETE /api/exam-sessions/{session_id}
"""

from typing import Optional

from fastapi import APIRouter, HTTPException

from ..errors import ValidationFailure
from ..models import CamelModel, ExamSessionSnapshot, PaperKind
from ..services import ExamSessionController, SessionRegistry


class StartExamRequest(CamelModel):
    subject: Optional[str] = None
    topic: str = ""
    kind: str = PaperKind.MCQ.value


class AnswerRequest(CamelModel):
    value: str


class NavigateRequest(CamelModel):
    direction: int


def create_exam_routes(registry: SessionRegistry) -> APIRouter:
    """Create exam session routes bound to a session registry."""

    router = APIRouter(prefix="/api/exam-sessions", tags=["exam-sessions"])

    def _session(session_id: str) -> ExamSessionController:
        try:
            return registry.get(session_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Exam session not found")

    @router.post("", response_model=ExamSessionSnapshot, status_code=201)
    async def create_session():
        """Open a new idle session."""
        return registry.create().snapshot()

    @router.get("/{session_id}", response_model=ExamSessionSnapshot)
    async def get_session(session_id: str):
        return _session(session_id).snapshot()

    @router.post("/{session_id}/start", response_model=ExamSessionSnapshot)
    async def start_exam(session_id: str, request: StartExamRequest):
        """
        Generate a paper and start the countdown.

        Generation failures come back as `error` on the snapshot.
        """
        session = _session(session_id)
        try:
            return await session.start(request.subject, request.topic, request.kind)
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))

    @router.put("/{session_id}/answers/{question_id}", response_model=ExamSessionSnapshot)
    async def record_answer(session_id: str, question_id: str, request: AnswerRequest):
        session = _session(session_id)
        try:
            return session.record_answer(question_id, request.value)
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))

    @router.post("/{session_id}/navigate", response_model=ExamSessionSnapshot)
    async def navigate(session_id: str, request: NavigateRequest):
        """Move +1/-1; moving past the last question submits."""
        session = _session(session_id)
        try:
            return await session.navigate(request.direction)
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))

    @router.post("/{session_id}/submit", response_model=ExamSessionSnapshot)
    async def submit_exam(session_id: str):
        """Early or final submission. Repeated calls are no-ops."""
        return await _session(session_id).submit()

    @router.post("/{session_id}/reset", response_model=ExamSessionSnapshot)
    async def reset_exam(session_id: str):
        return _session(session_id).reset()

    @router.delete("/{session_id}", status_code=204)
    async def close_session(session_id: str):
        _session(session_id)
        registry.drop(session_id)

    return router

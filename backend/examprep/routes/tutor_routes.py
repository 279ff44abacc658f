"""
Tutor, study and history routes.

Endpoints:
- GET  /api/subjects
- POST /api/tutor/grade
- POST /api/tutor/explain
- POST /api/study/guide
- GET  /api/resources
- GET  /api/history
- GET  /api/dashboard
"""

from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from ..config.settings import settings
from ..errors import GenerationFailure, GradingFailure, ValidationFailure
from ..models import CamelModel, Subject
from ..services import ImageContent, TutorService
from ..utils import decode_image_uri, to_jpeg_bytes, validate_file_size, validate_file_type


class TopicRequest(CamelModel):
    subject: Optional[str] = None
    topic: str = ""


def create_tutor_routes(tutor: TutorService) -> APIRouter:
    """Create tutor routes bound to a tutor service."""

    router = APIRouter(prefix="/api", tags=["tutor"])

    async def _read_image(image: Optional[UploadFile], image_uri: Optional[str]) -> Optional[ImageContent]:
        if image is not None and image.filename:
            is_valid, msg = validate_file_type(image.filename, settings.ALLOWED_IMAGE_EXTENSIONS)
            if not is_valid:
                raise HTTPException(status_code=400, detail=msg)
            image_bytes = await image.read()
        elif image_uri:
            try:
                image_bytes = decode_image_uri(image_uri)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
        else:
            return None

        is_valid, msg = validate_file_size(image_bytes, settings.MAX_FILE_SIZE_MB)
        if not is_valid:
            raise HTTPException(status_code=400, detail=msg)
        try:
            return ImageContent(to_jpeg_bytes(image_bytes, settings.JPEG_QUALITY))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @router.get("/subjects")
    async def list_subjects():
        return [{"name": s.value, "syllabusCode": s.syllabus_code} for s in Subject]

    @router.post("/tutor/grade")
    async def grade_answer(
        subject: str = Form(""),
        question: str = Form(""),
        answer: str = Form(""),
        image_uri: Optional[str] = Form(None, alias="imageUri"),
        image: Optional[UploadFile] = File(None)
    ):
        """Grade one answer (optionally with a photo of the question or script)."""
        content = await _read_image(image, image_uri)
        try:
            return await tutor.grade(subject, question, answer, content)
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))
        except GradingFailure as e:
            raise HTTPException(status_code=502, detail=str(e))

    @router.post("/tutor/explain")
    async def explain_concept(request: TopicRequest):
        try:
            return await tutor.explain(request.subject, request.topic)
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))
        except GenerationFailure:
            raise HTTPException(status_code=502, detail="Teacher is unavailable. Try again.")

    @router.post("/study/guide")
    async def study_guide(request: TopicRequest):
        try:
            return await tutor.study_guide(request.subject, request.topic)
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))
        except GenerationFailure:
            raise HTTPException(status_code=502, detail="Failed to load study hub content.")

    @router.get("/resources")
    async def list_resources(subject: str = Subject.BIOLOGY.value):
        try:
            return await tutor.resources(subject)
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))
        except GenerationFailure as e:
            raise HTTPException(status_code=502, detail=e.user_message)

    @router.get("/history")
    async def history():
        return await tutor.history()

    @router.get("/dashboard")
    async def dashboard():
        return await tutor.dashboard()

    return router

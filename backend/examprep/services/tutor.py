"""
Tutor service - single-answer grading, explanations, study guides,
resources and the performance dashboard.
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import settings
from ..errors import GradingFailure, ValidationFailure
from ..models import (
    ExamAttempt,
    FeedbackResponse,
    Resource,
    StudyGuideData,
    Subject,
    TeacherExplanation,
)
from ..store import AttemptStore
from ..utils import now_ms
from .contracts import ExamContracts
from .oracle import ImageContent

logger = logging.getLogger(__name__)


def _require_subject(subject: Any) -> Subject:
    if not subject:
        raise ValidationFailure("Please select a subject first.", field="subject")
    try:
        return Subject(subject)
    except ValueError:
        raise ValidationFailure(f"Unknown subject '{subject}'", field="subject")


class TutorService:
    """Everything outside the timed mock exam."""

    def __init__(self, contracts: ExamContracts, store: AttemptStore, clock: Callable[[], int] = now_ms):
        self.contracts = contracts
        self.store = store
        self.clock = clock

    async def grade(
        self,
        subject: Any,
        question: str,
        answer: str,
        image: Optional[ImageContent] = None
    ) -> FeedbackResponse:
        """
        Grade one answer and record it as an attempt.

        Raises:
            ValidationFailure: No question (text or image) or no answer
            GradingFailure: Oracle failed or replied with invalid feedback
        """
        subject = _require_subject(subject)
        if not (question or "").strip() and image is None:
            raise ValidationFailure("Please provide a CAIE exam question.", field="question")
        if not (answer or "").strip():
            raise ValidationFailure("Please provide your answer.", field="answer")

        try:
            feedback = await self.contracts.grade_answer(subject, question or "", answer, image)
        except Exception as e:
            logger.error(f"Single-answer grading failed: {e}", exc_info=True)
            raise GradingFailure("Grading failed. Ensure your answer follows CAIE standards.") from e

        await self.store.append_one(ExamAttempt(
            id=f"attempt_{uuid.uuid4().hex[:12]}",
            subject=subject,
            timestamp=self.clock(),
            score=feedback.attained_marks,
            max_score=feedback.total_marks,
            mistakes=[m.point for m in feedback.marks_breakdown if not m.awarded] or None
        ))
        return feedback

    async def explain(self, subject: Any, topic: str) -> TeacherExplanation:
        """
        Raises:
            ValidationFailure: No topic
            GenerationFailure: Oracle failed
        """
        subject = _require_subject(subject)
        if not (topic or "").strip():
            raise ValidationFailure("What CAIE topic should I teach you?", field="topic")
        return await self.contracts.explain_concept(subject, topic.strip())

    async def study_guide(self, subject: Any, topic: str) -> StudyGuideData:
        subject = _require_subject(subject)
        if not (topic or "").strip():
            raise ValidationFailure("Please enter a topic to study.", field="topic")
        return await self.contracts.fetch_study_guide(subject, topic.strip())

    async def resources(self, subject: Any) -> List[Resource]:
        return await self.contracts.fetch_resources(_require_subject(subject))

    async def history(self) -> List[ExamAttempt]:
        return await self.store.read_all()

    async def dashboard(self) -> Dict[str, Any]:
        """
        History, chart points and an analysis of the latest attempts.

        With no history the oracle is not called. An analysis failure is
        logged and reported as `analysis: None`; the history still returns.
        """
        attempts = await self.store.read_all()
        chart = [
            {"timestamp": a.timestamp, "subject": a.subject.value, "score": a.percentage}
            for a in attempts
        ]

        analysis = None
        analysis_error = None
        if attempts:
            try:
                recent = await self.store.recent(settings.ANALYSIS_WINDOW)
                analysis = await self.contracts.analyze_student_performance(recent)
            except Exception as e:
                logger.error(f"Performance analysis failed: {e}", exc_info=True)
                analysis_error = "Performance analysis is unavailable right now."

        return {
            "attempts": attempts,
            "chart": chart,
            "analysis": analysis,
            "analysisError": analysis_error,
        }

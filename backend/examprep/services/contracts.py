"""
Exam contracts - prompt templates, response schemas and parsing for every
oracle operation.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from ..config.settings import settings
from ..errors import ParseFailure, ValidationFailure
from ..models import (
    ExamAttempt,
    FeedbackResponse,
    MockExamResult,
    MockQuestion,
    PaperKind,
    Resource,
    StudentAnalysis,
    StudyGuideData,
    Subject,
    TeacherExplanation,
)
from . import schemas
from .oracle import ImageContent, Oracle

logger = logging.getLogger(__name__)

NO_ANSWER = "No Answer Provided"
RESOURCE_COUNT = 5
WORKED_EXAMPLE_COUNT = 2


def extract_json(response_text: str) -> str:
    """Strip markdown code fences the model sometimes wraps JSON in."""
    text = (response_text or "").strip()
    if "```json" in text:
        return text.split("```json")[1].split("```")[0].strip()
    if "```" in text:
        return text.split("```")[1].split("```")[0].strip()
    return text


def parse_response(response_text: str, adapter: TypeAdapter, operation: str) -> Any:
    """
    Validate oracle JSON against the expected type.

    Raises:
        ParseFailure: If the body is empty, not JSON, or does not match the shape
    """
    json_str = extract_json(response_text)
    if not json_str:
        raise ParseFailure(f"{operation}: empty response")
    try:
        return adapter.validate_python(json.loads(json_str))
    except json.JSONDecodeError as e:
        raise ParseFailure(f"{operation}: response is not valid JSON ({e})") from e
    except ValidationError as e:
        raise ParseFailure(f"{operation}: response does not match schema ({e.error_count()} errors)") from e


class ExamContracts:
    """Builds requests for the oracle and turns its replies into domain objects."""

    CAIE_SYSTEM_INSTRUCTION = """You are a Senior Examiner for CAIE (Cambridge Assessment International Education).
STRICT SYLLABUS ADHERENCE: You must ONLY use Cambridge International IGCSE standards.
BANNED SOURCES: Never mention or use logic from Cognito, AQA, OCR, Pearson Edexcel (Domestic), or any UK-specific GCSE boards. These are NOT reliable for CAIE students.
MANDATORY SOURCES: Use official Cambridge Marking Schemes, Examiner Reports, and Syllabus (0610, 0620, 0625, 0580, etc.).
TERMINOLOGY: Use CAIE-specific terms (e.g., 'M marks' for method, 'A marks' for accuracy, 'B marks' for independent).
ASSESSMENT OBJECTIVES: Strictly align with AO1, AO2, and AO3 as defined by Cambridge.
ALTERNATIVES: If recommending resources, ONLY suggest PapaCambridge, Save My Exams (Cambridge Section), ZNotes, GCE Guide, and Physics and Maths Tutor (CAIE section).
OUTPUT: Respond ONLY with valid JSON matching the requested schema. No prose, no markdown."""

    MOCK_PAPER_PROMPT = """Generate exactly {count} high-quality CAIE IGCSE {kind} questions for {subject}.
Topic: {topic}.
Ensure questions are equivalent in difficulty to Cambridge Paper 2 (MCQ) or Paper 4 (Extended Theory).
Every question must have "type": "{kind}".{options_rule}
Use unique question ids "q1" to "q{count}".
Ignore all domestic UK board conventions.
Return as a valid JSON array."""

    MCQ_OPTIONS_RULE = """
Each question must carry four options labelled "A", "B", "C" and "D"."""

    GRADE_EXAM_PROMPT = """Grade this CAIE IGCSE {subject} submission.
Use the strict Cambridge marking keys.
Unanswered questions are marked "{no_answer}" and score zero.
Data: {submission}
Return total marks, attained marks, percentage, and A*-G grade."""

    STUDY_GUIDE_PROMPT = """Create a CAIE IGCSE study guide for {subject} on: "{topic}".
Strictly avoid Cognito/UK domestic references.
Include {examples} worked examples using Cambridge methodology."""

    GRADE_ANSWER_PROMPT = """Grade this student script strictly following the CAIE (Cambridge International) marking scheme for {subject}.
Exclude all Cognito/UK domestic GCSE logic."""

    EXPLAIN_PROMPT = """Explain {topic} strictly for CAIE IGCSE {subject}. Use official Cambridge technical terms."""

    ANALYSIS_PROMPT = """Analyze performance data for a Cambridge International student: {history}. Predict A*-G grades per subject."""

    RESOURCES_PROMPT = """Provide {count} verified CAIE (Cambridge International) resources for {subject}.
ABSOLUTELY NO Cognito or domestic UK GCSE links.
Use PapaCambridge, GCE Guide, Save My Exams (Cambridge Section), and ZNotes."""

    _questions = TypeAdapter(List[MockQuestion])
    _exam_result = TypeAdapter(MockExamResult)
    _study_guide = TypeAdapter(StudyGuideData)
    _feedback = TypeAdapter(FeedbackResponse)
    _explanation = TypeAdapter(TeacherExplanation)
    _analysis = TypeAdapter(StudentAnalysis)
    _resources = TypeAdapter(List[Resource])

    def __init__(self, oracle: Oracle):
        self.oracle = oracle

    async def _ask(self, parts: List[Any], response_schema: Dict[str, Any]) -> str:
        return await self.oracle.generate(
            parts,
            response_schema,
            system_instruction=self.CAIE_SYSTEM_INSTRUCTION
        )

    # ============ MOCK EXAMS ============

    async def generate_mock_paper(
        self,
        subject: Subject,
        topic: Optional[str] = None,
        kind: PaperKind = PaperKind.MCQ
    ) -> List[MockQuestion]:
        """
        Generate a full mock paper.

        Every question in the paper has the requested kind and a unique id.
        The caller decides whether the question count is acceptable.

        Raises:
            GenerationFailure: Oracle unreachable
            ParseFailure: Reply is not a valid question list
        """
        kind = PaperKind(kind)
        prompt = self.MOCK_PAPER_PROMPT.format(
            count=settings.PAPER_LENGTH,
            kind=kind.value,
            subject=subject.value,
            topic=topic or "General Syllabus",
            options_rule=self.MCQ_OPTIONS_RULE if kind == PaperKind.MCQ else ""
        )
        logger.info(f"🔍 Requesting {kind.value} paper for {subject.value} ({topic or 'General Syllabus'})")

        response_text = await self._ask([prompt], schemas.MOCK_PAPER_SCHEMA)
        questions = parse_response(response_text, self._questions, "generate_mock_paper")

        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise ParseFailure("generate_mock_paper: duplicate question ids")
        wrong_kind = [q.id for q in questions if q.type != kind]
        if wrong_kind:
            raise ParseFailure(f"generate_mock_paper: questions {wrong_kind} are not {kind.value}")

        logger.info(f"✅ Received {len(questions)} questions")
        return questions

    @staticmethod
    def build_submission(questions: List[MockQuestion], answers: Dict[str, str]) -> List[Dict[str, str]]:
        """One reduced record per question; blank or missing answers get the sentinel."""
        submission = []
        for q in questions:
            answer = answers.get(q.id)
            submission.append({
                "id": q.id,
                "question": q.text,
                "studentAnswer": answer if answer and answer.strip() else NO_ANSWER
            })
        return submission

    async def grade_mock_exam(
        self,
        subject: Subject,
        questions: List[MockQuestion],
        answers: Dict[str, str]
    ) -> MockExamResult:
        """
        Grade a whole mock exam in one call.

        Raises:
            GenerationFailure: Oracle unreachable
            ParseFailure: Reply is not a valid result
        """
        submission = self.build_submission(questions, answers)
        prompt = self.GRADE_EXAM_PROMPT.format(
            subject=subject.value,
            no_answer=NO_ANSWER,
            submission=json.dumps(submission)
        )
        logger.info(f"⏳ Grading {len(questions)} questions for {subject.value}...")

        response_text = await self._ask([prompt], schemas.MOCK_EXAM_RESULT_SCHEMA)
        result = parse_response(response_text, self._exam_result, "grade_mock_exam")

        logger.info(f"✅ Graded: {result.attained_marks}/{result.total_marks} ({result.grade})")
        return result

    # ============ STUDY & TUTOR ============

    async def fetch_study_guide(self, subject: Subject, topic: str) -> StudyGuideData:
        """Study guide with worked examples; an unreadable reply yields an empty guide."""
        prompt = self.STUDY_GUIDE_PROMPT.format(
            subject=subject.value,
            topic=topic,
            examples=WORKED_EXAMPLE_COUNT
        )
        response_text = await self._ask([prompt], schemas.STUDY_GUIDE_SCHEMA)
        try:
            return parse_response(response_text, self._study_guide, "fetch_study_guide")
        except ParseFailure as e:
            logger.warning(f"⚠️  {e}; returning empty study guide")
            return StudyGuideData(topic=topic)

    async def grade_answer(
        self,
        subject: Subject,
        question: str,
        student_answer: str,
        image: Optional[ImageContent] = None
    ) -> FeedbackResponse:
        """
        Grade one free-form answer. The optional image travels in the same request.

        Raises:
            GenerationFailure: Oracle unreachable
            ParseFailure: Reply is not valid feedback
        """
        parts: List[Any] = [
            self.GRADE_ANSWER_PROMPT.format(subject=subject.value),
            f"Question: {question}",
            f"Student's Answer: {student_answer}",
        ]
        if image is not None:
            parts.append(image)

        response_text = await self._ask(parts, schemas.FEEDBACK_SCHEMA)
        return parse_response(response_text, self._feedback, "grade_answer")

    async def explain_concept(self, subject: Subject, topic: str) -> TeacherExplanation:
        prompt = self.EXPLAIN_PROMPT.format(subject=subject.value, topic=topic)
        response_text = await self._ask([prompt], schemas.EXPLANATION_SCHEMA)
        return parse_response(response_text, self._explanation, "explain_concept")

    async def analyze_student_performance(self, history: List[ExamAttempt]) -> StudentAnalysis:
        """
        Analyze the most recent attempts.

        Raises:
            ValidationFailure: Empty history (there is nothing to analyze)
            GenerationFailure: Oracle unreachable
            ParseFailure: Reply is not a valid analysis
        """
        if not history:
            raise ValidationFailure("No attempts to analyze", field="history")

        recent = history[-settings.ANALYSIS_WINDOW:]
        payload = [a.model_dump(mode="json", by_alias=True, exclude_none=True) for a in recent]
        prompt = self.ANALYSIS_PROMPT.format(history=json.dumps(payload))

        response_text = await self._ask([prompt], schemas.ANALYSIS_SCHEMA)
        return parse_response(response_text, self._analysis, "analyze_student_performance")

    async def fetch_resources(self, subject: Subject) -> List[Resource]:
        """Revision resources with sequential display ids; an unreadable reply yields []."""
        prompt = self.RESOURCES_PROMPT.format(count=RESOURCE_COUNT, subject=subject.value)
        response_text = await self._ask([prompt], schemas.RESOURCES_SCHEMA)
        try:
            resources = parse_response(response_text, self._resources, "fetch_resources")
        except ParseFailure as e:
            logger.warning(f"⚠️  {e}; returning no resources")
            return []

        return [
            r.model_copy(update={"id": str(i)})
            for i, r in enumerate(resources[:RESOURCE_COUNT])
        ]

"""Domain models using Pydantic for validation."""

import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", protected_namespaces=()
    )


# ============ SUBJECT ============
class Subject(str, Enum):
    BIOLOGY = "Biology (0610)"
    CHEMISTRY = "Chemistry (0620)"
    PHYSICS = "Physics (0625)"
    COMBINED_SCIENCE = "Combined Science (0653)"
    MATHEMATICS = "Mathematics (0580)"
    ADDITIONAL_MATHEMATICS = "Additional Mathematics (0606)"
    ECONOMICS = "Economics (0455)"
    ENGLISH = "English (0500)"

    @property
    def syllabus_code(self) -> str:
        return re.search(r"\((\d{4})\)", self.value).group(1)


class PaperKind(str, Enum):
    THEORY = "theory"
    MCQ = "mcq"


# ============ MOCK PAPER ============
class MCQOption(CamelModel):
    id: str  # "A", "B", "C", "D"
    text: str


class MockQuestion(CamelModel):
    id: str
    text: str
    marks: float = Field(ge=0)
    type: PaperKind
    options: Optional[List[MCQOption]] = None
    diagram_description: Optional[str] = None

    @model_validator(mode="after")
    def _mcq_needs_options(self):
        if self.type == PaperKind.MCQ and len(self.options or []) < 2:
            raise ValueError(f"MCQ question {self.id} has fewer than two options")
        return self


class QuestionFeedback(CamelModel):
    question_id: str
    correct: bool
    student_answer: str
    correct_answer: str
    explanation: str


class MockExamResult(CamelModel):
    total_marks: float = Field(ge=0)
    attained_marks: float = Field(ge=0)
    percentage: float
    grade: str  # A*-G
    feedback_per_question: List[QuestionFeedback]
    overall_teacher_comments: str

    @model_validator(mode="after")
    def _marks_in_range(self):
        if self.attained_marks > self.total_marks:
            raise ValueError(
                f"attainedMarks {self.attained_marks} exceeds totalMarks {self.total_marks}"
            )
        return self

    @property
    def cambridge_scale(self) -> int:
        """Display-only 0-9 scale derived from the percentage."""
        return round((self.percentage or 0) / 11.1)


# ============ STUDY GUIDE ============
class FormulaEntry(CamelModel):
    name: str
    formula: str
    application: str = ""


class WorkedStep(CamelModel):
    description: str
    working: Optional[str] = None


class WorkedExample(CamelModel):
    title: str
    question: str
    steps: List[WorkedStep] = []
    final_answer: str = ""


class StudyGuideData(CamelModel):
    topic: str = ""
    summary: str = ""
    subtopics: List[str] = []
    formulas: List[FormulaEntry] = []
    must_knows: List[str] = []
    worked_examples: List[WorkedExample] = []


# ============ TUTOR ============
class MarkPoint(CamelModel):
    point: str
    awarded: bool
    reason: str


class FeedbackResponse(CamelModel):
    total_marks: float = Field(ge=0)
    attained_marks: float = Field(ge=0)
    marks_breakdown: List[MarkPoint] = []
    teacher_comments: str
    improvement_tips: List[str] = []
    model_answer: str
    predicted_grade: Optional[str] = None

    @model_validator(mode="after")
    def _marks_in_range(self):
        if self.attained_marks > self.total_marks:
            raise ValueError(
                f"attainedMarks {self.attained_marks} exceeds totalMarks {self.total_marks}"
            )
        return self


class TeacherExplanation(CamelModel):
    concept: str
    explanation: str
    key_keywords: List[str] = []
    syllabus_reference: str = ""
    further_reading: str = ""


class ResourceType(str, Enum):
    BOOK = "Book"
    MOCK_PAPER = "Mock Paper"
    REVISION_NOTE = "Revision Note"


class Resource(CamelModel):
    id: str = ""  # Assigned by the caller after parsing
    title: str
    type: ResourceType
    link: str
    description: str


# ============ ANALYTICS ============
class StudentAnalysis(CamelModel):
    strengths: List[str] = []
    weaknesses: List[str] = []
    predicted_grades: Dict[str, str] = {}
    personalized_advice: str

    @field_validator("predicted_grades", mode="before")
    @classmethod
    def _fold_grade_pairs(cls, value):
        # The oracle sends [{"subject": ..., "grade": ...}]
        if isinstance(value, list):
            folded = {}
            for pair in value:
                if not isinstance(pair, dict) or "subject" not in pair or "grade" not in pair:
                    raise ValueError(f"Invalid predicted grade entry: {pair!r}")
                folded[pair["subject"]] = pair["grade"]
            return folded
        return value


# ============ HISTORY ============
class ExamAttempt(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    subject: Subject
    timestamp: int  # epoch milliseconds
    score: float = Field(ge=0)
    max_score: float = Field(ge=0)
    topic: Optional[str] = None
    mistakes: Optional[List[str]] = None

    @model_validator(mode="after")
    def _score_in_range(self):
        if self.score > self.max_score:
            raise ValueError(f"score {self.score} exceeds maxScore {self.max_score}")
        return self

    @property
    def percentage(self) -> int:
        if not self.max_score:
            return 0
        return round(self.score / self.max_score * 100)


# ============ EXAM SESSION ============
class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    IN_PROGRESS = "in_progress"
    GRADING = "grading"
    GRADED = "graded"


class ExamSessionSnapshot(CamelModel):
    """Declarative view of one mock-exam session for presentation."""
    session_id: str
    state: SessionState
    subject: Optional[Subject] = None
    topic: str = ""
    kind: PaperKind = PaperKind.MCQ
    questions: List[MockQuestion] = []
    current_index: int = 0
    current_question: Optional[MockQuestion] = None
    answers: Dict[str, str] = {}
    answered_count: int = 0
    time_left: int = 0
    time_display: str = "0:00"
    result: Optional[MockExamResult] = None
    cambridge_scale: Optional[int] = None
    error: Optional[str] = None

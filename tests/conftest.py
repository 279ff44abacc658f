"""Shared fixtures: a scripted oracle and canned oracle payloads."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from examprep.models import Subject
from examprep.services import ExamContracts, ExamSessionController, TutorService
from examprep.services.oracle import Oracle
from examprep.store import AttemptStore, MemoryBlobStore


class FakeOracle(Oracle):
    """Replays queued replies in order and records every request."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.replies: List[Any] = []
        self.gate: Optional[asyncio.Event] = None

    def queue(self, *replies):
        self.replies.extend(replies)
        return self

    async def generate(self, parts, response_schema, system_instruction):
        self.calls.append({
            "parts": parts,
            "schema": response_schema,
            "system_instruction": system_instruction,
        })
        if not self.replies:
            raise AssertionError("FakeOracle has no reply queued")
        reply = self.replies.pop(0)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(reply, Exception):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return reply

    @property
    def prompt(self) -> str:
        """Text parts of the latest request."""
        return "\n".join(p for p in self.calls[-1]["parts"] if isinstance(p, str))


def make_questions(kind: str = "mcq", count: int = 10) -> List[Dict[str, Any]]:
    questions = []
    for i in range(1, count + 1):
        q = {"id": f"q{i}", "text": f"Question {i}?", "marks": 1, "type": kind}
        if kind == "mcq":
            q["options"] = [{"id": label, "text": f"Option {label}"} for label in "ABCD"]
        else:
            q["marks"] = 4
        questions.append(q)
    return questions


def make_exam_result(attained: float = 7, total: float = 10, grade: str = "B") -> Dict[str, Any]:
    return {
        "totalMarks": total,
        "attainedMarks": attained,
        "percentage": round(attained / total * 100) if total else 0,
        "grade": grade,
        "feedbackPerQuestion": [
            {
                "questionId": "q1",
                "correct": True,
                "studentAnswer": "A",
                "correctAnswer": "A",
                "explanation": "Osmosis moves water down its potential gradient.",
            }
        ],
        "overallTeacherComments": "Solid grasp of AO1; revise AO2 application.",
    }


def make_feedback(attained: float = 3, total: float = 4) -> Dict[str, Any]:
    return {
        "totalMarks": total,
        "attainedMarks": attained,
        "predictedGrade": "A",
        "marksBreakdown": [
            {"point": "States diffusion", "awarded": True, "reason": "B1 correct definition"},
            {"point": "Names concentration gradient", "awarded": False, "reason": "Missing"},
        ],
        "teacherComments": "Good definition.",
        "improvementTips": ["Mention the concentration gradient."],
        "modelAnswer": "Net movement of particles down a concentration gradient.",
    }


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def blobs():
    return MemoryBlobStore()


@pytest.fixture
def store(blobs):
    return AttemptStore(blobs)


@pytest.fixture
def contracts(oracle):
    return ExamContracts(oracle)


@pytest.fixture
async def session(contracts, store):
    # Long interval: ticks are driven by hand unless a test says otherwise.
    controller = ExamSessionController(contracts, store, tick_interval=3600, clock=lambda: 1_700_000_000_000)
    yield controller
    controller.reset()


@pytest.fixture
def tutor(contracts, store):
    return TutorService(contracts, store, clock=lambda: 1_700_000_000_000)


BIOLOGY = Subject.BIOLOGY

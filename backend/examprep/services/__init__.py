"""Services for talking to the oracle and running exam sessions."""

from .oracle import GeminiOracle, ImageContent, Oracle
from .contracts import ExamContracts
from .exam_session import ExamSessionController, SessionRegistry
from .tutor import TutorService

__all__ = [
    "GeminiOracle",
    "ImageContent",
    "Oracle",
    "ExamContracts",
    "ExamSessionController",
    "SessionRegistry",
    "TutorService"
]

"""Error types raised by the oracle contracts and the session controller."""


class ExamPrepError(Exception):
    """Base class for all ExamPrep failures."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = None):
        super().__init__(message or self.user_message)


class GenerationFailure(ExamPrepError):
    """Oracle call failed or returned no usable content."""

    user_message = "Failed to reach the CAIE examiner. Please check your connection and try again."


class ParseFailure(GenerationFailure):
    """Oracle replied, but the body is not JSON matching the declared shape."""

    user_message = "The CAIE examiner returned an unreadable response. Please try again."


class GradingFailure(ExamPrepError):
    """Grading call failed; answers are kept so the caller may resubmit."""

    user_message = "Grading failed. Please check connection."


class ValidationFailure(ExamPrepError, ValueError):
    """Local input check failed before any oracle call."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field

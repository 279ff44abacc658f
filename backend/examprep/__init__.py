"""ExamPrep - CAIE IGCSE study and mock-exam backend."""

__version__ = "1.0.0"

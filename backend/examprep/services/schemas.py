"""
Gemini response schemas, one per oracle operation.

Field names are the camelCase wire names parsed by `examprep.models`.
"""

from typing import Any, Dict, List


def _string(enum: List[str] = None) -> Dict[str, Any]:
    schema = {"type": "STRING"}
    if enum:
        schema["enum"] = enum
    return schema


NUMBER = {"type": "NUMBER"}
BOOLEAN = {"type": "BOOLEAN"}
STRING = _string()


def _array(items: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "ARRAY", "items": items}


def _object(properties: Dict[str, Any], required: List[str] = None) -> Dict[str, Any]:
    schema = {"type": "OBJECT", "properties": properties}
    if required:
        schema["required"] = required
    return schema


MOCK_PAPER_SCHEMA = _array(_object(
    {
        "id": STRING,
        "text": STRING,
        "marks": NUMBER,
        "type": _string(["theory", "mcq"]),
        "options": _array(_object({"id": STRING, "text": STRING}, ["id", "text"])),
        "diagramDescription": STRING,
    },
    ["id", "text", "marks", "type"]
))

MOCK_EXAM_RESULT_SCHEMA = _object(
    {
        "totalMarks": NUMBER,
        "attainedMarks": NUMBER,
        "percentage": NUMBER,
        "grade": STRING,
        "feedbackPerQuestion": _array(_object(
            {
                "questionId": STRING,
                "correct": BOOLEAN,
                "studentAnswer": STRING,
                "correctAnswer": STRING,
                "explanation": STRING,
            },
            ["questionId", "correct", "studentAnswer", "correctAnswer", "explanation"]
        )),
        "overallTeacherComments": STRING,
    },
    ["totalMarks", "attainedMarks", "percentage", "grade", "feedbackPerQuestion", "overallTeacherComments"]
)

STUDY_GUIDE_SCHEMA = _object(
    {
        "topic": STRING,
        "summary": STRING,
        "subtopics": _array(STRING),
        "formulas": _array(_object({"name": STRING, "formula": STRING, "application": STRING})),
        "mustKnows": _array(STRING),
        "workedExamples": _array(_object({
            "title": STRING,
            "question": STRING,
            "steps": _array(_object({"description": STRING, "working": STRING}, ["description"])),
            "finalAnswer": STRING,
        })),
    },
    ["topic", "summary", "subtopics", "workedExamples"]
)

FEEDBACK_SCHEMA = _object(
    {
        "totalMarks": NUMBER,
        "attainedMarks": NUMBER,
        "predictedGrade": STRING,
        "marksBreakdown": _array(_object(
            {"point": STRING, "awarded": BOOLEAN, "reason": STRING},
            ["point", "awarded", "reason"]
        )),
        "teacherComments": STRING,
        "improvementTips": _array(STRING),
        "modelAnswer": STRING,
    },
    ["totalMarks", "attainedMarks", "marksBreakdown", "teacherComments", "improvementTips", "modelAnswer"]
)

EXPLANATION_SCHEMA = _object(
    {
        "concept": STRING,
        "explanation": STRING,
        "keyKeywords": _array(STRING),
        "syllabusReference": STRING,
        "furtherReading": STRING,
    },
    ["concept", "explanation", "keyKeywords", "syllabusReference", "furtherReading"]
)

# Gemini rejects OBJECT schemas without properties, so the subject -> grade
# map travels as a list of pairs and is folded into a dict on parse.
ANALYSIS_SCHEMA = _object(
    {
        "strengths": _array(STRING),
        "weaknesses": _array(STRING),
        "predictedGrades": _array(_object({"subject": STRING, "grade": STRING}, ["subject", "grade"])),
        "personalizedAdvice": STRING,
    },
    ["strengths", "weaknesses", "predictedGrades", "personalizedAdvice"]
)

RESOURCES_SCHEMA = _array(_object(
    {
        "title": STRING,
        "type": _string(["Book", "Mock Paper", "Revision Note"]),
        "link": STRING,
        "description": STRING,
    },
    ["title", "type", "link", "description"]
))

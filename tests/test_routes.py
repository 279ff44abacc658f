"""Tests for the FastAPI routes, driven through httpx against the ASGI app."""

import base64
import io

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from conftest import FakeOracle, make_exam_result, make_feedback, make_questions
from examprep.errors import GenerationFailure
from examprep.store import MemoryBlobStore
from main import create_app


@pytest.fixture
def app_oracle():
    return FakeOracle()


@pytest.fixture
async def client(app_oracle):
    app = create_app(oracle=app_oracle, blobs=MemoryBlobStore(), tick_interval=3600)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.state.registry.close_all()


async def _new_session(client) -> str:
    r = await client.post("/api/exam-sessions")
    assert r.status_code == 201
    return r.json()["sessionId"]


@pytest.mark.asyncio
async def test_health_and_root(client):
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"

    r = await client.get("/")
    assert r.json()["app"] == "ExamPrep"


@pytest.mark.asyncio
async def test_subjects(client):
    r = await client.get("/api/subjects")

    assert r.status_code == 200
    assert len(r.json()) == 8
    assert {"name": "Biology (0610)", "syllabusCode": "0610"} in r.json()


@pytest.mark.asyncio
async def test_full_mock_exam_flow(client, app_oracle):
    session_id = await _new_session(client)
    app_oracle.queue(make_questions("mcq"))

    r = await client.post(f"/api/exam-sessions/{session_id}/start", json={"subject": "Biology (0610)", "kind": "mcq"})
    body = r.json()
    assert r.status_code == 200
    assert body["state"] == "in_progress"
    assert body["timeLeft"] == 600
    assert body["answers"] == {}

    r = await client.put(f"/api/exam-sessions/{session_id}/answers/q1", json={"value": "C"})
    assert r.json()["answers"] == {"q1": "C"}

    r = await client.post(f"/api/exam-sessions/{session_id}/navigate", json={"direction": 1})
    assert r.json()["currentIndex"] == 1

    app_oracle.queue(make_exam_result(7, 10))
    r = await client.post(f"/api/exam-sessions/{session_id}/submit")
    body = r.json()
    assert body["state"] == "graded"
    assert body["result"]["attainedMarks"] == 7
    assert body["cambridgeScale"] == 6

    r = await client.get("/api/history")
    history = r.json()
    assert len(history) == 1
    assert history[0]["score"] == 7
    assert history[0]["maxScore"] == 10

    r = await client.post(f"/api/exam-sessions/{session_id}/reset")
    assert r.json()["state"] == "idle"


@pytest.mark.asyncio
async def test_start_without_subject_is_400(client, app_oracle):
    session_id = await _new_session(client)

    r = await client.post(f"/api/exam-sessions/{session_id}/start", json={"kind": "mcq"})

    assert r.status_code == 400
    assert "subject" in r.json()["detail"]
    assert app_oracle.calls == []


@pytest.mark.asyncio
async def test_start_failure_reported_on_snapshot(client, app_oracle):
    session_id = await _new_session(client)
    app_oracle.queue(GenerationFailure("offline"))

    r = await client.post(f"/api/exam-sessions/{session_id}/start", json={"subject": "Physics (0625)"})

    assert r.status_code == 200
    assert r.json()["state"] == "idle"
    assert "check your connection" in r.json()["error"]


@pytest.mark.asyncio
async def test_unknown_session_is_404(client):
    r = await client.get("/api/exam-sessions/session_missing")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_delete_session(client):
    session_id = await _new_session(client)

    r = await client.delete(f"/api/exam-sessions/{session_id}")
    assert r.status_code == 204

    r = await client.get(f"/api/exam-sessions/{session_id}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_grade_answer_records_attempt(client, app_oracle):
    app_oracle.queue(make_feedback(3, 4))

    r = await client.post("/api/tutor/grade", data={
        "subject": "Biology (0610)",
        "question": "Define diffusion.",
        "answer": "Particles spread from high to low concentration.",
    })

    assert r.status_code == 200
    assert r.json()["attainedMarks"] == 3
    history = (await client.get("/api/history")).json()
    assert [(h["score"], h["maxScore"]) for h in history] == [(3, 4)]
    assert history[0]["mistakes"] == ["Names concentration gradient"]


@pytest.mark.asyncio
async def test_grade_answer_with_uploaded_image(client, app_oracle):
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), (0, 128, 0)).save(buffer, format="PNG")
    app_oracle.queue(make_feedback())

    r = await client.post(
        "/api/tutor/grade",
        data={"subject": "Physics (0625)", "answer": "9.8 m/s^2"},
        files={"image": ("question.png", buffer.getvalue(), "image/png")}
    )

    assert r.status_code == 200
    attachment = app_oracle.calls[0]["parts"][-1]
    assert attachment.mime_type == "image/jpeg"
    assert Image.open(io.BytesIO(attachment.data)).format == "JPEG"


@pytest.mark.asyncio
async def test_grade_answer_with_data_uri(client, app_oracle):
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8)).save(buffer, format="JPEG")
    uri = "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode()
    app_oracle.queue(make_feedback())

    r = await client.post("/api/tutor/grade", data={"subject": "Physics (0625)", "answer": "x", "imageUri": uri})

    assert r.status_code == 200
    assert app_oracle.calls[0]["parts"][-1].data == buffer.getvalue()


@pytest.mark.asyncio
@pytest.mark.parametrize("form,message", [
    ({"subject": "Biology (0610)", "answer": "x"}, "Please provide a CAIE exam question."),
    ({"subject": "Biology (0610)", "question": "Q"}, "Please provide your answer."),
])
async def test_grade_answer_validation(client, app_oracle, form, message):
    r = await client.post("/api/tutor/grade", data=form)

    assert r.status_code == 400
    assert r.json()["detail"] == message
    assert app_oracle.calls == []


@pytest.mark.asyncio
async def test_grade_answer_failure_is_502(client, app_oracle):
    app_oracle.queue("nope")

    r = await client.post("/api/tutor/grade", data={"subject": "Biology (0610)", "question": "Q", "answer": "A"})

    assert r.status_code == 502
    assert (await client.get("/api/history")).json() == []


@pytest.mark.asyncio
async def test_grade_answer_with_impossible_score_is_502(client, app_oracle):
    app_oracle.queue(make_feedback(6, 4))

    r = await client.post("/api/tutor/grade", data={"subject": "Biology (0610)", "question": "Q", "answer": "A"})

    assert r.status_code == 502
    assert (await client.get("/api/history")).json() == []


@pytest.mark.asyncio
async def test_explain_requires_topic(client):
    r = await client.post("/api/tutor/explain", json={"subject": "Chemistry (0620)", "topic": ""})

    assert r.status_code == 400
    assert r.json()["detail"] == "What CAIE topic should I teach you?"


@pytest.mark.asyncio
async def test_explain_unavailable(client, app_oracle):
    app_oracle.queue(GenerationFailure("down"))

    r = await client.post("/api/tutor/explain", json={"subject": "Chemistry (0620)", "topic": "Electrolysis"})

    assert r.status_code == 502
    assert r.json()["detail"] == "Teacher is unavailable. Try again."


@pytest.mark.asyncio
async def test_study_guide_degrades(client, app_oracle):
    app_oracle.queue("```json\nnot really json\n```")

    r = await client.post("/api/study/guide", json={"subject": "Mathematics (0580)", "topic": "Vectors"})

    assert r.status_code == 200
    assert r.json()["topic"] == "Vectors"
    assert r.json()["workedExamples"] == []


@pytest.mark.asyncio
async def test_resources(client, app_oracle):
    app_oracle.queue([
        {"title": "ZNotes Economics", "type": "Revision Note", "link": "https://znotes.org", "description": "Notes"},
        {"title": "Past papers", "type": "Mock Paper", "link": "https://papacambridge.com", "description": "0455"},
    ])

    r = await client.get("/api/resources", params={"subject": "Economics (0455)"})

    assert r.status_code == 200
    assert [item["id"] for item in r.json()] == ["0", "1"]


@pytest.mark.asyncio
async def test_dashboard_skips_analysis_without_history(client, app_oracle):
    r = await client.get("/api/dashboard")

    assert r.status_code == 200
    assert r.json()["attempts"] == []
    assert r.json()["analysis"] is None
    assert app_oracle.calls == []


@pytest.mark.asyncio
async def test_dashboard_with_history(client, app_oracle):
    app_oracle.queue(make_feedback(2, 4))
    await client.post("/api/tutor/grade", data={"subject": "Biology (0610)", "question": "Q", "answer": "A"})
    app_oracle.queue({
        "strengths": ["Cells"],
        "weaknesses": ["Genetics"],
        "predictedGrades": [{"subject": "Biology (0610)", "grade": "B"}],
        "personalizedAdvice": "Revise inheritance ratios.",
    })

    r = await client.get("/api/dashboard")
    body = r.json()

    assert body["chart"][0]["score"] == 50
    assert body["analysis"]["predictedGrades"] == {"Biology (0610)": "B"}
    assert body["analysisError"] is None

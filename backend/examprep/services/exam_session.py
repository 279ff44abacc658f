"""
Exam session controller - drives one timed mock exam.

FLOW:
1. idle        → start()   → loading     (paper requested from the oracle)
2. loading     → paper OK  → in_progress (countdown running)
               → failure   → idle        (error set, no paper kept)
3. in_progress → submit()  → grading     (countdown stopped)
4. grading     → result OK → graded      (attempt appended to history)
               → failure   → in_progress (answers kept, may resubmit)
5. any state   → reset()   → idle

Every oracle reply is tagged with the epoch it was requested in; a reply
that lands after reset() belongs to a discarded session and is dropped.
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional, Union

from ..config.settings import settings
from ..errors import ValidationFailure
from ..models import (
    ExamAttempt,
    ExamSessionSnapshot,
    MockExamResult,
    MockQuestion,
    PaperKind,
    SessionState,
    Subject,
)
from ..store import AttemptStore
from ..utils import format_time, now_ms
from .contracts import ExamContracts

logger = logging.getLogger(__name__)

DURATIONS = {
    PaperKind.MCQ: settings.MCQ_DURATION_SECONDS,
    PaperKind.THEORY: settings.THEORY_DURATION_SECONDS,
}


class ExamSessionController:
    """State machine for one mock-exam attempt."""

    START_ERROR = "Failed to fetch CAIE exam paper. Please check your connection and try again."
    GRADING_ERROR = "Grading failed. Please check connection."
    SAVE_ERROR = "Your result could not be saved to history."

    def __init__(
        self,
        contracts: ExamContracts,
        store: AttemptStore,
        session_id: Optional[str] = None,
        tick_interval: float = 1.0,
        clock: Callable[[], int] = now_ms
    ):
        self.contracts = contracts
        self.store = store
        self.session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        self.tick_interval = tick_interval
        self.clock = clock

        self.state = SessionState.IDLE
        self.subject: Optional[Subject] = None
        self.topic = ""
        self.kind = PaperKind.MCQ
        self.questions: List[MockQuestion] = []
        self.answers: Dict[str, str] = {}
        self.current_index = 0
        self.time_left = 0
        self.result: Optional[MockExamResult] = None
        self.error: Optional[str] = None

        self._epoch = 0
        self._timer: Optional[asyncio.Task] = None

    # ============ LIFECYCLE ============

    async def start(
        self,
        subject: Union[Subject, str, None],
        topic: str = "",
        kind: Union[PaperKind, str] = PaperKind.MCQ
    ) -> ExamSessionSnapshot:
        """
        Request a paper and begin the exam.

        Raises:
            ValidationFailure: Missing/unknown subject or unknown kind
        """
        if self.state != SessionState.IDLE:
            logger.warning(f"Start ignored for {self.session_id}: session is {self.state.value}")
            return self.snapshot()

        if not subject:
            raise ValidationFailure("Please select a subject first.", field="subject")
        try:
            subject = Subject(subject)
        except ValueError:
            raise ValidationFailure(f"Unknown subject '{subject}'", field="subject")
        try:
            kind = PaperKind(kind)
        except ValueError:
            raise ValidationFailure(f"Unknown paper type '{kind}'", field="kind")

        self.state = SessionState.LOADING
        self.error = None
        epoch = self._epoch

        try:
            questions = await self.contracts.generate_mock_paper(subject, topic or None, kind)
        except Exception as e:
            if epoch != self._epoch:
                return self.snapshot()
            logger.error(f"Paper generation failed for {self.session_id}: {e}", exc_info=True)
            return self._fail_start()

        if epoch != self._epoch:
            logger.info(f"Discarding paper for reset session {self.session_id}")
            return self.snapshot()

        if len(questions) != settings.PAPER_LENGTH:
            logger.error(
                f"Paper for {self.session_id} has {len(questions)} questions, "
                f"expected {settings.PAPER_LENGTH}"
            )
            return self._fail_start()

        self.subject = subject
        self.topic = topic or ""
        self.kind = kind
        self.questions = questions
        self.answers = {}
        self.current_index = 0
        self.result = None
        self.time_left = DURATIONS[kind]
        self.state = SessionState.IN_PROGRESS
        self._start_timer()

        logger.info(f"✅ Exam {self.session_id} started: {subject.value}, {kind.value}, {self.time_left}s")
        return self.snapshot()

    def _fail_start(self) -> ExamSessionSnapshot:
        self.state = SessionState.IDLE
        self.questions = []
        self.error = self.START_ERROR
        return self.snapshot()

    def record_answer(self, question_id: str, value: str) -> ExamSessionSnapshot:
        """
        Insert or overwrite the answer for one question.

        Raises:
            ValidationFailure: No exam in progress, or unknown question id
        """
        if self.state != SessionState.IN_PROGRESS:
            raise ValidationFailure("No exam in progress", field="state")
        if question_id not in {q.id for q in self.questions}:
            raise ValidationFailure(f"Unknown question '{question_id}'", field="questionId")

        self.answers[question_id] = value
        return self.snapshot()

    async def navigate(self, direction: int) -> ExamSessionSnapshot:
        """
        Move one question back or forward.

        Index is clamped to the paper; moving forward from the last
        question submits the exam instead.

        Raises:
            ValidationFailure: direction is not -1 or +1
        """
        if direction not in (-1, 1):
            raise ValidationFailure("Direction must be -1 or 1", field="direction")
        if self.state != SessionState.IN_PROGRESS:
            return self.snapshot()

        last = len(self.questions) - 1
        if direction == 1 and self.current_index >= last:
            return await self.submit()

        self.current_index = min(max(self.current_index + direction, 0), last)
        return self.snapshot()

    async def submit(self) -> ExamSessionSnapshot:
        """Grade the exam. Single-fire: a no-op unless the exam is in progress."""
        if self.state != SessionState.IN_PROGRESS:
            return self.snapshot()

        self.state = SessionState.GRADING
        self._stop_timer()
        self.error = None
        epoch = self._epoch
        subject, topic = self.subject, self.topic

        try:
            result = await self.contracts.grade_mock_exam(subject, list(self.questions), dict(self.answers))
        except Exception as e:
            if epoch != self._epoch:
                return self.snapshot()
            logger.error(f"Grading failed for {self.session_id}: {e}", exc_info=True)
            self.state = SessionState.IN_PROGRESS
            self.error = self.GRADING_ERROR
            self._start_timer()
            return self.snapshot()

        if epoch != self._epoch:
            logger.info(f"Discarding grade for reset session {self.session_id}")
            return self.snapshot()

        self.result = result
        self.state = SessionState.GRADED

        attempt = ExamAttempt(
            id=f"attempt_{uuid.uuid4().hex[:12]}",
            subject=subject,
            timestamp=self.clock(),
            score=result.attained_marks,
            max_score=result.total_marks,
            topic=topic or None,
            mistakes=self._missed_questions(result)
        )
        try:
            await self.store.append_one(attempt)
        except Exception as e:
            logger.error(f"Error saving attempt for {self.session_id}: {e}", exc_info=True)
            self.error = self.SAVE_ERROR

        return self.snapshot()

    def _missed_questions(self, result: MockExamResult) -> Optional[List[str]]:
        """Text of every question the result marks wrong, in paper order."""
        wrong = {f.question_id for f in result.feedback_per_question if not f.correct}
        missed = [q.text for q in self.questions if q.id in wrong]
        return missed or None

    def reset(self) -> ExamSessionSnapshot:
        """Back to idle from any state, discarding paper, answers and result."""
        self._epoch += 1
        self._stop_timer()
        self.state = SessionState.IDLE
        self.subject = None
        self.topic = ""
        self.kind = PaperKind.MCQ
        self.questions = []
        self.answers = {}
        self.current_index = 0
        self.time_left = 0
        self.result = None
        self.error = None
        return self.snapshot()

    # ============ COUNTDOWN ============

    def tick(self) -> None:
        """One second of exam time. Does nothing outside an exam in progress."""
        if self.state == SessionState.IN_PROGRESS and self.time_left > 0:
            self.time_left -= 1

    async def _run_timer(self) -> None:
        while self.state == SessionState.IN_PROGRESS and self.time_left > 0:
            await asyncio.sleep(self.tick_interval)
            self.tick()
        if self.state == SessionState.IN_PROGRESS:
            logger.info(f"⏰ Time is up for {self.session_id}")

    def _start_timer(self) -> None:
        self._stop_timer()
        self._timer = asyncio.create_task(self._run_timer())

    def _stop_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ============ VIEW ============

    def snapshot(self) -> ExamSessionSnapshot:
        current = None
        if self.questions and self.state in (SessionState.IN_PROGRESS, SessionState.GRADING):
            current = self.questions[self.current_index]

        return ExamSessionSnapshot(
            session_id=self.session_id,
            state=self.state,
            subject=self.subject,
            topic=self.topic,
            kind=self.kind,
            questions=self.questions,
            current_index=self.current_index,
            current_question=current,
            answers=dict(self.answers),
            answered_count=sum(1 for v in self.answers.values() if v and v.strip()),
            time_left=self.time_left,
            time_display=format_time(self.time_left),
            result=self.result,
            cambridge_scale=self.result.cambridge_scale if self.result else None,
            error=self.error
        )


class SessionRegistry:
    """
    In-process map of live exam sessions. Each session is isolated.

    Sessions untouched for `idle_ttl` seconds are evicted on the next
    create(). Past `max_sessions`, the least recently used settled
    sessions (idle or graded) go first. A session waiting on the oracle
    (loading or grading) is never evicted.
    """

    SETTLED = (SessionState.IDLE, SessionState.GRADED)
    BUSY = (SessionState.LOADING, SessionState.GRADING)

    def __init__(
        self,
        contracts: ExamContracts,
        store: AttemptStore,
        tick_interval: float = 1.0,
        idle_ttl: Optional[float] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.contracts = contracts
        self.store = store
        self.tick_interval = tick_interval
        self.idle_ttl = idle_ttl if idle_ttl is not None else settings.SESSION_IDLE_TTL_SECONDS
        self.max_sessions = max_sessions if max_sessions is not None else settings.MAX_SESSIONS
        self.clock = clock
        self._sessions: Dict[str, ExamSessionController] = {}
        self._last_used: Dict[str, float] = {}

    def create(self) -> ExamSessionController:
        self.evict()
        session = ExamSessionController(self.contracts, self.store, tick_interval=self.tick_interval)
        self._sessions[session.session_id] = session
        self._last_used[session.session_id] = self.clock()
        logger.info(f"Created exam session {session.session_id}")
        return session

    def get(self, session_id: str) -> ExamSessionController:
        """
        Raises:
            KeyError: Unknown session id
        """
        session = self._sessions[session_id]
        self._last_used[session_id] = self.clock()
        return session

    def drop(self, session_id: str) -> None:
        session = self._sessions.pop(session_id)
        self._last_used.pop(session_id, None)
        session.reset()

    def evict(self) -> List[str]:
        """Drop expired sessions, then settled ones while at capacity. Returns the dropped ids."""
        now = self.clock()
        by_age = sorted(self._sessions, key=lambda sid: self._last_used[sid])

        expired = [
            sid for sid in by_age
            if now - self._last_used[sid] >= self.idle_ttl
            and self._sessions[sid].state not in self.BUSY
        ]
        for sid in expired:
            self.drop(sid)

        overflow = []
        for sid in by_age:
            if len(self._sessions) < self.max_sessions:
                break
            if sid in self._sessions and self._sessions[sid].state in self.SETTLED:
                self.drop(sid)
                overflow.append(sid)

        dropped = expired + overflow
        if dropped:
            logger.info(f"Evicted {len(dropped)} exam session(s), {len(self._sessions)} live")
        return dropped

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.drop(session_id)

    def __len__(self):
        return len(self._sessions)

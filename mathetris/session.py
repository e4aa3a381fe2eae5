from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from itertools import islice
from enum import Enum

from loguru import logger

from .clock import Clock
from .config import DrillConfig
from .problem_generator import MathProblem, generate_bank

MAX_INPUT_LEN = 3
DIGITS = "0123456789"
UPCOMING_PREVIEW = 5


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    PRESENTING = "presenting"
    AWAITING_NEXT = "awaiting_next"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class ProblemAttempt:
    problem_id: str
    problem: MathProblem
    user_answer: str
    is_correct: bool
    time_taken_ms: int
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class FinishRecord:
    attempts: tuple[ProblemAttempt, ...]
    total_duration_ms: int


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the UI (pure data)."""

    state: SessionState
    current: MathProblem | None
    input_text: str
    queue_length: int
    completed: tuple[MathProblem, ...]
    completed_correct: tuple[bool, ...]  # aligned with completed
    upcoming: tuple[MathProblem, ...]  # head of the waiting queue
    attempts_count: int
    correct_count: int
    error_flash: bool
    presented_for_s: float


class DrillSession:
    """Session state machine for one drill run.

    NOT_STARTED -> PRESENTING -> (AWAITING_NEXT -> PRESENTING)* -> FINISHED

    - Driven only by external events; each call completes before returning.
    - Time is entirely via injected Clock. The AWAITING_NEXT and error-flash
      windows only exist so a UI can animate; with zero delays every
      transition completes inside the triggering call.
    """

    def __init__(
        self,
        config: DrillConfig,
        *,
        clock: Clock,
        advance_delay_s: float = 0.0,
        pass_delay_s: float = 0.0,
        error_flash_s: float = 0.5,
    ) -> None:
        if advance_delay_s < 0 or pass_delay_s < 0 or error_flash_s < 0:
            raise ValueError("transition delays must be >= 0")

        self._config = config
        self._clock = clock
        self._advance_delay_s = float(advance_delay_s)
        self._pass_delay_s = float(pass_delay_s)
        self._error_flash_s = float(error_flash_s)

        self._state = SessionState.NOT_STARTED
        self._queue: deque[MathProblem] = deque()
        self._current: MathProblem | None = None
        self._completed: list[MathProblem] = []  # most recent first
        self._attempts: list[ProblemAttempt] = []  # completion order
        self._input = ""

        self._started_at_s: float | None = None
        self._presented_at_s: float | None = None
        self._next_at_s: float | None = None
        self._error_flash = False
        self._error_flash_until_s: float | None = None

        self._record: FinishRecord | None = None

    @property
    def config(self) -> DrillConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current(self) -> MathProblem | None:
        return self._current

    @property
    def input_text(self) -> str:
        return self._input

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def completed(self) -> tuple[MathProblem, ...]:
        return tuple(self._completed)

    @property
    def attempts(self) -> tuple[ProblemAttempt, ...]:
        return tuple(self._attempts)

    @property
    def error_flash(self) -> bool:
        return self._error_flash

    @property
    def finished(self) -> bool:
        return self._state is SessionState.FINISHED

    @property
    def record(self) -> FinishRecord | None:
        return self._record

    def start(self, bank: list[MathProblem]) -> SessionSnapshot:
        """Install ``bank`` as the queue and present its head.

        An empty bank finishes the session immediately with zero attempts.
        """
        if self._state is not SessionState.NOT_STARTED:
            raise RuntimeError("Session already started")

        self._started_at_s = self._clock.now()
        self._queue = deque(bank)
        logger.debug("Session started with {} problems", len(self._queue))
        self._present_next()
        return self.snapshot()

    def input_digit(self, digit: int | str) -> SessionSnapshot:
        text = str(digit)
        if isinstance(digit, bool) or len(text) != 1 or text not in DIGITS:
            raise ValueError(f"not a decimal digit: {digit!r}")
        if self._state is not SessionState.PRESENTING:
            return self.snapshot()

        self._clear_error_flash()
        # Caps display width, not value: every supported answer fits in 3 digits.
        if len(self._input) < MAX_INPUT_LEN:
            self._input += text
        return self.snapshot()

    def backspace(self) -> SessionSnapshot:
        if self._state is not SessionState.PRESENTING:
            return self.snapshot()
        self._clear_error_flash()
        self._input = self._input[:-1]
        return self.snapshot()

    def pass_problem(self) -> SessionSnapshot:
        """Defer the current problem to the tail of the queue.

        No attempt is recorded. With nothing else queued this is a no-op.
        """
        if self._state is not SessionState.PRESENTING or self._current is None:
            return self.snapshot()
        if not self._queue:
            return self.snapshot()

        passed = self._current
        self._queue.append(passed)
        self._current = None
        self._input = ""
        self._clear_error_flash()
        logger.debug("Passed {}; {} queued", passed.problem_id, len(self._queue))
        self._schedule_next(self._pass_delay_s)
        return self.snapshot()

    def submit(self) -> SessionSnapshot:
        if self._state is not SessionState.PRESENTING or self._current is None:
            return self.snapshot()
        raw = self._input
        if raw == "":
            return self.snapshot()
        try:
            value = int(raw)
        except ValueError:
            return self.snapshot()

        problem = self._current
        is_correct = value == problem.correct_answer

        if not is_correct and self._config.instant_feedback:
            # Free retry: nothing recorded, same problem stays up.
            self._input = ""
            self._error_flash = True
            self._error_flash_until_s = self._clock.now() + self._error_flash_s
            logger.debug("Incorrect answer {!r} for {}; retrying", raw, problem.problem_id)
            return self.snapshot()

        assert self._presented_at_s is not None
        now = self._clock.now()
        attempt = ProblemAttempt(
            problem_id=problem.problem_id,
            problem=problem,
            user_answer=raw,
            is_correct=is_correct,
            time_taken_ms=_to_ms(now - self._presented_at_s),
            timestamp_ms=self._clock.wall_ms(),
        )
        self._attempts.append(attempt)
        self._completed.insert(0, problem)
        self._current = None
        self._input = ""
        self._clear_error_flash()
        logger.debug(
            "Recorded attempt {} for {} (correct={})",
            len(self._attempts),
            problem.problem_id,
            is_correct,
        )
        self._schedule_next(self._advance_delay_s)
        return self.snapshot()

    def update(self) -> SessionSnapshot:
        """Expire timed windows (error flash, pending advance) against the clock."""
        now = self._clock.now()
        if self._error_flash and self._error_flash_until_s is not None and now >= self._error_flash_until_s:
            self._clear_error_flash()
        if self._state is SessionState.AWAITING_NEXT:
            assert self._next_at_s is not None
            if now >= self._next_at_s:
                self._present_next()
        return self.snapshot()

    def finish(self) -> FinishRecord:
        """End the session and return its record.

        Reads the live attempts list at call time, so an early finish always
        includes the most recent terminal submission. Later calls return the
        same record.
        """
        if self._record is not None:
            return self._record

        now = self._clock.now()
        started = now if self._started_at_s is None else self._started_at_s
        self._record = FinishRecord(
            attempts=tuple(self._attempts),
            total_duration_ms=_to_ms(now - started),
        )
        self._state = SessionState.FINISHED
        self._current = None
        self._presented_at_s = None
        self._next_at_s = None
        self._input = ""
        self._clear_error_flash()
        logger.debug(
            "Session finished: {} attempts in {} ms",
            len(self._record.attempts),
            self._record.total_duration_ms,
        )
        return self._record

    def snapshot(self) -> SessionSnapshot:
        presented_for_s = 0.0
        if self._current is not None and self._presented_at_s is not None:
            presented_for_s = max(0.0, self._clock.now() - self._presented_at_s)
        return SessionSnapshot(
            state=self._state,
            current=self._current,
            input_text=self._input,
            queue_length=len(self._queue),
            completed=tuple(self._completed),
            completed_correct=tuple(a.is_correct for a in reversed(self._attempts)),
            upcoming=tuple(islice(self._queue, UPCOMING_PREVIEW)),
            attempts_count=len(self._attempts),
            correct_count=sum(1 for a in self._attempts if a.is_correct),
            error_flash=self._error_flash,
            presented_for_s=presented_for_s,
        )

    def _schedule_next(self, delay_s: float) -> None:
        if delay_s <= 0.0:
            self._present_next()
            return
        self._state = SessionState.AWAITING_NEXT
        self._next_at_s = self._clock.now() + delay_s

    def _present_next(self) -> None:
        self._next_at_s = None
        if not self._queue:
            self._current = None
            self.finish()
            return
        self._current = self._queue.popleft()
        self._presented_at_s = self._clock.now()
        self._input = ""
        self._clear_error_flash()
        self._state = SessionState.PRESENTING

    def _clear_error_flash(self) -> None:
        self._error_flash = False
        self._error_flash_until_s = None


def _to_ms(seconds: float) -> int:
    return int(round(max(0.0, seconds) * 1000.0))


def build_drill_session(
    config: DrillConfig,
    *,
    clock: Clock,
    seed: int | None = None,
    advance_delay_s: float = 0.0,
    pass_delay_s: float = 0.0,
    error_flash_s: float = 0.5,
) -> DrillSession:
    """Factory: generate a bank for ``config`` and start a session on it."""

    session = DrillSession(
        config,
        clock=clock,
        advance_delay_s=advance_delay_s,
        pass_delay_s=pass_delay_s,
        error_flash_s=error_flash_s,
    )
    session.start(generate_bank(config, seed=seed))
    return session

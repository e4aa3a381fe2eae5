from __future__ import annotations

from dataclasses import dataclass

from .config import DrillConfig, GapPosition
from .session import FinishRecord, ProblemAttempt


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Aggregate metrics for a finished session.

    Derived from a FinishRecord on demand; nothing here is stored on the session.
    ``attempted`` can be lower than the configured question count when the
    session was abandoned early.
    """

    attempted: int
    correct: int
    incorrect: int
    accuracy: float
    total_duration_ms: int
    mean_rt_ms: float | None
    median_rt_ms: float | None


@dataclass(frozen=True, slots=True)
class WorksheetItem:
    number: int
    lhs: str
    rhs: str
    user_answer: str
    correct_answer: int
    is_correct: bool
    gap: GapPosition


def summarize(record: FinishRecord) -> SessionSummary:
    attempted = len(record.attempts)
    correct = sum(1 for a in record.attempts if a.is_correct)
    accuracy = 0.0 if attempted == 0 else correct / attempted

    rts_ms = sorted(a.time_taken_ms for a in record.attempts)
    mean_ms: float | None
    median_ms: float | None
    if not rts_ms:
        mean_ms = None
        median_ms = None
    else:
        mean_ms = float(sum(rts_ms)) / float(len(rts_ms))
        mid = len(rts_ms) // 2
        if len(rts_ms) % 2 == 1:
            median_ms = float(rts_ms[mid])
        else:
            median_ms = float(rts_ms[mid - 1] + rts_ms[mid]) / 2.0

    return SessionSummary(
        attempted=attempted,
        correct=correct,
        incorrect=attempted - correct,
        accuracy=accuracy,
        total_duration_ms=int(record.total_duration_ms),
        mean_rt_ms=mean_ms,
        median_rt_ms=median_ms,
    )


def format_duration(ms: int) -> str:
    total_seconds = max(0, int(ms)) // 1000
    return f"{total_seconds // 60}m {total_seconds % 60}s"


def worksheet_item(attempt: ProblemAttempt, number: int) -> WorksheetItem:
    """Rebuild an equation with the learner's answer written into the gap."""

    problem = attempt.problem
    ideal_lhs, _, ideal_rhs = problem.full_equation.partition("=")
    ideal_lhs = ideal_lhs.strip()
    ideal_rhs = ideal_rhs.strip()

    user_value = attempt.user_answer
    if not attempt.is_correct:
        user_value = f"{attempt.user_answer} [{problem.correct_answer}]"

    if problem.gap is GapPosition.RIGHT:
        lhs = ideal_lhs
        rhs = user_value
    else:
        # Left gaps always mask the first operand.
        rest = " ".join(str(p) for p in problem.parts[1:])
        lhs = f"{user_value} {rest}" if rest else user_value
        rhs = ideal_rhs

    return WorksheetItem(
        number=number,
        lhs=lhs,
        rhs=rhs,
        user_answer=attempt.user_answer,
        correct_answer=problem.correct_answer,
        is_correct=attempt.is_correct,
        gap=problem.gap,
    )


def worksheet(record: FinishRecord) -> list[WorksheetItem]:
    return [worksheet_item(a, i + 1) for i, a in enumerate(record.attempts)]


def render_worksheet(record: FinishRecord, config: DrillConfig) -> list[str]:
    """Plain-text worksheet for printing: header, stats, then one line per attempt."""

    s = summarize(record)
    acc_pct = int(round(s.accuracy * 100))
    lines = [
        "Arithmetic Drill Worksheet",
        (
            f"Range: {config.number_range}  Answers up to: {config.answer_range}  "
            f"Steps: {config.steps}  Gap: {config.gap_position.value.lower()}"
        ),
        (
            f"Questions: {s.attempted}  Correct: {s.correct}  Incorrect: {s.incorrect}  "
            f"Accuracy: {acc_pct}%  Time: {format_duration(s.total_duration_ms)}"
        ),
        "",
    ]
    for item in worksheet(record):
        mark = "ok" if item.is_correct else "x"
        lines.append(f"{item.number:>3}. {item.lhs} = {item.rhs}  ({mark})")
    return lines

"""Problem generation for the fill-in-the-blank arithmetic drill.

A bank is an ordered list of ``MathProblem`` built independently from a
``DrillConfig``.  Each problem is a chain of ``steps`` additions and
subtractions whose running result stays within ``[0, answer_range]``.
Generation retries a bounded number of times; when no attempt satisfies the
bounds, the last attempt is accepted anyway so that a session can always
start.  That fallback is tagged on ``GenerationResult`` so tests can tell
the two cases apart.

The generator owns a ``random.Random`` instance.  Passing the same seed
reproduces the same bank; passing ``None`` draws from system entropy.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from .config import DrillConfig, GapPosition

OPERATORS: tuple[str, ...] = ("+", "-")
PLACEHOLDER = "?"
MAX_TRIES = 100
MIN_RANDOM_RANGE = 10


@dataclass(frozen=True, slots=True)
class MathProblem:
    """A single masked equation.

    Attributes:
        problem_id: Unique within the bank it was generated for.
        expression: The unmasked left-hand side, e.g. ``"8 + 3"``.
        full_equation: ``expression`` plus its result, e.g. ``"8 + 3 = 11"``.
        masked_expression: The equation with one value replaced by ``?``.
        answer: The final result of ``expression``.
        correct_answer: The value that fills the placeholder.
        parts: Operands and operators in order, e.g. ``(8, "+", 3)``.
        gap: Where the placeholder sits (never ``MIXED``).
    """

    problem_id: str
    expression: str
    full_equation: str
    masked_expression: str
    answer: int
    correct_answer: int
    parts: tuple[int | str, ...]
    gap: GapPosition

    def fill(self, text: str) -> str:
        """Return the masked equation with ``text`` written into the gap."""
        return self.masked_expression.replace(PLACEHOLDER, text, 1)


class GenerationOutcome(str, Enum):
    CONVERGED = "converged"
    FALLBACK_ACCEPTED = "fallback_accepted"


@dataclass(frozen=True, slots=True)
class GenerationResult:
    problem: MathProblem
    outcome: GenerationOutcome
    tries: int


class ProblemGenerator:
    """Builds problems for one configuration from an owned RNG."""

    def __init__(self, config: DrillConfig, *, seed: int | None = None) -> None:
        self._config = config
        self._rng = random.Random(seed)
        # Distinguishes ids across banks; the index distinguishes them within one.
        self._token = f"{self._rng.getrandbits(32):08x}"

    @property
    def config(self) -> DrillConfig:
        return self._config

    def next_problem(self, index: int) -> MathProblem:
        return self.next_result(index).problem

    def next_result(self, index: int) -> GenerationResult:
        steps, number_range = self._effective_difficulty()
        answer_range = self._config.answer_range

        parts: list[int | str] = []
        result = 0
        converged = False
        tries = 0
        while not converged and tries < MAX_TRIES:
            tries += 1
            parts, result, converged = self._attempt_chain(steps, number_range, answer_range)

        outcome = GenerationOutcome.CONVERGED if converged else GenerationOutcome.FALLBACK_ACCEPTED
        if not converged:
            # The accepted answer may be negative or wider than the 3-digit input
            # buffer. It cannot be typed; the learner passes or finishes instead.
            logger.warning(
                "Problem {} did not converge after {} tries (steps={}, number_range={}, answer_range={}); "
                "accepting last attempt",
                index,
                tries,
                steps,
                number_range,
                answer_range,
            )

        gap = self._resolve_gap()
        problem = self._build_problem(index=index, parts=parts, result=result, gap=gap)
        return GenerationResult(problem=problem, outcome=outcome, tries=tries)

    def _effective_difficulty(self) -> tuple[int, int]:
        steps = self._config.steps
        number_range = self._config.number_range
        # answer_range is never scaled so answers keep a consistent width.
        if self._config.difficulty_random and self._rng.random() > 0.5:
            steps = max(1, self._randint(1, steps))
            number_range = max(MIN_RANDOM_RANGE, self._randint(MIN_RANDOM_RANGE, number_range))
        return steps, number_range

    def _attempt_chain(
        self, steps: int, number_range: int, answer_range: int
    ) -> tuple[list[int | str], int, bool]:
        current = self._randint(1, min(number_range, answer_range))
        parts: list[int | str] = [current]

        for _ in range(steps):
            op = OPERATORS[self._randint(0, len(OPERATORS) - 1)]
            operand = self._randint(1, number_range)
            if op == "+":
                if current + operand > answer_range:
                    operand = self._randint(1, max(1, answer_range - current))
                current += operand
            else:
                if current - operand < 0:
                    operand = self._randint(1, current)
                current -= operand
            parts.extend((op, operand))

            if current < 0 or current > answer_range:
                return parts, current, False

        return parts, current, True

    def _resolve_gap(self) -> GapPosition:
        gap = self._config.gap_position
        if gap is GapPosition.MIXED:
            return GapPosition.LEFT if self._rng.random() > 0.5 else GapPosition.RIGHT
        return gap

    def _build_problem(
        self, *, index: int, parts: list[int | str], result: int, gap: GapPosition
    ) -> MathProblem:
        expression = " ".join(str(p) for p in parts)
        if gap is GapPosition.RIGHT:
            masked = f"{expression} = {PLACEHOLDER}"
            correct_answer = result
        else:
            # Only the first operand is ever masked on the left.
            rest = " ".join(str(p) for p in parts[1:])
            lhs = f"{PLACEHOLDER} {rest}" if rest else PLACEHOLDER
            masked = f"{lhs} = {result}"
            correct_answer = int(parts[0])

        return MathProblem(
            problem_id=f"p-{self._token}-{index}",
            expression=expression,
            full_equation=f"{expression} = {result}",
            masked_expression=masked,
            answer=result,
            correct_answer=correct_answer,
            parts=tuple(parts),
            gap=gap,
        )

    def _randint(self, lo: int, hi: int) -> int:
        # An empty interval collapses to its lower bound, so operands stay >= 1.
        if hi < lo:
            return lo
        return self._rng.randint(lo, hi)


def generate_bank(config: DrillConfig, *, seed: int | None = None) -> list[MathProblem]:
    """Generate exactly ``config.total_questions`` problems in presentation order."""

    generator = ProblemGenerator(config, seed=seed)
    bank = [generator.next_problem(i) for i in range(config.total_questions)]
    logger.debug("Generated bank of {} problems", len(bank))
    return bank

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

CONFIG_STORE_ENV = "MATHETRIS_CONFIG_PATH"

NUMBER_RANGE_CHOICES: tuple[int, ...] = (10, 20, 50, 100)
ANSWER_RANGE_CHOICES: tuple[int, ...] = (10, 20, 30, 50, 100)
STEPS_CHOICES: tuple[int, ...] = (1, 2, 3, 4, 5)
TARGET_TIME_RANGE_S: tuple[int, int] = (3, 20)
TOTAL_QUESTIONS_RANGE: tuple[int, int] = (5, 100)

MAX_STEPS = 5
# Answers are typed into a 3-character buffer.
MAX_RANGE = 999


class GapPosition(str, Enum):
    RIGHT = "RIGHT"  # a + b = ?
    LEFT = "LEFT"  # ? + b = c
    MIXED = "MIXED"  # resolved per problem


@dataclass(frozen=True, slots=True)
class DrillConfig:
    """Difficulty and pacing settings for one drill session.

    ``target_time_s`` is a pacing hint for the UI only; the generator and the
    session never read it.
    """

    number_range: int = 20
    steps: int = 1
    gap_position: GapPosition = GapPosition.RIGHT
    answer_range: int = 20
    difficulty_random: bool = False
    total_questions: int = 20
    target_time_s: float = 5.0
    instant_feedback: bool = True
    sound_enabled: bool = True

    def __post_init__(self) -> None:
        if not (1 <= self.number_range <= MAX_RANGE):
            raise ValueError(f"number_range must be in [1, {MAX_RANGE}]")
        if not (1 <= self.steps <= MAX_STEPS):
            raise ValueError(f"steps must be in [1, {MAX_STEPS}]")
        if not (1 <= self.answer_range <= MAX_RANGE):
            raise ValueError(f"answer_range must be in [1, {MAX_RANGE}]")
        if self.total_questions <= 0:
            raise ValueError("total_questions must be > 0")
        if self.target_time_s <= 0:
            raise ValueError("target_time_s must be > 0")
        if not isinstance(self.gap_position, GapPosition):
            object.__setattr__(self, "gap_position", GapPosition(self.gap_position))

    def with_changes(self, **changes: Any) -> "DrillConfig":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["gap_position"] = self.gap_position.value
        return data

    @classmethod
    def from_dict(cls, data: object) -> "DrillConfig":
        """Build a config from loosely-typed data, falling back to defaults per field."""

        base = cls()
        if not isinstance(data, dict):
            return base

        try:
            gap = GapPosition(str(data.get("gap_position", base.gap_position.value)).upper())
        except ValueError:
            gap = base.gap_position

        return cls(
            number_range=_clamp_int(data.get("number_range"), base.number_range, 1, NUMBER_RANGE_CHOICES[-1]),
            steps=_clamp_int(data.get("steps"), base.steps, STEPS_CHOICES[0], STEPS_CHOICES[-1]),
            gap_position=gap,
            answer_range=_clamp_int(data.get("answer_range"), base.answer_range, 1, ANSWER_RANGE_CHOICES[-1]),
            difficulty_random=_as_bool(data.get("difficulty_random"), base.difficulty_random),
            total_questions=_clamp_int(
                data.get("total_questions"),
                base.total_questions,
                TOTAL_QUESTIONS_RANGE[0],
                TOTAL_QUESTIONS_RANGE[1],
            ),
            target_time_s=float(
                _clamp_int(data.get("target_time_s"), int(base.target_time_s), *TARGET_TIME_RANGE_S)
            ),
            instant_feedback=_as_bool(data.get("instant_feedback"), base.instant_feedback),
            sound_enabled=_as_bool(data.get("sound_enabled"), base.sound_enabled),
        )


def _as_bool(value: object, fallback: bool) -> bool:
    # Only real JSON booleans count; "false" or 0 fall back to the default.
    return value if isinstance(value, bool) else fallback


def _clamp_int(value: object, fallback: int, lo: int, hi: int) -> int:
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback
    return max(lo, min(hi, parsed))


def next_choice(choices: tuple[int, ...], current: int, delta: int) -> int:
    """Step through a choice table, snapping unknown values to the nearest entry."""

    if current in choices:
        idx = choices.index(current)
    else:
        idx = min(range(len(choices)), key=lambda i: abs(choices[i] - current))
    idx = max(0, min(len(choices) - 1, idx + delta))
    return choices[idx]


class ConfigStore:
    """Remembers the last-used drill setup between launches.

    Only the configuration is stored; sessions themselves live in memory.
    """

    _version = 1

    def __init__(self, path: Path) -> None:
        self._path = path
        self._config = DrillConfig()
        self._load()

    @classmethod
    def default_path(cls) -> Path:
        explicit = os.environ.get(CONFIG_STORE_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path.home() / ".mathetris_config.json"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> DrillConfig:
        return self._config

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable config store {}: {}", self._path, exc)
            return
        if not isinstance(payload, dict):
            return
        self._config = DrillConfig.from_dict(payload.get("config"))

    def save(self, config: DrillConfig) -> None:
        self._config = config
        payload = {
            "version": self._version,
            "config": config.to_dict(),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Could not save config store {}: {}", self._path, exc)

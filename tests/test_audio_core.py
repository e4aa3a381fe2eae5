from __future__ import annotations

import os
from dataclasses import dataclass

import pytest

os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

from mathetris.audio import (  # noqa: E402
    AMP,
    SAMPLE_RATE,
    Cue,
    DrillAudio,
    build_cue_pcm,
    cues_between,
    mix_pcm,
    render_tone_pcm,
)
from mathetris.config import DrillConfig  # noqa: E402
from mathetris.session import build_drill_session  # noqa: E402


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def wall_ms(self) -> int:
        return int(round(self.t * 1000.0))


def test_tone_length_bounds_and_fades() -> None:
    pcm = render_tone_pcm(440.0, 0.1, gain=0.5)
    assert len(pcm) == int(SAMPLE_RATE * 0.1)
    assert pcm[0] == 0
    assert pcm[-1] == 0
    assert max(abs(v) for v in pcm) <= int(0.5 * AMP)
    assert max(abs(v) for v in pcm) > int(0.4 * AMP)


@pytest.mark.parametrize("shape", ["sine", "triangle", "sawtooth"])
def test_sweeps_stay_within_gain(shape: str) -> None:
    pcm = render_tone_pcm(150.0, 0.3, gain=0.1, end_frequency_hz=80.0, shape=shape)
    assert len(pcm) == int(SAMPLE_RATE * 0.3)
    assert max(abs(v) for v in pcm) <= int(0.1 * AMP) + 1


def test_unknown_waveform_rejected() -> None:
    with pytest.raises(ValueError):
        render_tone_pcm(440.0, 0.01, gain=0.1, shape="square")


def test_decay_quietens_the_tail() -> None:
    pcm = render_tone_pcm(523.25, 0.5, gain=0.5, decay=True)
    n = len(pcm)
    head = max(abs(v) for v in pcm[: n // 5])
    tail = max(abs(v) for v in pcm[-n // 5 :])
    assert tail < head / 5


def test_mix_pads_and_clamps() -> None:
    loud = render_tone_pcm(200.0, 0.05, gain=1.0)
    short = render_tone_pcm(200.0, 0.02, gain=1.0)
    mixed = mix_pcm((loud, short))
    assert len(mixed) == len(loud)
    assert max(mixed) <= AMP
    assert min(mixed) >= -AMP
    assert mix_pcm(()) == mix_pcm([])
    assert len(mix_pcm(())) == 0


def test_every_cue_has_a_sound() -> None:
    pcm = build_cue_pcm()
    assert set(pcm) == set(Cue)
    assert all(len(p) > 0 for p in pcm.values())


def test_cues_follow_session_events() -> None:
    cfg = DrillConfig(number_range=10, answer_range=20, total_questions=3, instant_feedback=True)
    session = build_drill_session(cfg, clock=FakeClock(), seed=40)

    first = session.snapshot()
    assert cues_between(None, first) == (Cue.SPAWN,)
    assert cues_between(first, first) == ()

    problem = session.current
    assert problem is not None
    for ch in str(problem.correct_answer + 1):
        session.input_digit(ch)
    wrong = session.submit()
    assert cues_between(first, wrong) == (Cue.INCORRECT,)

    for ch in str(problem.correct_answer):
        session.input_digit(ch)
    right = session.submit()
    assert cues_between(wrong, right) == (Cue.CORRECT, Cue.SPAWN)

    passed = session.pass_problem()
    assert cues_between(right, passed) == (Cue.SPAWN,)


def test_deferred_wrong_answer_sounds_incorrect() -> None:
    cfg = DrillConfig(number_range=10, answer_range=20, total_questions=2, instant_feedback=False)
    session = build_drill_session(cfg, clock=FakeClock(), seed=41)
    before = session.snapshot()
    problem = session.current
    assert problem is not None
    for ch in str(problem.correct_answer + 1):
        session.input_digit(ch)
    after = session.submit()
    assert cues_between(before, after) == (Cue.INCORRECT, Cue.SPAWN)


def test_muted_audio_plays_nothing() -> None:
    audio = DrillAudio(muted=True)
    assert audio.muted
    assert not any(audio.play(cue) for cue in Cue)

    audio.set_muted(False)
    assert not audio.muted
    # With no usable mixer every call is a silent no-op.
    assert audio.play(Cue.SPAWN) is audio.available
    audio.stop()

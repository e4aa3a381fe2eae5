"""Generated sound cues for the drill screen.

Everything here is local tone synthesis; nothing is loaded from disk. The
session core never touches audio: the UI diffs consecutive snapshots with
``cues_between`` and plays whatever that returns.
"""

from __future__ import annotations

import math
from array import array
from collections.abc import Iterable
from enum import Enum

import pygame
from loguru import logger

from .session import SessionSnapshot

SAMPLE_RATE = 22050
AMP = 32767
FADE_S = 0.008


class Cue(str, Enum):
    SPAWN = "spawn"
    CORRECT = "correct"
    INCORRECT = "incorrect"


def _wave(shape: str, phase: float) -> float:
    # phase is in cycles; only the fractional part matters.
    frac = phase - math.floor(phase)
    if shape == "sine":
        return math.sin(2.0 * math.pi * frac)
    if shape == "triangle":
        return 4.0 * abs(frac - 0.5) - 1.0
    if shape == "sawtooth":
        return 2.0 * frac - 1.0
    raise ValueError(f"unknown waveform: {shape}")


def render_tone_pcm(
    frequency_hz: float,
    duration_s: float,
    *,
    gain: float,
    end_frequency_hz: float | None = None,
    shape: str = "sine",
    decay: bool = False,
) -> array[int]:
    """Render a mono 16-bit tone.

    With ``end_frequency_hz`` the pitch glides exponentially from
    ``frequency_hz`` to it. ``decay`` adds an exponential fade to 1% over the
    whole duration on top of the short click-free fade in/out.
    """

    sample_count = max(1, int(SAMPLE_RATE * duration_s))
    fade_n = max(1, int(SAMPLE_RATE * FADE_S))
    f0 = float(frequency_hz)
    f1 = f0 if end_frequency_hz is None else float(end_frequency_hz)
    out = array("h")
    phase = 0.0
    for idx in range(sample_count):
        envelope = 1.0
        if idx < fade_n:
            envelope = idx / float(fade_n)
        tail = sample_count - idx - 1
        if tail < fade_n:
            envelope = min(envelope, tail / float(fade_n))
        t = idx / float(sample_count)
        if decay:
            envelope *= 0.01**t
        sample = _wave(shape, phase) * gain * max(0.0, envelope)
        out.append(int(max(-1.0, min(1.0, sample)) * AMP))
        phase += f0 * (f1 / f0) ** t / SAMPLE_RATE
    return out


def mix_pcm(parts: Iterable[array[int]]) -> array[int]:
    """Sum tracks sample by sample, padding shorter ones with silence."""

    tracks = list(parts)
    length = max((len(p) for p in tracks), default=0)
    out = array("h", [0] * length)
    for idx in range(length):
        total = sum(p[idx] for p in tracks if idx < len(p))
        out[idx] = max(-AMP, min(AMP, total))
    return out


def build_cue_pcm() -> dict[Cue, array[int]]:
    return {
        # Rising triangle blip as a new problem appears.
        Cue.SPAWN: render_tone_pcm(300.0, 0.10, gain=0.02, end_frequency_hz=600.0, shape="triangle"),
        # C5 + E5 chime.
        Cue.CORRECT: mix_pcm(
            (
                render_tone_pcm(523.25, 0.5, gain=0.1, decay=True),
                render_tone_pcm(659.25, 0.5, gain=0.1, decay=True),
            )
        ),
        # Falling sawtooth buzz.
        Cue.INCORRECT: render_tone_pcm(150.0, 0.3, gain=0.1, end_frequency_hz=80.0, shape="sawtooth"),
    }


def cues_between(prev: SessionSnapshot | None, snap: SessionSnapshot) -> tuple[Cue, ...]:
    """Cues implied by moving from ``prev`` to ``snap``."""

    cues: list[Cue] = []
    prev_attempts = 0 if prev is None else prev.attempts_count
    if snap.attempts_count > prev_attempts and snap.completed_correct:
        cues.append(Cue.CORRECT if snap.completed_correct[0] else Cue.INCORRECT)
    elif snap.error_flash and (prev is None or not prev.error_flash):
        cues.append(Cue.INCORRECT)

    if snap.current is not None:
        prev_id = None if prev is None or prev.current is None else prev.current.problem_id
        if snap.current.problem_id != prev_id:
            cues.append(Cue.SPAWN)
    return tuple(cues)


class DrillAudio:
    """Pygame mixer wrapper that plays the drill cues.

    If the mixer cannot start (no audio device) the object stays usable and
    every call is a no-op.
    """

    def __init__(self, *, muted: bool = False) -> None:
        self._available = False
        self._muted = bool(muted)
        self._sounds: dict[Cue, pygame.mixer.Sound] = {}
        self._channels: dict[Cue, pygame.mixer.Channel] = {}

        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=SAMPLE_RATE, size=-16, channels=1, buffer=512)
            pygame.mixer.set_num_channels(max(8, int(pygame.mixer.get_num_channels())))
            self._sounds = {cue: pygame.mixer.Sound(buffer=pcm.tobytes()) for cue, pcm in build_cue_pcm().items()}
            self._channels = {cue: pygame.mixer.Channel(idx) for idx, cue in enumerate(Cue)}
            self._available = True
        except Exception as exc:
            logger.info("Audio disabled: {}", exc)
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    @property
    def muted(self) -> bool:
        return self._muted

    def set_muted(self, muted: bool) -> None:
        self._muted = bool(muted)
        if self._muted:
            self.stop()

    def play(self, cue: Cue) -> bool:
        """Play ``cue``; returns whether a sound was actually started."""

        if self._muted or not self._available:
            return False
        self._channels[cue].play(self._sounds[cue])
        return True

    def play_all(self, cues: Iterable[Cue]) -> None:
        for cue in cues:
            self.play(cue)

    def stop(self) -> None:
        if not self._available:
            return
        for channel in self._channels.values():
            channel.stop()

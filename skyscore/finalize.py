"""Post-pass that keeps rhythm and melody density inside a tempo-relative band.

The finalizer only ever adds events. Counts below the band minimum are topped
up with seeded rhythm hits on a free beat grid and seeded melody notes that
continue the melodic walk from their predecessor, keeping the surface's
``step_bias`` and ``leap_cap``; counts above the band are reported, never trimmed.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass

from .composition import (
    RHYTHM_PITCHES,
    Composition,
    Event,
    Segment,
    bounded_move,
    event_sort_key,
    melody_interval,
)
from .controls import ControlSurface
from .rng import SeededGenerator, derive

_LOGGER = logging.getLogger("skyscore.finalize")

BAND_LOW = 0.85
BAND_HIGH = 1.15
RHYTHM_BASE_PER_BEAT = 1.0
RHYTHM_SPAN_PER_BEAT = 1.5
MELODY_BASE_PER_BEAT = 0.5
MELODY_SPAN_PER_BEAT = 1.0
FILL_CENTER = 60
FILL_PULL = 0.75


@dataclass(frozen=True, slots=True)
class RoleBand:
    role: str
    target_per_beat: float
    minimum: int
    maximum: int
    before: int
    after: int

    @property
    def added(self) -> int:
        return self.after - self.before

    @property
    def within_band(self) -> bool:
        return self.minimum <= self.after <= self.maximum


@dataclass(frozen=True, slots=True)
class FinalizeReport:
    bpm: float
    beats: float
    rhythm: RoleBand
    melody: RoleBand

    @property
    def added(self) -> int:
        return self.rhythm.added + self.melody.added

    @property
    def within_band(self) -> bool:
        return self.rhythm.within_band and self.melody.within_band


def bpm_for(controls: ControlSurface) -> float:
    return 60.0 + 80.0 * controls.tempo_norm


def band_for(target_per_beat: float, beats: float) -> tuple[int, int]:
    expected = target_per_beat * beats
    return math.floor(expected * BAND_LOW), math.ceil(expected * BAND_HIGH)


def _shuffled(items: list[int], rng: SeededGenerator) -> list[int]:
    shuffled = list(items)
    for index in range(len(shuffled) - 1, 0, -1):
        swap = int(rng.next() * (index + 1))
        shuffled[index], shuffled[swap] = shuffled[swap], shuffled[index]
    return shuffled


def _rhythm_fill(
    existing: list[Event], missing: int, duration: float, bpm: float, rng: SeededGenerator
) -> list[Event]:
    step = 60.0 / bpm / 4.0
    grid_size = max(1, math.ceil(duration / step))
    taken = {round(event.onset / step) for event in existing}
    free = [index for index in range(grid_size) if index not in taken and index * step < duration]
    # Eighth positions first, then the remaining sixteenths.
    order = _shuffled([i for i in free if i % 2 == 0], rng) + _shuffled(
        [i for i in free if i % 2 == 1], rng
    )
    added: list[Event] = []
    for count in range(missing):
        if count < len(order):
            onset = order[count] * step
        else:
            onset = rng.uniform(0.0, duration)
        length = max(0.03, min(step * 0.9, duration - onset))
        pitch = rng.randint(*RHYTHM_PITCHES)
        velocity = 0.6 + 0.2 * rng.next()
        added.append(Event("rhythm", pitch, onset, length, velocity, "drums"))
    return added


def _walk_pitch(
    melody: list[Event], index: int, controls: ControlSurface, rng: SeededGenerator
) -> int:
    """Continue the walk from the note before ``index``, leaning toward the note after it."""
    before = melody[index - 1].pitch if index > 0 else None
    after = melody[index].pitch if index < len(melody) else None
    base = before if before is not None else after if after is not None else FILL_CENTER
    size = melody_interval(rng, controls.step_bias, controls.leap_cap)
    if before is not None and after is not None and after != base:
        toward = 1 if after > base else -1
        direction = toward if rng.chance(FILL_PULL) else -toward
    else:
        direction = 1 if rng.chance(0.5) else -1
    return bounded_move(base, direction, size)


def _melody_fill(
    existing: list[Event],
    missing: int,
    duration: float,
    bpm: float,
    controls: ControlSurface,
    rng: SeededGenerator,
) -> list[Event]:
    melody = sorted(existing, key=event_sort_key)
    onsets = [event.onset for event in melody]
    beat = 60.0 / bpm
    # Onsets are drawn up front and filled left to right, so consecutive filler
    # notes chain off each other rather than off the raw line.
    fill_onsets = sorted(rng.uniform(0.0, duration) for _ in range(missing))
    added: list[Event] = []
    for onset in fill_onsets:
        position = bisect.bisect_right(onsets, onset)
        pitch = _walk_pitch(melody, position, controls, rng)
        length = max(0.05, min(beat * 0.5, duration - onset))
        event = Event("melody", pitch, onset, length, 0.55, "lead")
        onsets.insert(position, onset)
        melody.insert(position, event)
        added.append(event)
    return added


def _repartition(segments: tuple[Segment, ...], events: list[Event]) -> tuple[Segment, ...]:
    buckets: list[list[Event]] = [[] for _ in segments]
    starts = [segment.start for segment in segments]
    for event in events:
        index = max(0, bisect.bisect_right(starts, event.onset) - 1)
        buckets[index].append(event)
    return tuple(
        Segment(
            segment.kind,
            segment.label,
            segment.start,
            segment.end,
            tuple(sorted(bucket, key=event_sort_key)),
        )
        for segment, bucket in zip(segments, buckets)
    )


def finalize_composition(
    composition: Composition, controls: ControlSurface
) -> tuple[Composition, FinalizeReport]:
    """Top rhythm and melody counts up to their band minimum and re-segment.

    Tempo comes from ``controls`` and the per-beat targets from the
    composition's vector; both filler streams derive from ``controls.hash``.
    """
    vector = composition.vector
    bpm = bpm_for(controls)
    seed = controls.hash
    duration = composition.duration
    beats = bpm / 60.0 * duration
    events = list(composition.events)
    rhythm = [event for event in events if event.role == "rhythm"]
    melody = [event for event in events if event.role == "melody"]

    rhythm_target = RHYTHM_BASE_PER_BEAT + RHYTHM_SPAN_PER_BEAT * vector.rhythm_density
    melody_target = MELODY_BASE_PER_BEAT + MELODY_SPAN_PER_BEAT * vector.melodic_activity
    rhythm_min, rhythm_max = band_for(rhythm_target, beats)
    melody_min, melody_max = band_for(melody_target, beats)

    added_rhythm = _rhythm_fill(
        rhythm, max(0, rhythm_min - len(rhythm)), duration, bpm, derive(seed, "finalize.rhythm")
    )
    added_melody = _melody_fill(
        melody,
        max(0, melody_min - len(melody)),
        duration,
        bpm,
        controls,
        derive(seed, "finalize.melody"),
    )
    combined = sorted(events + added_rhythm + added_melody, key=event_sort_key)
    report = FinalizeReport(
        bpm=bpm,
        beats=beats,
        rhythm=RoleBand(
            "rhythm", rhythm_target, rhythm_min, rhythm_max, len(rhythm), len(rhythm) + len(added_rhythm)
        ),
        melody=RoleBand(
            "melody", melody_target, melody_min, melody_max, len(melody), len(melody) + len(added_melody)
        ),
    )
    if not report.within_band:
        _LOGGER.info(
            "Density above band after finalize: rhythm=%d/%d melody=%d/%d",
            report.rhythm.after,
            rhythm_max,
            report.melody.after,
            melody_max,
        )
    finalized = composition.with_segments(_repartition(composition.segments, combined))
    return finalized, report

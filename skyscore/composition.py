"""Seeded symbolic composer.

A composition is a list of contiguous segments covering ``[0, duration]``; each
segment owns the events whose onsets fall inside it. The four structure modes
only differ in how they cut the timeline and how densely they populate each
segment. All randomness comes from one stream derived from the control hash.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Literal, get_args

from .controls import (
    AstroSummary,
    CompositionVector,
    ControlSurface,
    PlanetCluster,
)
from .errors import InvalidRequestError
from .rng import SeededGenerator, derive

_LOGGER = logging.getLogger("skyscore.composition")

Role = Literal["melody", "rhythm", "harmony"]
CompositionMode = Literal["house-order", "cluster", "elemental", "lunar"]
COMPOSITION_MODES: tuple[CompositionMode, ...] = get_args(CompositionMode)

ROLE_ORDER: Mapping[Role, int] = MappingProxyType({"melody": 0, "rhythm": 1, "harmony": 2})

PITCH_FLOOR = 48
PITCH_CEILING = 84
RHYTHM_PITCHES = (36, 39)
HARMONY_PITCHES = (48, 59)

HOUSE_COUNT = 12
CLUSTER_MIN_SECONDS = 3.0
CLUSTER_MAX_SECONDS = 15.0
ELEMENT_SHARE_FLOOR = 0.05
LUNAR_PHASES: tuple[str, ...] = ("new", "waxing", "full", "waning")
_BOUNDARY_EPSILON = 1e-6

DEFAULT_CLUSTERS: tuple[PlanetCluster, ...] = (
    PlanetCluster(id="cluster-1", planets=("sun", "mercury", "venus")),
    PlanetCluster(id="cluster-2", planets=("mars", "jupiter")),
    PlanetCluster(id="cluster-3", planets=("saturn", "moon")),
)

# Relative note lengths per rhythm template; selected by rhythm_template_id mod 8.
RHYTHM_TEMPLATES: tuple[tuple[float, ...], ...] = (
    (1.0,),
    (0.5, 0.5),
    (1.0, 0.5, 0.5),
    (0.75, 0.25, 0.5, 0.5),
    (0.5, 0.25, 0.25, 1.0),
    (0.25, 0.25, 0.5, 0.75, 0.25),
    (0.375, 0.375, 0.25, 0.5, 0.5),
    (0.25, 0.5, 0.125, 0.625, 0.5),
)


@dataclass(frozen=True, slots=True)
class Event:
    role: Role
    pitch: int
    onset: float
    duration: float
    velocity: float
    instrument: str

    @property
    def end(self) -> float:
        return self.onset + self.duration


def event_sort_key(event: Event) -> tuple[float, int, int]:
    return (event.onset, ROLE_ORDER[event.role], event.pitch)


@dataclass(frozen=True, slots=True)
class Segment:
    kind: str
    label: str
    start: float
    end: float
    events: tuple[Event, ...] = ()

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, onset: float, *, last: bool = False) -> bool:
        if last:
            return self.start <= onset <= self.end
        return self.start <= onset < self.end

    def count(self, role: Role) -> int:
        return sum(1 for event in self.events if event.role == role)


@dataclass(frozen=True, slots=True)
class Composition:
    mode: CompositionMode
    duration: float
    segments: tuple[Segment, ...]
    vector: CompositionVector

    @property
    def events(self) -> tuple[Event, ...]:
        flat = [event for segment in self.segments for event in segment.events]
        return tuple(sorted(flat, key=event_sort_key))

    def count(self, role: Role) -> int:
        return sum(segment.count(role) for segment in self.segments)

    def with_segments(self, segments: tuple[Segment, ...]) -> "Composition":
        return replace(self, segments=segments)


@dataclass(frozen=True, slots=True)
class _ElementProfile:
    roles: tuple[Role, ...]
    note_length: float
    rate: float
    instrument: str
    harmony_shift: int = 0


ELEMENT_PROFILES: Mapping[str, _ElementProfile] = MappingProxyType(
    {
        "fire": _ElementProfile(("rhythm", "melody"), 0.25, 4.0, "pluck"),
        "earth": _ElementProfile(("melody", "harmony"), 1.0, 1.0, "bass", harmony_shift=-12),
        "air": _ElementProfile(("melody",), 0.5, 2.0, "flute"),
        "water": _ElementProfile(("harmony", "melody"), 2.0, 0.5, "pad"),
    }
)


def melody_interval(rng: SeededGenerator, step_bias: float, leap_cap: int) -> int:
    """Semitone size of one melodic move: a 1-2 step with probability ``step_bias``, else a leap."""
    if rng.chance(step_bias):
        return rng.randint(1, 2)
    if leap_cap >= 3:
        return rng.randint(3, leap_cap)
    return rng.randint(1, max(1, leap_cap))


def bounded_move(base: int, direction: int, size: int) -> int:
    """Move ``size`` semitones from ``base``, reflecting off the melody range."""
    pitch = base + direction * size
    if pitch > PITCH_CEILING or pitch < PITCH_FLOOR:
        pitch = base - direction * size
    return min(max(pitch, PITCH_FLOOR), PITCH_CEILING)


class _MelodyLine:
    """Random walk that follows a rise-and-release contour.

    Each move steps (1-2 semitones) with probability ``step_bias`` and leaps
    otherwise; the direction leans toward the contour target.
    """

    def __init__(self, rng: SeededGenerator, controls: ControlSurface, vector: CompositionVector):
        self._rng = rng
        self._step_bias = controls.step_bias
        self._leap_cap = controls.leap_cap
        self._center = 60 + round((vector.brightness - 0.5) * 12)
        self._amplitude = 3.0 + 9.0 * controls.arc_shape
        self._pitch = self._center

    def target(self, position: float) -> float:
        return self._center + self._amplitude * math.sin(math.pi * min(max(position, 0.0), 1.0))

    def next(self, position: float) -> int:
        rng = self._rng
        distance = self.target(position) - self._pitch
        pull = 0.5 + min(0.45, abs(distance) / 8.0)
        toward = 1 if distance >= 0 else -1
        direction = toward if rng.chance(pull) else -toward
        size = melody_interval(rng, self._step_bias, self._leap_cap)
        self._pitch = bounded_move(self._pitch, direction, size)
        return self._pitch


@dataclass(slots=True)
class _Builder:
    controls: ControlSurface
    vector: CompositionVector
    duration: float
    rng: SeededGenerator
    melody: _MelodyLine

    @property
    def rhythm_template(self) -> tuple[float, ...]:
        return RHYTHM_TEMPLATES[self.controls.rhythm_template_id % len(RHYTHM_TEMPLATES)]

    def position(self, onset: float) -> float:
        return onset / self.duration if self.duration > 0 else 0.0

    def melody_event(self, onset: float, length: float, velocity: float, instrument: str) -> Event:
        return Event("melody", self.melody.next(self.position(onset)), onset, length, velocity, instrument)

    def rhythm_event(
        self, onset: float, slot: float, index: int, velocity: float, end: float, instrument: str
    ) -> Event:
        rng = self.rng
        if rng.chance(self.controls.syncopation_bias):
            onset = min(onset + slot * 0.5, end - 1e-6)
        template = self.rhythm_template
        length = max(0.03, slot * template[index % len(template)])
        pitch = rng.randint(*RHYTHM_PITCHES)
        return Event("rhythm", pitch, onset, length, velocity, instrument)

    def harmony_event(
        self, onset: float, length: float, velocity: float, instrument: str, shift: int = 0
    ) -> Event:
        pitch = self.rng.randint(*HARMONY_PITCHES) + shift
        return Event("harmony", pitch, onset, length, velocity, instrument)

    def fill_slots(
        self,
        start: float,
        end: float,
        slots: int,
        *,
        velocity: float = 0.7,
        instruments: tuple[str, str, str] = ("lead", "drums", "pad"),
    ) -> list[Event]:
        """Populate ``slots`` evenly spaced positions with melody/rhythm/harmony draws."""
        vector = self.vector
        slot = (end - start) / slots
        events: list[Event] = []
        for index in range(slots):
            onset = start + index * slot
            if self.rng.next() < vector.melodic_activity:
                events.append(self.melody_event(onset, slot * 0.9, velocity, instruments[0]))
            if self.rng.next() < vector.rhythm_density:
                accent = velocity + (0.15 if index == 0 else 0.0)
                events.append(
                    self.rhythm_event(onset, slot, index, min(accent, 1.0), end, instruments[1])
                )
            if self.rng.next() < vector.harmonic_tension:
                events.append(
                    self.harmony_event(onset, slot * 2.0, velocity * 0.65, instruments[2])
                )
        return events

    def ensure_melody(self, events: list[Event], start: float, end: float, instrument: str) -> None:
        if end <= start or any(event.role == "melody" for event in events):
            return
        onset = start + (end - start) / 2.0
        length = min(0.6, (end - start) / 2.0)
        events.append(self.melody_event(onset, length, 0.65, instrument))

    def segment(self, kind: str, label: str, start: float, end: float, events: list[Event]) -> Segment:
        self.ensure_melody(events, start, end, "lead")
        return Segment(kind, label, start, end, tuple(sorted(events, key=event_sort_key)))


def _house_slots(activity: float, seconds: float) -> int:
    return max(2, math.floor(activity * 8 * seconds / 5.0))


def _boundaries(duration: float, shares: list[float]) -> list[tuple[float, float]]:
    """Contiguous ``[start, end)`` pairs whose last end is exactly ``duration``."""
    total = sum(shares)
    pairs: list[tuple[float, float]] = []
    cursor = 0.0
    running = 0.0
    for index, share in enumerate(shares):
        running += share
        end = duration if index == len(shares) - 1 else duration * running / total
        pairs.append((cursor, end))
        cursor = end
    return pairs


def _compose_house_order(builder: _Builder, astro: AstroSummary) -> list[Segment]:
    _ = astro
    segments = []
    bounds = _boundaries(builder.duration, [1.0] * HOUSE_COUNT)
    for index, (start, end) in enumerate(bounds):
        slots = _house_slots(builder.vector.melodic_activity, end - start)
        events = builder.fill_slots(start, end, slots)
        segments.append(builder.segment("house", f"house-{index + 1}", start, end, events))
    return segments


def _cluster_layout(
    duration: float, clusters: tuple[PlanetCluster, ...]
) -> list[tuple[PlanetCluster | None, float, float]]:
    total_size = sum(cluster.size for cluster in clusters)
    layout: list[tuple[PlanetCluster | None, float, float]] = []
    cursor = 0.0
    for cluster in clusters:
        if duration - cursor <= _BOUNDARY_EPSILON:
            _LOGGER.debug("Dropping cluster %s: timeline already full", cluster.id)
            continue
        seconds = duration * cluster.size / total_size
        seconds = min(max(seconds, CLUSTER_MIN_SECONDS), CLUSTER_MAX_SECONDS)
        end = min(cursor + seconds, duration)
        layout.append((cluster, cursor, end))
        cursor = end
    if duration - cursor > _BOUNDARY_EPSILON:
        layout.append((None, cursor, duration))
    elif layout:
        cluster, start, _ = layout[-1]
        layout[-1] = (cluster, start, duration)
    return layout


def _compose_cluster(builder: _Builder, astro: AstroSummary) -> list[Segment]:
    clusters = astro.clusters
    if not clusters:
        _LOGGER.info("No planetary clusters available; using default cluster sizes")
        clusters = DEFAULT_CLUSTERS
    vector = builder.vector
    segments = []
    for cluster, start, end in _cluster_layout(builder.duration, clusters):
        slots = _house_slots(vector.melodic_activity, end - start)
        if cluster is None:
            events = builder.fill_slots(start, end, slots, velocity=0.6)
            segments.append(builder.segment("fill", "fill", start, end, events))
            continue
        # Larger clusters play louder and denser.
        weight = min(1.0, 0.5 + cluster.size / 4.0)
        events = builder.fill_slots(start, end, max(2, round(slots * weight)), velocity=0.5 + 0.3 * weight)
        segments.append(builder.segment("cluster", cluster.id, start, end, events))
    return segments


def _compose_elemental(builder: _Builder, astro: AstroSummary) -> list[Segment]:
    ordered = astro.elements.ordered()
    shares = [max(ELEMENT_SHARE_FLOOR, weight) for _, weight in ordered]
    vector = builder.vector
    probabilities: Mapping[Role, float] = {
        "melody": vector.melodic_activity,
        "rhythm": vector.rhythm_density,
        "harmony": vector.harmonic_tension,
    }
    segments = []
    for (element, _), (start, end) in zip(ordered, _boundaries(builder.duration, shares)):
        profile = ELEMENT_PROFILES[element]
        seconds = end - start
        slots = max(2, math.floor(seconds * profile.rate))
        slot = seconds / slots
        length = min(profile.note_length, slot * 4.0)
        events: list[Event] = []
        for index in range(slots):
            onset = start + index * slot
            for role in profile.roles:
                if builder.rng.next() >= probabilities[role]:
                    continue
                match role:
                    case "melody":
                        events.append(builder.melody_event(onset, length, 0.7, profile.instrument))
                    case "rhythm":
                        events.append(
                            builder.rhythm_event(onset, slot, index, 0.85, end, profile.instrument)
                        )
                    case "harmony":
                        events.append(
                            builder.harmony_event(
                                onset, length, 0.5, profile.instrument, profile.harmony_shift
                            )
                        )
        segments.append(builder.segment("element", element, start, end, events))
    return segments


def _compose_lunar(builder: _Builder, astro: AstroSummary) -> list[Segment]:
    _ = astro
    segments = []
    bounds = _boundaries(builder.duration, [1.0] * len(LUNAR_PHASES))
    for index, (phase, (start, end)) in enumerate(zip(LUNAR_PHASES, bounds)):
        intensity = math.sin(index / len(LUNAR_PHASES) * 2 * math.pi) * 0.5 + 0.5
        slots = max(2, math.floor((2 + 8 * intensity) * (end - start) / 15.0))
        events = builder.fill_slots(
            start,
            end,
            slots,
            velocity=0.4 + 0.4 * intensity,
            instruments=("pad", "drums", "pad"),
        )
        segments.append(builder.segment("lunar", phase, start, end, events))
    return segments


_ModeFn = Callable[[_Builder, AstroSummary], list[Segment]]

MODE_COMPOSERS: Mapping[CompositionMode, _ModeFn] = MappingProxyType(
    {
        "house-order": _compose_house_order,
        "cluster": _compose_cluster,
        "elemental": _compose_elemental,
        "lunar": _compose_lunar,
    }
)


def generate_composition(
    controls: ControlSurface,
    vector: CompositionVector,
    mode: CompositionMode = "house-order",
    *,
    duration: float = 60.0,
    astro: AstroSummary | None = None,
) -> Composition:
    """Build a seeded composition for ``controls`` in the given structure mode."""
    try:
        composer = MODE_COMPOSERS[mode]
    except KeyError as exc:
        raise InvalidRequestError(
            f"Unknown structure {mode!r}; expected one of {', '.join(COMPOSITION_MODES)}"
        ) from exc
    if not duration > 0:
        raise InvalidRequestError(f"duration must be positive, got {duration!r}")
    rng = derive(controls.hash, "compose")
    builder = _Builder(
        controls=controls,
        vector=vector,
        duration=float(duration),
        rng=rng,
        melody=_MelodyLine(rng, controls, vector),
    )
    summary = astro or AstroSummary.from_controls(controls)
    segments = tuple(composer(builder, summary))
    composition = Composition(mode=mode, duration=float(duration), segments=segments, vector=vector)
    _LOGGER.debug(
        "Composed %s: %d segments, %d events",
        mode,
        len(segments),
        sum(len(segment.events) for segment in segments),
    )
    return composition

#!/usr/bin/env python3
"""lsaver.py

Endless turtle-graphics animation of randomly generated L-systems.

Key features:
- Random, self-consistent grammars (axiom, production rules, turn angle).
- Expansion by iterated substitution, bounded by length, fixed point and a
  cycle cap.
- Lazy batching of the expanded string so strokes appear a few at a time.
- Turtle interpreter on a toroidal viewport (leaving one edge re-enters at
  the opposite one).
- Timer-driven scheduler with a periodic fade overlay and regeneration when a
  grammar is used up.
- JSON-based configuration and SVG output of the draw stream.

Run:
  python lsaver.py render out.svg --seed 123 --duration 20
  python lsaver.py validate --config example/default.json
  python lsaver.py --help
"""

from __future__ import annotations

import argparse
import enum
import json
import logging
import math
import os
import random
import sys
from collections.abc import Generator, Iterable
from dataclasses import dataclass, field
from typing import Any, cast

logger = logging.getLogger(__name__)

Point = tuple[float, float]
Colour = tuple[float, float, float, float]


# -------------------------
# Errors / Validation
# -------------------------


class ConfigError(ValueError):
    pass


class GenerationError(RuntimeError):
    pass


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_float(x: Any, path: str) -> float:
    _require(
        isinstance(x, (int, float)) and not isinstance(x, bool),
        f"{path} must be a number",
    )
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


def _as_list(x: Any, path: str) -> list[Any]:
    _require(isinstance(x, list), f"{path} must be an array")
    return cast(list[Any], x)


# -------------------------
# Command model
# -------------------------

FORWARD = "F"
TURN_LEFT = "+"
TURN_RIGHT = "-"
PUSH = "["
POP = "]"

# A and B are inert placeholders: they draw nothing but can host rules.
COMMAND_ALPHABET = (FORWARD, TURN_LEFT, TURN_RIGHT, "A", "B")
SQUARE_BRACKET_CHANCE = 1.0 / (len(COMMAND_ALPHABET) + 1)

FS_PER_TURTLE_MOVE = 5
MAX_GROWTH_CYCLES = 200
MAX_GENERATION_ATTEMPTS = 10_000

MIN_ANGLE = 0.08726646
MAX_ANGLE = 3.124139
NON_RANDOM_ANGLES = (
    0.3490659,
    0.5235988,
    0.6283185,
    0.7853982,
    1.047198,
    1.570796,
    2.356194,
)

FADE_COLOUR: Colour = (0.0, 0.0, 0.0, 0x30 / 255)


@dataclass(frozen=True)
class Viewport:
    width: float = 2560.0
    height: float = 1440.0


@dataclass(frozen=True)
class Parameters:
    # grammar generation; integer ranges are half-open [min, max)
    min_rules: int = 2
    max_rules: int = 5
    min_axiom_length: int = 1
    max_axiom_length: int = 5
    min_rule_length: int = 2
    max_rule_length: int = 10
    max_length: int = 2000
    random_angle_chance: float = 0.5
    min_angle: float = MIN_ANGLE
    max_angle: float = MAX_ANGLE
    preset_angles: tuple[float, ...] = NON_RANDOM_ANGLES

    # drawing
    distance_per_movement: float = 10.0
    line_width: float = 0.75
    preview_line_width: float = 1.0
    seconds_per_turtle_move: float = 0.04
    seconds_per_fade: float = 0.04

    viewport: Viewport = field(default_factory=Viewport)


@dataclass(frozen=True)
class Grammar:
    axiom: str
    rules: dict[str, str]
    angle: float  # radians


@dataclass(frozen=True)
class PenPose:
    x: float
    y: float
    heading: float  # radians


@dataclass
class TurtleState:
    pos: PenPose
    colour: Colour
    stack: list[PenPose] = field(default_factory=list)


@dataclass(frozen=True)
class Chunk:
    string: str
    angle: float


@dataclass(frozen=True)
class Segment:
    start: Point
    end: Point
    width: float
    colour: Colour


@dataclass(frozen=True)
class Frame:
    """Draw output of one tick; the fade overlay goes under the segments."""

    fade: bool
    segments: list[Segment]


# -------------------------
# Grammar generation
# -------------------------


def _chance(probability: float, rng: random.Random) -> bool:
    return rng.random() < probability


def _rand_range(rng: random.Random, low: int, high: int) -> int:
    # Half-open like the other ranges in Parameters; an empty range pins to low.
    if high <= low:
        return low
    return rng.randrange(low, high)


def random_angle(params: Parameters, rng: random.Random) -> float:
    """Return a turn angle in radians shared by the axiom and every rule."""
    if _chance(params.random_angle_chance, rng):
        low, high = params.min_angle, params.max_angle
        if high <= low:
            return low
        # open interval: uniform() may return either endpoint
        while True:
            a = rng.uniform(low, high)
            if low < a < high:
                return a
    return rng.choice(params.preset_angles)


def random_lsystem_string(length: int, rng: random.Random) -> str:
    """Generate a random command word of exactly ``length`` characters.

    Bracket pairs are decided first, one biased coin per two characters, and
    the remaining characters are drawn from COMMAND_ALPHABET.  Each pair is
    then inserted at a random opening position with its closing bracket at or
    after it, so brackets always balance.
    """
    _require(length >= 1, "random string length must be >= 1")

    while True:
        num_bracket_pairs = 0
        for _ in range(length // 2):
            if _chance(SQUARE_BRACKET_CHANCE, rng):
                num_bracket_pairs += 1

        num_letters = length - 2 * num_bracket_pairs
        word = [rng.choice(COMMAND_ALPHABET) for _ in range(num_letters)]
        if not word:
            continue

        for _ in range(num_bracket_pairs):
            opening = rng.randrange(len(word))
            closing = rng.randrange(opening, len(word))
            word.insert(opening, PUSH)
            word.insert(closing + 1, POP)

        return "".join(word)


def create_random_rule_strings(
    num_rules: int, params: Parameters, rng: random.Random
) -> list[str]:
    rule_strings = [
        random_lsystem_string(
            _rand_range(rng, params.min_rule_length, params.max_rule_length), rng
        )
        for _ in range(num_rules)
    ]

    # Force a forward move somewhere so the grammar eventually draws.
    if rule_strings and not any(FORWARD in s for s in rule_strings):
        idx = rng.randrange(len(rule_strings))
        s = rule_strings[idx]
        loc = rng.randrange(len(s))
        rule_strings[idx] = s[:loc] + FORWARD + s[loc:]

    return rule_strings


class CharSet:
    """Characters still free to become the left-hand side of a rule.

    Characters are kept with multiplicity, so symbols seen more often are
    proportionally more likely to be picked.
    """

    def __init__(self, banned_chars: Iterable[str]) -> None:
        self.banned_chars = set(banned_chars)
        self.chars: list[str] = []

    def add_chars(self, s: str) -> None:
        self.chars.extend(c for c in s if c not in self.banned_chars)

    def ban_char(self, c: str) -> None:
        self.chars = [x for x in self.chars if x != c]
        self.banned_chars.add(c)

    def rand_char(self, rng: random.Random) -> str | None:
        if not self.chars:
            return None
        return rng.choice(self.chars)


def try_to_create_rule_map(
    axiom: str, rule_strings: list[str], rng: random.Random
) -> dict[str, str] | None:
    """Assign a left-hand side to every rule body, or None if keys run out.

    Bodies are taken from the end of ``rule_strings``.  The returned dict
    preserves assignment order.
    """
    available = CharSet((PUSH, POP))
    available.add_chars(axiom)
    rules: dict[str, str] = {}

    pending = list(rule_strings)
    while pending:
        body = pending.pop()
        key = available.rand_char(rng)
        if key is None:
            return None
        available.ban_char(key)
        available.add_chars(body)
        rules[key] = body

    return rules


def random_grammar(
    params: Parameters,
    rng: random.Random,
    *,
    max_attempts: int = MAX_GENERATION_ATTEMPTS,
) -> Grammar:
    """Build a random grammar, retrying until every rule body has a key.

    Running out of keys is ordinary control flow: the attempt is thrown away
    and angle, rule count, rule bodies and axiom are all drawn afresh.
    GenerationError is raised only after ``max_attempts`` failures, which
    valid configurations do not reach.
    """
    for attempt in range(1, max_attempts + 1):
        angle = random_angle(params, rng)
        num_rules = _rand_range(rng, params.min_rules, params.max_rules)
        rule_strings = create_random_rule_strings(num_rules, params, rng)
        axiom = random_lsystem_string(
            _rand_range(rng, params.min_axiom_length, params.max_axiom_length), rng
        )

        rules = try_to_create_rule_map(axiom, rule_strings, rng)
        if rules is not None:
            return Grammar(axiom=axiom, rules=rules, angle=angle)

        logger.debug("attempt %d ran out of rule keys; retrying", attempt)

    raise GenerationError(
        f"no grammar with {params.min_rules}..{params.max_rules} rules found "
        f"in {max_attempts} attempts; the alphabet has only "
        f"{len(COMMAND_ALPHABET)} usable symbols"
    )


# -------------------------
# Expansion
# -------------------------


def rewrite_once(s: str, rules: dict[str, str]) -> str:
    return "".join(rules.get(ch, ch) for ch in s)


def expansion_history(
    grammar: Grammar, max_length: int, max_cycles: int = MAX_GROWTH_CYCLES
) -> Generator[str, None, None]:
    """Yield the axiom and then each rewritten string, in order.

    Every yielded string after the axiom is shorter than ``max_length``: a
    rewrite that would reach it is dropped and expansion stops.  Expansion
    also stops when a rewrite changes nothing, or after ``max_cycles``
    rewrites.
    """
    current = grammar.axiom
    yield current

    cycles = 0
    while len(current) < max_length and cycles < max_cycles:
        grown = rewrite_once(current, grammar.rules)
        cycles += 1
        if grown == current or len(grown) >= max_length:
            break
        current = grown
        yield current


def grow(
    grammar: Grammar, max_length: int, max_cycles: int = MAX_GROWTH_CYCLES
) -> str:
    current = grammar.axiom
    for current in expansion_history(grammar, max_length, max_cycles):
        pass
    return current


# -------------------------
# Segment iterator
# -------------------------


class IteratorState(enum.Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class SegmentIterator:
    """Hand out an expanded string a few forward moves at a time.

    Each pull returns a batch of chunks. Every chunk ends on a forward move,
    except the last chunk of the string, which ends at end-of-string. A
    batch holds at most FS_PER_TURTLE_MOVE forward moves. Once the string is
    consumed the iterator stays EXHAUSTED and every pull returns None. It
    cannot be restarted; build a new one instead.
    """

    def __init__(self, string: str, angle: float) -> None:
        self.string = string
        self.angle = angle
        self.pos = 0
        self.state = IteratorState.ACTIVE if string else IteratorState.EXHAUSTED

    @classmethod
    def from_grammar(cls, grammar: Grammar, max_length: int) -> SegmentIterator:
        return cls(grow(grammar, max_length), grammar.angle)

    @property
    def exhausted(self) -> bool:
        return self.state is IteratorState.EXHAUSTED

    def pull(self) -> list[Chunk] | None:
        if self.state is IteratorState.EXHAUSTED:
            return None

        batch: list[Chunk] = []
        num_fs = 0
        end_of_string = len(self.string)

        while self.pos < end_of_string and num_fs < FS_PER_TURTLE_MOVE:
            next_f = self.string.find(FORWARD, self.pos)
            if next_f == -1:
                end = end_of_string
            else:
                end = next_f + 1
                num_fs += 1

            batch.append(Chunk(string=self.string[self.pos : end], angle=self.angle))
            self.pos = end

        if self.pos >= end_of_string:
            self.state = IteratorState.EXHAUSTED
        return batch

    def __iter__(self) -> SegmentIterator:
        return self

    def __next__(self) -> list[Chunk]:
        batch = self.pull()
        if batch is None:
            raise StopIteration
        return batch


# -------------------------
# Turtle interpreter
# -------------------------


@dataclass(frozen=True)
class PenMovement:
    """One candidate hop of a forward move.

    ``wrap_x``/``wrap_y`` hold the coordinate the pen jumps to once the hop
    ends on a viewport edge.
    """

    x: float
    y: float
    length: float
    wrap_x: float | None = None
    wrap_y: float | None = None

    def landing(self) -> Point:
        x = self.x if self.wrap_x is None else self.wrap_x
        y = self.y if self.wrap_y is None else self.wrap_y
        return (x, y)


def next_pen_movement(
    x: float, y: float, heading: float, distance: float, width: float, height: float
) -> PenMovement:
    """Return the shortest of: the full move, the hop to an x edge, the hop to a y edge.

    An edge test is only made when the full move would leave the viewport
    on that axis, and is skipped when its divisor (cos or sin) is zero.
    """
    cos_a = math.cos(heading)
    sin_a = math.sin(heading)
    new_x = x + cos_a * distance
    new_y = y + sin_a * distance

    best = PenMovement(new_x, new_y, distance)

    if cos_a != 0.0 and (new_x > width or new_x < 0.0):
        if new_x > width:
            dist = (width - x) / cos_a
            wrap_x = 0.0
        else:
            dist = -x / cos_a
            wrap_x = width
        candidate = PenMovement(
            x + cos_a * dist, y + sin_a * dist, dist, wrap_x=wrap_x
        )
        if candidate.length < best.length:
            best = candidate

    if sin_a != 0.0 and (new_y > height or new_y < 0.0):
        if new_y > height:
            dist = (height - y) / sin_a
            wrap_y = 0.0
        else:
            dist = -y / sin_a
            wrap_y = height
        candidate = PenMovement(
            x + cos_a * dist, y + sin_a * dist, dist, wrap_y=wrap_y
        )
        if candidate.length < best.length:
            best = candidate

    return best


def draw_lsystem_substring(
    string: str,
    angle: float,
    state: TurtleState,
    params: Parameters,
    width: float,
    height: float,
) -> list[Segment]:
    """Interpret ``string`` from ``state`` and return the segments drawn.

    ``state.pos`` and ``state.stack`` are updated in place, so consecutive
    chunks continue from where the previous one stopped.  A forward move
    that crosses an edge draws a thin preview line up to each crossing before
    the final stroke.
    """
    x, y, heading = state.pos.x, state.pos.y, state.pos.heading
    segments: list[Segment] = []

    for ch in string:
        if ch == FORWARD:
            remaining = params.distance_per_movement
            move = next_pen_movement(x, y, heading, remaining, width, height)

            while move.length < remaining:
                segments.append(
                    Segment(
                        (x, y), (move.x, move.y), params.preview_line_width, state.colour
                    )
                )
                x, y = move.landing()
                remaining -= move.length
                move = next_pen_movement(x, y, heading, remaining, width, height)

            segments.append(
                Segment((x, y), (move.x, move.y), params.line_width, state.colour)
            )
            # the loop only exits on the straight candidate, which never wraps
            x, y = move.x, move.y

        elif ch == TURN_LEFT:
            heading += angle

        elif ch == TURN_RIGHT:
            heading -= angle

        elif ch == PUSH:
            state.stack.append(PenPose(x, y, heading))

        elif ch == POP:
            # unmatched pops are ignored
            if state.stack:
                restored = state.stack.pop()
                x, y, heading = restored.x, restored.y, restored.heading

    state.pos = PenPose(x, y, heading)
    return segments


# -------------------------
# Scheduler
# -------------------------


def random_colour(rng: random.Random) -> Colour:
    return (
        rng.uniform(0.5, 1.0),
        rng.uniform(0.5, 1.0),
        rng.uniform(0.5, 1.0),
        1.0,
    )


class AnimationScheduler:
    """Drive the animation from elapsed-time ticks.

    Owns the pen state, the current segment iterator and two countdown
    timers.  Both timers start expired, so the first tick draws and fades.
    When the iterator runs dry a new grammar is generated and the pen takes
    a new colour; its position and branch stack carry over.
    """

    def __init__(self, params: Parameters, rng: random.Random) -> None:
        self.params = params
        self.rng = rng
        self.generations = 0
        self.segments = self._new_segment_iterator()
        self.state = TurtleState(pos=PenPose(0.0, 0.0, 0.0), colour=random_colour(rng))
        self.seconds_to_next_turtle_move = 0.0
        self.seconds_to_next_fade = 0.0

    def _new_segment_iterator(self) -> SegmentIterator:
        grammar = random_grammar(self.params, self.rng)
        segments = SegmentIterator.from_grammar(grammar, self.params.max_length)
        self.generations += 1
        logger.debug(
            "generation %d: axiom=%r rules=%r angle=%.4f expanded=%d chars",
            self.generations,
            grammar.axiom,
            grammar.rules,
            grammar.angle,
            len(segments.string),
        )
        return segments

    def next_batch(self) -> list[Chunk]:
        while True:
            batch = self.segments.pull()
            if batch is not None:
                return batch
            self.segments = self._new_segment_iterator()
            self.state.colour = random_colour(self.rng)

    def tick(self, dt: float) -> Frame:
        if dt < 0:
            raise ValueError(f"dt must be >= 0, got {dt}")

        self.seconds_to_next_turtle_move -= dt
        self.seconds_to_next_fade -= dt

        drawn: list[Segment] = []
        if self.seconds_to_next_turtle_move <= 0.0:
            viewport = self.params.viewport
            for chunk in self.next_batch():
                drawn.extend(
                    draw_lsystem_substring(
                        chunk.string,
                        chunk.angle,
                        self.state,
                        self.params,
                        viewport.width,
                        viewport.height,
                    )
                )
            self.seconds_to_next_turtle_move = self.params.seconds_per_turtle_move

        fade = False
        if self.seconds_to_next_fade <= 0.0:
            self.seconds_to_next_fade = self.params.seconds_per_fade
            fade = True

        return Frame(fade=fade, segments=drawn)


def run_frames(
    params: Parameters, rng: random.Random, *, duration: float, fps: float
) -> list[Frame]:
    _require(duration >= 0, "duration must be >= 0")
    _require(fps > 0, "fps must be > 0")

    scheduler = AnimationScheduler(params, rng)
    dt = 1.0 / fps
    return [scheduler.tick(dt) for _ in range(round(duration * fps))]


# -------------------------
# SVG writing
# -------------------------


def _ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def _fmt(x: float, precision: int) -> str:
    # Normalise -0.0 so it never produces "-0" in SVG output.
    if not x:
        x = 0.0
    s = f"{x:.{precision}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    if s == "-0":
        s = "0"
    return s or "0"


def _svg_rgb(colour: Colour) -> str:
    r, g, b = (round(max(0.0, min(1.0, c)) * 255) for c in colour[:3])
    return f"rgb({r},{g},{b})"


def write_svg(
    frames: Iterable[Frame],
    *,
    out_path: str,
    viewport: Viewport,
    precision: int = 2,
    background: str | None = "#000",
    title: str | None = None,
) -> None:
    w = _fmt(viewport.width, precision)
    h = _fmt(viewport.height, precision)

    lines: list[str] = []
    lines.append('<?xml version="1.0" encoding="UTF-8"?>')
    lines.append(
        "<svg xmlns=\"http://www.w3.org/2000/svg\" version=\"1.1\" "
        f"viewBox=\"0 0 {w} {h}\" width=\"{w}\" height=\"{h}\">"
    )

    if title:
        safe_title = (
            title.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        )
        lines.append(f"  <title>{safe_title}</title>")

    if background and background.lower() != "none":
        lines.append(
            f'  <rect x="0" y="0" width="{w}" height="{h}" fill="{background}" />'
        )

    fade_opacity = _fmt(FADE_COLOUR[3], 4)
    fade_rect = (
        f'  <rect x="0" y="0" width="{w}" height="{h}" '
        f'fill="{_svg_rgb(FADE_COLOUR)}" fill-opacity="{fade_opacity}" />'
    )

    for frame in frames:
        if frame.fade:
            lines.append(fade_rect)
        for seg in frame.segments:
            (x1, y1), (x2, y2) = seg.start, seg.end
            lines.append(
                f'  <line x1="{_fmt(x1, precision)}" y1="{_fmt(y1, precision)}" '
                f'x2="{_fmt(x2, precision)}" y2="{_fmt(y2, precision)}" '
                f'stroke="{_svg_rgb(seg.colour)}" '
                f'stroke-opacity="{_fmt(seg.colour[3], 3)}" '
                f'stroke-width="{_fmt(seg.width, precision)}" '
                'stroke-linecap="round" />'
            )

    lines.append("</svg>")

    _ensure_parent_dir(out_path)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
        f.write("\n")


# -------------------------
# Config parsing
# -------------------------


def _check_range(low: float, high: float, path: str) -> None:
    _require(low <= high, f"{path}: min must be <= max (got {low} > {high})")


def parse_config(obj: dict[str, Any]) -> Parameters:
    obj = _as_dict(obj, "root")
    defaults = Parameters()

    grammar = _as_dict(obj.get("grammar", {}), "grammar")

    def gint(key: str) -> int:
        return _as_int(grammar.get(key, getattr(defaults, key)), f"grammar.{key}")

    def gfloat(key: str) -> float:
        return _as_float(grammar.get(key, getattr(defaults, key)), f"grammar.{key}")

    min_rules, max_rules = gint("min_rules"), gint("max_rules")
    _require(min_rules >= 1, "grammar.min_rules must be >= 1")
    _check_range(min_rules, max_rules, "grammar.rules")

    min_axiom_length, max_axiom_length = gint("min_axiom_length"), gint(
        "max_axiom_length"
    )
    _require(min_axiom_length >= 1, "grammar.min_axiom_length must be >= 1")
    _check_range(min_axiom_length, max_axiom_length, "grammar.axiom_length")

    min_rule_length, max_rule_length = gint("min_rule_length"), gint(
        "max_rule_length"
    )
    _require(min_rule_length >= 1, "grammar.min_rule_length must be >= 1")
    _check_range(min_rule_length, max_rule_length, "grammar.rule_length")

    max_length = gint("max_length")
    _require(max_length >= 1, "grammar.max_length must be >= 1")

    random_angle_chance = gfloat("random_angle_chance")
    _require(
        0.0 <= random_angle_chance <= 1.0,
        "grammar.random_angle_chance must be between 0 and 1",
    )

    min_angle, max_angle = gfloat("min_angle"), gfloat("max_angle")
    _check_range(min_angle, max_angle, "grammar.angle")

    raw_angles = _as_list(
        grammar.get("preset_angles", list(defaults.preset_angles)),
        "grammar.preset_angles",
    )
    _require(len(raw_angles) > 0, "grammar.preset_angles must not be empty")
    preset_angles = tuple(
        _as_float(a, f"grammar.preset_angles[{i}]") for i, a in enumerate(raw_angles)
    )

    drawing = _as_dict(obj.get("drawing", {}), "drawing")

    def dpositive(key: str) -> float:
        value = _as_float(drawing.get(key, getattr(defaults, key)), f"drawing.{key}")
        _require(value > 0, f"drawing.{key} must be > 0")
        return value

    viewport_obj = _as_dict(obj.get("viewport", {}), "viewport")
    width = _as_float(
        viewport_obj.get("width", defaults.viewport.width), "viewport.width"
    )
    height = _as_float(
        viewport_obj.get("height", defaults.viewport.height), "viewport.height"
    )
    _require(width > 0, "viewport.width must be > 0")
    _require(height > 0, "viewport.height must be > 0")

    return Parameters(
        min_rules=min_rules,
        max_rules=max_rules,
        min_axiom_length=min_axiom_length,
        max_axiom_length=max_axiom_length,
        min_rule_length=min_rule_length,
        max_rule_length=max_rule_length,
        max_length=max_length,
        random_angle_chance=random_angle_chance,
        min_angle=min_angle,
        max_angle=max_angle,
        preset_angles=preset_angles,
        distance_per_movement=dpositive("distance_per_movement"),
        line_width=dpositive("line_width"),
        preview_line_width=dpositive("preview_line_width"),
        seconds_per_turtle_move=dpositive("seconds_per_turtle_move"),
        seconds_per_fade=dpositive("seconds_per_fade"),
        viewport=Viewport(width=width, height=height),
    )


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def load_parameters(path: str | None) -> Parameters:
    if path is None:
        return Parameters()
    return parse_config(load_json(path))


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
CONFIGURATION JSON (--config)

Every key is optional; missing keys take the defaults shown.  Integer ranges
are half-open [min, max), and min == max pins the value to min.

  grammar: object
      min_rules / max_rules             (2 / 5)    number of production rules
      min_axiom_length / max_axiom_length (1 / 5)  axiom length
      min_rule_length / max_rule_length (2 / 10)   rule body length
      max_length                        (2000)     stop expanding at this length
      random_angle_chance               (0.5)      chance of a random angle
      min_angle / max_angle             (0.0873 / 3.1241) radians
      preset_angles                     ([0.349, 0.524, ...]) radians

  drawing: object
      distance_per_movement             (10)       pen travel per F
      line_width                        (0.75)     stroke width of a move
      preview_line_width                (1)        stroke width of wrap hops
      seconds_per_turtle_move           (0.04)     time between batches
      seconds_per_fade                  (0.04)     time between fade overlays

  viewport: object
      width / height                    (2560 / 1440)

Commands in generated strings

  F  move forward, drawing      +  turn left by the grammar angle
  -  turn right                 [  push pen pose
  ]  pop pen pose (no-op on an empty stack)
  A, B  placeholders that only take part in rewriting

The viewport is a torus: a move leaving one edge re-enters at the opposite
edge, with a thin preview line drawn up to each crossing.

Example

  python lsaver.py render out.svg --config example/default.json --seed 7
"""


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsaver.py",
        description="Animate randomly generated L-systems and write the strokes to SVG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )
    p.add_argument("--verbose", action="store_true", help="Log each generated grammar.")

    sub = p.add_subparsers(dest="cmd", required=True)

    pr = sub.add_parser(
        "render",
        help="Run the animation for a while and write every stroke to SVG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pr.add_argument("output", help="Path to write the SVG output.")
    pr.add_argument("--config", default=None, help="Path to a JSON config.")
    pr.add_argument(
        "--seed", type=int, default=None, help="Seed for repeatable randomness."
    )
    pr.add_argument(
        "--duration",
        type=float,
        default=10.0,
        help="Seconds of animation to simulate (default: 10).",
    )
    pr.add_argument(
        "--fps", type=float, default=60.0, help="Ticks per second (default: 60)."
    )
    pr.add_argument(
        "--precision",
        type=int,
        default=2,
        help="Coordinate formatting precision (default: 2).",
    )

    pv = sub.add_parser(
        "validate",
        help="Validate a JSON config, print a summary and build a sample grammar.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pv.add_argument("--config", default=None, help="Path to a JSON config.")
    pv.add_argument(
        "--seed", type=int, default=None, help="Seed for the sample grammar."
    )

    return p


# -------------------------
# Commands
# -------------------------


def cmd_render(
    config_path: str | None,
    output_path: str,
    *,
    seed: int | None,
    duration: float,
    fps: float,
    precision: int,
) -> None:
    params = load_parameters(config_path)
    _require(0 <= precision <= 10, "--precision must be between 0 and 10")

    frames = run_frames(params, random.Random(seed), duration=duration, fps=fps)
    write_svg(
        frames,
        out_path=output_path,
        viewport=params.viewport,
        precision=precision,
        title="lsaver" if seed is None else f"lsaver seed {seed}",
    )

    num_segments = sum(len(fr.segments) for fr in frames)
    num_fades = sum(1 for fr in frames if fr.fade)
    logger.info(
        "wrote %d segments and %d fades over %d ticks to %s",
        num_segments,
        num_fades,
        len(frames),
        output_path,
    )


def cmd_validate(config_path: str | None, seed: int | None) -> None:
    params = load_parameters(config_path)

    print(f"rules: {params.min_rules}..{params.max_rules}")
    print(f"axiom length: {params.min_axiom_length}..{params.max_axiom_length}")
    print(f"rule length: {params.min_rule_length}..{params.max_rule_length}")
    print(f"max length: {params.max_length}")
    print(
        "angle: "
        f"random {params.min_angle}..{params.max_angle} "
        f"with chance {params.random_angle_chance}, "
        f"presets={len(params.preset_angles)}"
    )
    print(
        "drawing: "
        f"distance={params.distance_per_movement} "
        f"line_width={params.line_width} "
        f"preview_line_width={params.preview_line_width}"
    )
    print(
        "timing: "
        f"move every {params.seconds_per_turtle_move}s, "
        f"fade every {params.seconds_per_fade}s"
    )
    print(f"viewport: {params.viewport.width}x{params.viewport.height}")

    # Build one grammar to catch configurations that cannot generate.
    grammar = random_grammar(params, random.Random(seed))
    expanded = grow(grammar, params.max_length)
    print(f"sample axiom: {grammar.axiom}")
    for key, body in grammar.rules.items():
        print(f"sample rule: {key} -> {body}")
    print(f"sample angle: {math.degrees(grammar.angle):.2f}deg")
    print(f"sample expanded length: {len(expanded)}")


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        if args.cmd == "render":
            cmd_render(
                args.config,
                args.output,
                seed=args.seed,
                duration=args.duration,
                fps=args.fps,
                precision=args.precision,
            )
        elif args.cmd == "validate":
            cmd_validate(args.config, args.seed)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except GenerationError as e:
        print(f"Generation error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

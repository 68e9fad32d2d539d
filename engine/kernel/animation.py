"""
Tamuu Kernel — Animation Resolver

Each element has two independent slots drawn from two disjoint closed sets:

- `animation`      entrance-class. Fires once on first visibility, then the
                   element is settled for the rest of its mounted lifetime.
- `loop_animation` loop-class. Runs forever once the element is visible.

A value from the wrong set is treated as absent. If `loop_animation` is
unset but `animation` names a loop-class value, the element loops with no
entrance.

The resolver is pure: it maps slots to an AnimationPlan. The per-element
visual state machine (ElementAnimationState) is the only stateful part.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from engine.kernel.layout import Box

DEFAULT_DELAY_MS = 0
DEFAULT_DURATION_MS = 800
DEFAULT_VISIBILITY_THRESHOLD = 0.15

BOUNCE_EASING = "cubic-bezier(0.68, -0.55, 0.265, 1.55)"

ENTRANCE_ANIMATIONS: frozenset[str] = frozenset(
    {
        "fade-in",
        "slide-up",
        "slide-down",
        "slide-left",
        "slide-right",
        "zoom-in",
        "zoom-out",
        "flip-x",
        "flip-y",
        "bounce",
    }
)

# Initial (pre-entrance) transform per entrance kind. All start transparent.
_ENTRANCE_TRANSFORMS: dict[str, str | None] = {
    "fade-in": None,
    "slide-up": "translateY(40px)",
    "slide-down": "translateY(-40px)",
    "slide-left": "translateX(40px)",
    "slide-right": "translateX(-40px)",
    "zoom-in": "scale(0.8)",
    "zoom-out": "scale(1.2)",
    "flip-x": "rotateX(90deg)",
    "flip-y": "rotateY(90deg)",
    "bounce": "translateY(40px)",
}


@dataclass(frozen=True)
class LoopProfile:
    """Timing profile of a loop kind: base duration × multiplier per cycle."""

    name: str
    multiplier: float
    timing: str = "ease-in-out"
    origin: str | None = None


LOOP_PROFILES: dict[str, LoopProfile] = {
    "sway": LoopProfile("sway", 2, origin="bottom center"),
    "float": LoopProfile("float", 3),
    "pulse": LoopProfile("pulse", 2),
    "sparkle": LoopProfile("sparkle", 1.5),
    "spin": LoopProfile("spin", 4, timing="linear"),
    "shake": LoopProfile("shake", 1),
    "swing": LoopProfile("swing", 2, origin="top center"),
    "heartbeat": LoopProfile("heartbeat", 1.5),
    "glow": LoopProfile("glow", 2),
}

LOOP_ANIMATIONS: frozenset[str] = frozenset(LOOP_PROFILES)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntrancePlan:
    kind: str
    delay_ms: int
    duration_ms: int

    @property
    def easing(self) -> str:
        return BOUNCE_EASING if self.kind == "bounce" else "ease-out"

    def initial_style(self) -> dict[str, str]:
        style = {"opacity": "0"}
        transform = _ENTRANCE_TRANSFORMS[self.kind]
        if transform:
            style["transform"] = transform
        return style

    def final_style(self) -> dict[str, str]:
        return {
            "opacity": "1",
            "transform": "none",
            "transition-property": "opacity, transform",
            "transition-duration": f"{self.duration_ms}ms",
            "transition-delay": f"{self.delay_ms}ms",
            "transition-timing-function": self.easing,
        }


@dataclass(frozen=True)
class LoopPlan:
    kind: str
    delay_ms: int
    cycle_ms: float

    @property
    def profile(self) -> LoopProfile:
        return LOOP_PROFILES[self.kind]

    def style(self) -> dict[str, str]:
        profile = self.profile
        style = {
            "animation-name": f"tm-{self.kind}",
            "animation-duration": f"{_ms(self.cycle_ms)}ms",
            "animation-delay": f"{self.delay_ms}ms",
            "animation-iteration-count": "infinite",
            "animation-timing-function": profile.timing,
        }
        if profile.origin:
            style["transform-origin"] = profile.origin
        return style


@dataclass(frozen=True)
class AnimationPlan:
    entrance: EntrancePlan | None
    loop: LoopPlan | None

    @property
    def is_static(self) -> bool:
        return self.entrance is None and self.loop is None


def _ms(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else f"{v:.1f}"


def classify(value: str | None) -> str:
    """'entrance', 'loop', or 'none' for a raw animation value."""
    if value in ENTRANCE_ANIMATIONS:
        return "entrance"
    if value in LOOP_ANIMATIONS:
        return "loop"
    return "none"


def resolve_animation(
    animation: str | None,
    loop_animation: str | None = None,
    delay: int | None = None,
    duration: int | None = None,
) -> AnimationPlan:
    """Classify the two slots into an AnimationPlan. Never raises."""
    delay_ms = int(delay) if delay is not None and delay >= 0 else DEFAULT_DELAY_MS
    duration_ms = int(duration) if duration is not None and duration > 0 else DEFAULT_DURATION_MS

    entrance = None
    if classify(animation) == "entrance":
        entrance = EntrancePlan(animation, delay_ms, duration_ms)  # type: ignore[arg-type]

    loop_kind: str | None = None
    if classify(loop_animation) == "loop":
        loop_kind = loop_animation
    elif classify(animation) == "loop":
        loop_kind = animation

    loop = None
    if loop_kind is not None:
        loop = LoopPlan(loop_kind, delay_ms, duration_ms * LOOP_PROFILES[loop_kind].multiplier)

    return AnimationPlan(entrance, loop)


def plan_for(element: Any) -> AnimationPlan:
    return resolve_animation(
        element.animation,
        element.loop_animation,
        element.animation_delay,
        element.animation_duration,
    )


# ---------------------------------------------------------------------------
# Per-element state machine
# ---------------------------------------------------------------------------


class Phase(str, Enum):
    PENDING = "pending"  # mounted, never seen
    ENTERING = "entering"  # entrance transition in flight
    SETTLED = "settled"  # entrance done (or none); never replays


def intersection_ratio(box: Box, viewport: Box) -> float:
    """Fraction of the element's box inside the viewport, in [0, 1]."""
    if box.area <= 0:
        # Zero-size elements count as visible once their origin is inside.
        inside = viewport.x <= box.x <= viewport.right and viewport.y <= box.y <= viewport.bottom
        return 1.0 if inside else 0.0
    return min(1.0, box.intersection(viewport) / box.area)


class ElementAnimationState:
    """
    Visual state of one mounted element.

    PENDING → (visible ≥ threshold) → ENTERING → complete_entrance() → SETTLED.
    Elements without an entrance go straight to SETTLED on first visibility.
    Once triggered the element never returns to PENDING, so leaving and
    re-entering the viewport cannot replay the entrance.
    """

    def __init__(self, plan: AnimationPlan, threshold: float = DEFAULT_VISIBILITY_THRESHOLD) -> None:
        self.plan = plan
        self.threshold = threshold
        self.phase = Phase.PENDING
        self.triggered = False
        self.entrance_count = 0

    def observe(self, ratio: float) -> bool:
        """Feed a visibility ratio. Returns True if this call triggered the element."""
        if self.triggered or ratio < self.threshold:
            return False
        self.triggered = True
        if self.plan.entrance is not None:
            self.phase = Phase.ENTERING
            self.entrance_count += 1
        else:
            self.phase = Phase.SETTLED
        return True

    def complete_entrance(self) -> None:
        if self.phase is Phase.ENTERING:
            self.phase = Phase.SETTLED

    @property
    def looping(self) -> bool:
        return self.plan.loop is not None and self.triggered

    def style(self) -> dict[str, str]:
        """Composed inline style for the current phase: entrance then loop."""
        style: dict[str, str] = {}
        if self.plan.entrance is not None:
            if self.triggered:
                style.update(self.plan.entrance.final_style())
            else:
                style.update(self.plan.entrance.initial_style())
        if self.looping:
            style.update(self.plan.loop.style())  # type: ignore[union-attr]
        return style


class AnimationTracker:
    """Holds one ElementAnimationState per mounted element and feeds it viewport updates."""

    def __init__(self, threshold: float = DEFAULT_VISIBILITY_THRESHOLD) -> None:
        self.threshold = threshold
        self.states: dict[str, ElementAnimationState] = {}

    def mount(self, element_id: str, plan: AnimationPlan) -> ElementAnimationState:
        state = self.states.get(element_id)
        if state is None:
            state = ElementAnimationState(plan, self.threshold)
            self.states[element_id] = state
        return state

    def unmount(self, element_id: str) -> None:
        self.states.pop(element_id, None)

    def update(self, boxes: dict[str, Box], viewport: Box) -> list[str]:
        """Process one viewport position. Returns ids triggered by this update."""
        triggered: list[str] = []
        for element_id, box in boxes.items():
            state = self.states.get(element_id)
            if state is not None and state.observe(intersection_ratio(box, viewport)):
                triggered.append(element_id)
        return triggered


KEYFRAMES_CSS = """
@keyframes tm-sway { 0%, 100% { transform: rotate(-5deg); } 50% { transform: rotate(5deg); } }
@keyframes tm-float { 0%, 100% { transform: translateY(0); } 50% { transform: translateY(-10px); } }
@keyframes tm-pulse { 0%, 100% { transform: scale(1); } 50% { transform: scale(1.05); } }
@keyframes tm-sparkle { 0%, 100% { opacity: 1; filter: brightness(1); } 50% { opacity: 0.7; filter: brightness(1.3); } }
@keyframes tm-spin { from { transform: rotate(0deg); } to { transform: rotate(360deg); } }
@keyframes tm-shake {
  0%, 100% { transform: translateX(0); }
  10%, 30%, 50%, 70%, 90% { transform: translateX(-2px); }
  20%, 40%, 60%, 80% { transform: translateX(2px); }
}
@keyframes tm-swing { 0%, 100% { transform: rotate(-10deg); } 50% { transform: rotate(10deg); } }
@keyframes tm-heartbeat {
  0%, 100% { transform: scale(1); }
  14% { transform: scale(1.1); }
  28% { transform: scale(1); }
  42% { transform: scale(1.1); }
  70% { transform: scale(1); }
}
@keyframes tm-glow {
  0%, 100% { filter: drop-shadow(0 0 5px rgba(255, 255, 255, 0.5)); }
  50% { filter: drop-shadow(0 0 20px rgba(255, 255, 255, 0.8)) drop-shadow(0 0 30px rgba(255, 200, 100, 0.6)); }
}
"""

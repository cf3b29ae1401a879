"""Generator state: every knob of a render, its defaults, and boundary clamping."""

import json
import random
import re
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path

from qrstudio.logging import audit, get_logger

log = get_logger("state")

FALLBACK_TEXT = "ishortn.ink"
DEFAULT_TEXT = "https://ishortn.ink"
DEFAULT_SEED = 424242

ECC_LEVELS = ("L", "M", "Q", "H")
PIXEL_STYLES = ("square", "rounded", "dot", "squircle", "row", "column")
MARKER_STYLES = ("auto",) + PIXEL_STYLES
MARKER_SHAPES = ("square", "circle", "plus", "box", "octagon", "random", "tiny-plus")
MARKER_INNER_SHAPES = ("auto", "square", "circle", "plus", "diamond", "eye")
MARGIN_NOISE_SPACES = ("none", "marker", "full", "minimal", "extreme")
RENDER_POINTS_TYPES = ("all", "data", "function", "guide", "marker")
EFFECTS = ("none", "crystalize", "liquidify")
EFFECT_TIMINGS = ("before", "after")
ROTATIONS = (0, 90, 180, 270)

PRESET_COLORS = ("#000000", "#2D2E33", "#3b82f6", "#22c55e", "#ef4444")
PRESET_BACKGROUND_COLORS = ("#ffffff", "#f5f5f5", "#f0f0f0", "#1a1a2e", "#000000")

# Display labels for the choices a style picker offers, in picker order
STYLE_LABELS = {
    "pixel_style": {
        "square": "Square", "rounded": "Rounded", "dot": "Dot",
        "squircle": "Squircle", "row": "Row", "column": "Column",
    },
    "marker_shape": {
        "square": "Square", "circle": "Circle", "plus": "Plus", "box": "Box",
        "octagon": "Octagon", "random": "Random", "tiny-plus": "Tiny Plus",
    },
    "marker_inner_shape": {
        "auto": "Auto", "square": "Square", "circle": "Circle",
        "plus": "Plus", "diamond": "Diamond", "eye": "Eye",
    },
    "effect": {"none": "None", "crystalize": "Crystalize", "liquidify": "Liquidify"},
}


def style_label(field: str, value: str) -> str:
    """Human label for an enumerated style value; unknown values echo back."""
    return STYLE_LABELS.get(field, {}).get(value, value)


class QRStudioError(Exception):
    """Base class for every error raised by qrstudio."""


class StateError(QRStudioError, ValueError):
    """A generator state value is outside its enumeration or malformed."""


@dataclass(frozen=True)
class Margin:
    top: int
    right: int
    bottom: int
    left: int


@dataclass
class MarkerState:
    """Shape controls for one finder marker."""

    marker_style: str = "auto"
    marker_shape: str = "square"
    marker_inner_shape: str = "auto"


@dataclass
class GeneratorState:
    """Complete, per-render configuration of the QR engine.

    Colours are any string Pillow's ``ImageColor`` understands (``#rgb``,
    ``#rrggbb``, ``#rrggbbaa``, ``rgba(...)``, names). Percentages
    (``logo_size``, ``logo_border_radius``) are 0-100; rates are 0-1.
    """

    text: str = DEFAULT_TEXT
    ecc: str = "M"
    min_version: int = 1
    max_version: int = 40
    mask_pattern: int = -1
    boost_ecc: bool = False

    margin: int | dict | Margin = 2
    scale: int = 20
    light_color: str = "#ffffff"
    dark_color: str = "#000000"
    invert: bool = False
    transparent: bool = False

    pixel_style: str = "rounded"
    marker_style: str = "auto"
    marker_shape: str = "square"
    marker_inner_shape: str = "auto"
    marker_sub: str = "square"
    markers: list[MarkerState] = field(default_factory=list)

    margin_noise: bool = False
    margin_noise_rate: float = 0.5
    margin_noise_space: str = "marker"
    margin_noise_opacity: float | tuple[float, float] = 1.0

    render_points_type: str = "all"
    seed: int = DEFAULT_SEED
    rotate: int = 0

    effect: str = "none"
    effect_timing: str = "after"
    effect_crystalize_radius: int = 12
    effect_liquidify_distort_radius: int = 12
    effect_liquidify_radius: int = 12
    effect_liquidify_threshold: int = 128

    background_image: object | None = None

    transform_perspective_x: float = 0.0
    transform_perspective_y: float = 0.0
    transform_scale: float = 1.0

    logo_image: object | None = None
    logo_size: float = 25.0
    logo_margin: int = 8
    logo_border_radius: float = 10.0

    def with_random_seed(self) -> "GeneratorState":
        """Copy of this state with a freshly drawn seed."""
        return replace(self, seed=random.randint(0, 1_000_000))

    def to_dict(self) -> dict:
        # In-memory images are not serialisable; only string sources survive
        images = {
            key: value if isinstance(value, str) else None
            for key, value in (("background_image", self.background_image), ("logo_image", self.logo_image))
        }
        d = asdict(replace(self, **images))
        if isinstance(self.margin_noise_opacity, tuple):
            d["margin_noise_opacity"] = list(self.margin_noise_opacity)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "GeneratorState":
        """Build a state from snake_case or camelCase keys, validating enumerations."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for raw_key, value in data.items():
            key = _snake_case(raw_key)
            if key == "boost_e_c_c":
                key = "boost_ecc"
            if key not in known:
                log.debug("state.unknown_key: %s", raw_key)
                continue
            kwargs[key] = value

        if "markers" in kwargs:
            kwargs["markers"] = [_marker_from_dict(m) for m in kwargs["markers"] or []]
        if isinstance(kwargs.get("margin_noise_opacity"), list):
            lo, hi = kwargs["margin_noise_opacity"]
            kwargs["margin_noise_opacity"] = (float(lo), float(hi))
        if "ecc" in kwargs:
            kwargs["ecc"] = str(kwargs["ecc"]).upper()

        state = cls(**kwargs)
        validate_state(state)
        return state


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _marker_from_dict(value) -> MarkerState:
    if isinstance(value, MarkerState):
        return value
    kwargs = {_snake_case(k): v for k, v in value.items()}
    return MarkerState(**{k: v for k, v in kwargs.items() if k in ("marker_style", "marker_shape", "marker_inner_shape")})


_CHOICES = {
    "ecc": ECC_LEVELS,
    "pixel_style": PIXEL_STYLES,
    "marker_style": MARKER_STYLES,
    "marker_shape": MARKER_SHAPES,
    "marker_inner_shape": MARKER_INNER_SHAPES,
    "marker_sub": MARKER_SHAPES,
    "margin_noise_space": MARGIN_NOISE_SPACES,
    "render_points_type": RENDER_POINTS_TYPES,
    "effect": EFFECTS,
    "effect_timing": EFFECT_TIMINGS,
}


def validate_state(state: GeneratorState) -> None:
    """Raise StateError when an enumerated field holds an unknown value."""
    for name, choices in _CHOICES.items():
        value = getattr(state, name)
        if value not in choices:
            raise StateError(f"{name}={value!r} is not one of {', '.join(map(str, choices))}")
    for idx, marker in enumerate(state.markers):
        if marker.marker_style not in MARKER_STYLES:
            raise StateError(f"markers[{idx}].marker_style={marker.marker_style!r} is invalid")
        if marker.marker_shape not in MARKER_SHAPES:
            raise StateError(f"markers[{idx}].marker_shape={marker.marker_shape!r} is invalid")
        if marker.marker_inner_shape not in MARKER_INNER_SHAPES:
            raise StateError(f"markers[{idx}].marker_inner_shape={marker.marker_inner_shape!r} is invalid")


def resolve_margin(margin: int | dict | Margin) -> Margin:
    """Expand a uniform or four-sided margin into a Margin."""
    if isinstance(margin, Margin):
        return margin
    if isinstance(margin, dict):
        return Margin(
            top=int(margin.get("top", 0)),
            right=int(margin.get("right", 0)),
            bottom=int(margin.get("bottom", 0)),
            left=int(margin.get("left", 0)),
        )
    m = int(margin)
    return Margin(m, m, m, m)


def _clamp(value, lo, hi):
    return max(lo, min(hi, value))


def normalize_state(state: GeneratorState) -> GeneratorState:
    """Clamp numeric fields into their documented ranges.

    The renderer never validates numbers itself; this runs once at the
    boundary so negative margins or zero scale cannot break a render.
    """
    m = resolve_margin(state.margin)
    margin = Margin(*(max(0, v) for v in (m.top, m.right, m.bottom, m.left)))

    min_version = _clamp(int(state.min_version), 1, 40)
    max_version = _clamp(int(state.max_version), min_version, 40)

    opacity = state.margin_noise_opacity
    if isinstance(opacity, (tuple, list)):
        lo, hi = (_clamp(float(v), 0.0, 1.0) for v in opacity)
        opacity = (min(lo, hi), max(lo, hi))
    else:
        opacity = _clamp(float(opacity), 0.0, 1.0)

    mask = int(state.mask_pattern)
    if not 0 <= mask <= 7:
        mask = -1

    rotate = int(state.rotate) % 360
    rotate = min(ROTATIONS, key=lambda r: min(abs(r - rotate), 360 - abs(r - rotate)))

    normalized = replace(
        state,
        margin=margin,
        scale=max(1, int(state.scale)),
        min_version=min_version,
        max_version=max_version,
        mask_pattern=mask,
        margin_noise_rate=_clamp(float(state.margin_noise_rate), 0.0, 1.0),
        margin_noise_opacity=opacity,
        rotate=rotate,
        effect_crystalize_radius=max(1, int(state.effect_crystalize_radius)),
        effect_liquidify_distort_radius=max(0, int(state.effect_liquidify_distort_radius)),
        effect_liquidify_radius=max(0, int(state.effect_liquidify_radius)),
        effect_liquidify_threshold=_clamp(int(state.effect_liquidify_threshold), 0, 255),
        transform_perspective_x=_clamp(float(state.transform_perspective_x), -1.0, 1.0),
        transform_perspective_y=_clamp(float(state.transform_perspective_y), -1.0, 1.0),
        transform_scale=float(state.transform_scale) if state.transform_scale > 0 else 1.0,
        logo_size=_clamp(float(state.logo_size), 0.0, 100.0),
        logo_margin=max(0, int(state.logo_margin)),
        logo_border_radius=_clamp(float(state.logo_border_radius), 0.0, 50.0),
    )
    validate_state(normalized)
    return normalized


def load_state(path: str | Path) -> GeneratorState:
    """Read a JSON state file (snake_case or camelCase keys)."""
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    state = GeneratorState.from_dict(data)
    audit("state.loaded", logger=log, path=str(path), keys=len(data))
    return state


def save_state(state: GeneratorState, path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(state.to_dict(), fh, indent=2)
    audit("state.saved", logger=log, path=str(path))

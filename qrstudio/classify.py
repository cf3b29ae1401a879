"""Pixel classifier: decide, for every cell of the margin-expanded grid, what gets painted.

Cells are addressed in symbol module coordinates: ``(0, 0)`` is the top-left
module of the symbol, negative coordinates lie in the left/top margin.
Each classified cell also carries the *target* coordinate it is painted at,
which folds in rotation and the margin offset.
"""

from dataclasses import dataclass

from qrstudio.encoder import EncodedSymbol, ModuleType
from qrstudio.logging import audit, get_logger, trace
from qrstudio.rand import cell_random
from qrstudio.state import GeneratorState, MarkerState, resolve_margin

log = get_logger("classify")

MARKER_POSITIONS = ("top-left", "top-right", "bottom-left", "sub")

# Inner shape used when a marker asks for "auto"
AUTO_INNER_SHAPES = {
    "circle": "circle",
    "tiny-plus": "plus",
    "octagon": "diamond",
}

# Twelve 3x3 windows kept clear around the finder corners in "extreme" noise mode,
# as (x, y) origins; "end" is replaced by size - 2 and "far" by size - 8.
_EXTREME_CUTOUTS = (
    (-1, -1), (-1, 5), (-1, "end"), (-1, "far"),
    (5, -1), (5, 5), (5, "end"), (5, "far"),
    ("end", -1), ("end", 5), ("far", -1), ("far", 5),
)


@dataclass
class MarkerInfo:
    """Membership of a cell in a finder marker or an alignment sub-marker."""

    x: int
    y: int
    position: str
    is_center: bool
    is_inner: bool
    is_border: bool
    style: MarkerState

    @property
    def is_sub(self) -> bool:
        return self.position == "sub"


@dataclass
class PixelInfo:
    x: int
    y: int
    is_dark: bool
    is_border: bool
    is_ignored: bool
    marker: MarkerInfo | None = None
    source: tuple[int, int] = (0, 0)


def resolve_marker_style(state: GeneratorState, index: int) -> MarkerState:
    """Effective style of marker ``index`` (0 top-left, 1 top-right, 2 bottom-left, 3 sub).

    Markers 1 and 2 may be overridden by ``state.markers[index - 1]``; the
    top-left marker and sub-markers always use the global style.
    """
    source = state
    if index in (1, 2) and len(state.markers) >= index:
        source = state.markers[index - 1]

    inner = source.marker_inner_shape
    if inner == "auto":
        inner = AUTO_INNER_SHAPES.get(source.marker_shape, "square")

    return MarkerState(
        marker_style=source.marker_style,
        marker_shape=source.marker_shape,
        marker_inner_shape=inner,
    )


def draw_order(pixel: PixelInfo) -> int:
    """Marker rings first, then centres, then inner cells, then everything else."""
    marker = pixel.marker
    if marker is not None:
        if marker.is_border:
            return 0
        if marker.is_center:
            return 1
        if marker.is_inner:
            return 2
    return 4


class _Classifier:
    def __init__(self, symbol: EncodedSymbol, state: GeneratorState):
        self.symbol = symbol
        self.state = state
        self.size = symbol.size
        self.margin = resolve_margin(state.margin)
        self.styles = [resolve_marker_style(state, i) for i in range(4)]

    def rand(self, x: int, y: int, tag: str) -> float:
        return cell_random(self.state.seed, tag, x, y)

    def _make_marker(self, mx: int, my: int, position: str) -> MarkerInfo:
        if position == "sub":
            is_inner = mx == 2 and my == 2
            is_center = is_inner
        else:
            is_inner = 2 <= mx <= 4 and 2 <= my <= 4
            is_center = mx == 3 and my == 3
        return MarkerInfo(
            x=mx, y=my, position=position,
            is_center=is_center, is_inner=is_inner, is_border=not is_inner,
            style=self.styles[MARKER_POSITIONS.index(position)],
        )

    def find_marker(self, x: int, y: int) -> MarkerInfo | None:
        size = self.size
        if 0 <= x < 7 and 0 <= y < 7:
            return self._make_marker(x, y, "top-left")
        if 0 <= x < 7 and size - 7 <= y < size:
            return self._make_marker(x, y - size + 7, "bottom-left")
        if size - 7 <= x < size and 0 <= y < 7:
            return self._make_marker(x - size + 7, y, "top-right")
        if self.symbol.type_at(x, y) == ModuleType.ALIGNMENT:
            # Walk back to the top-left cell of this 5x5 alignment block
            dx = x
            while self.symbol.type_at(dx, y) == ModuleType.ALIGNMENT:
                dx -= 1
            dx += 1
            dy = y
            while self.symbol.type_at(dx, dy) == ModuleType.ALIGNMENT:
                dy -= 1
            dy += 1
            return self._make_marker(x - dx, y - dy, "sub")
        return None

    def _marker_is_dark(self, x: int, y: int, marker: MarkerInfo, is_dark: bool) -> bool:
        """Clear the cells a marker's vector or partial shape does not keep."""
        mx, my = marker.x, marker.y

        if not marker.is_sub:
            if marker.is_border:
                shape = marker.style.marker_shape
                if shape in ("circle", "octagon"):
                    is_dark = False
                elif shape == "plus":
                    if not (2 <= mx <= 4 or 2 <= my <= 4):
                        is_dark = False
                elif shape == "box":
                    if not (1 <= mx <= 5 or 1 <= my <= 5):
                        is_dark = False
                elif shape == "random":
                    if mx != 3 and my != 3 and is_dark:
                        is_dark = self.rand(x, y, "marker") < 0.5
                elif shape == "tiny-plus":
                    if mx != 3 and my != 3:
                        is_dark = False

            if marker.is_inner and marker.style.marker_inner_shape == "plus":
                if mx != 3 and my != 3:
                    is_dark = False
            return is_dark

        sub = self.state.marker_sub
        if marker.is_border and sub in ("circle", "octagon"):
            is_dark = False

        if sub in ("plus", "tiny-plus"):
            if mx != 2 and my != 2:
                is_dark = False
        elif sub == "box":
            if not (1 <= mx <= 3 or 1 <= my <= 3):
                is_dark = False
        elif sub == "random":
            if mx != 2 and my != 2 and is_dark:
                is_dark = self.rand(x, y, "marker") < 0.5
        return is_dark

    def _in_marker_window(self, x: int, y: int) -> bool:
        size = self.size
        return (
            (-1 <= x <= 7 and -1 <= y <= 7)
            or (-1 <= x <= 7 and size - 8 <= y <= size)
            or (size - 8 <= x <= size and -1 <= y <= 7)
        )

    def _in_minimal_window(self, x: int, y: int) -> bool:
        size = self.size
        return (
            (2 <= y <= 4 and x in (-1, size))
            or (2 <= x <= 4 and y in (-1, size))
            or (size - 5 <= y <= size - 3 and x in (-1, 7))
            or (size - 5 <= x <= size - 3 and y in (-1, 7))
        )

    def _in_extreme_cutout(self, x: int, y: int) -> bool:
        lookup = {"end": self.size - 2, "far": self.size - 8}
        for ox, oy in _EXTREME_CUTOUTS:
            ix = lookup.get(ox, ox)
            iy = lookup.get(oy, oy)
            if ix <= x < ix + 3 and iy <= y < iy + 3:
                return True
        return False

    def _target(self, x: int, y: int) -> tuple[int, int]:
        size = self.size
        tx, ty = x, y
        if -1 <= x < size + 1 and -1 <= y < size + 1:
            rotate = self.state.rotate
            if rotate == 90:
                tx, ty = y, size - x - 1
            elif rotate == 180:
                tx, ty = size - x - 1, size - y - 1
            elif rotate == 270:
                tx, ty = size - y - 1, x
        return tx + self.margin.left, ty + self.margin.top

    def classify(self, x: int, y: int) -> PixelInfo:
        state = self.state
        size = self.size
        points = state.render_points_type
        space = state.margin_noise_space

        if space == "full":
            is_border = x < -1 or y < -1 or x > size or y > size
        else:
            is_border = x < 0 or y < 0 or x >= size or y >= size
        is_ignored = False

        if is_border and state.margin_noise:
            is_dark = self.rand(x, y, "border-noise") < state.margin_noise_rate
        else:
            is_dark = self.symbol.is_dark(x, y)
            kind = self.symbol.type_at(x, y)
            if points == "data" and kind != ModuleType.DATA:
                is_dark = False
                is_ignored = True
            elif points in ("function", "guide", "marker") and kind < ModuleType.FUNCTION:
                is_dark = False
                is_ignored = True

        if points not in ("data", "guide"):
            if space == "marker":
                if self._in_marker_window(x, y):
                    is_border = False
                    is_ignored = False
            elif space in ("minimal", "extreme"):
                if self._in_minimal_window(x, y):
                    is_border = False
                    is_ignored = False

        marker = self.find_marker(x, y)
        if marker is not None:
            is_dark = self._marker_is_dark(x, y, marker, is_dark)

        if space == "extreme" and self._in_extreme_cutout(x, y):
            is_dark = False
            is_border = True
            is_ignored = True

        if points == "guide" and marker is not None:
            is_dark = False
            is_ignored = True
        elif points == "marker" and marker is None:
            is_dark = False
            is_ignored = True

        tx, ty = self._target(x, y)
        return PixelInfo(
            x=tx, y=ty,
            is_dark=is_dark, is_border=is_border, is_ignored=is_ignored,
            marker=marker, source=(x, y),
        )


@trace
def classify_pixels(symbol: EncodedSymbol, state: GeneratorState) -> list[PixelInfo]:
    """Classify every cell of the margin-expanded grid, sorted into draw order."""
    classifier = _Classifier(symbol, state)
    m = classifier.margin
    pixels = [
        classifier.classify(x, y)
        for y in range(-m.top, symbol.size + m.bottom)
        for x in range(-m.left, symbol.size + m.right)
    ]
    pixels.sort(key=draw_order)

    audit(
        "pixels.classified", logger=log,
        total=len(pixels),
        dark=sum(1 for p in pixels if p.is_dark),
        ignored=sum(1 for p in pixels if p.is_ignored),
        markers=sum(1 for p in pixels if p.marker is not None),
        rotate=state.rotate,
    )
    return pixels

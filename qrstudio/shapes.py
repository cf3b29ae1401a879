"""Shape rasterizer: paint classified cells with pixel styles and vector marker shapes.

Implements:
    Pixel styles     square / dot / squircle / rounded / row / column
    Marker shapes    circle / octagon rings (vector, drawn once at the centre)
    Inner shapes     circle / eye / diamond (vector, drawn once at the centre)
    Sub-markers      circle rings for alignment patterns

Every other marker shape (square, plus, box, random, tiny-plus) is already
carved out by the classifier and falls through to the ordinary cell styles.
"""

from dataclasses import dataclass

from qrstudio.canvas import Color, Point, RenderContext, TRANSPARENT, arc_to, parse_color, with_opacity
from qrstudio.classify import PixelInfo
from qrstudio.logging import audit, get_logger, trace
from qrstudio.rand import cell_random
from qrstudio.state import GeneratorState

log = get_logger("shapes")

# Corner geometry in half-cell units: (corner, edge point, other edge point)
_CORNERS = (
    ((0, 0), (0, 1), (1, 0)),  # top left
    ((0, 2), (0, 1), (1, 2)),  # bottom left
    ((2, 0), (2, 1), (1, 0)),  # top right
    ((2, 2), (2, 1), (1, 2)),  # bottom right
)
TOP_LEFT, BOTTOM_LEFT, TOP_RIGHT, BOTTOM_RIGHT = range(4)


@dataclass
class Cell:
    """One cell being painted, with its resolved colours."""

    ctx: RenderContext
    pixel: PixelInfo
    dark: Color
    light: Color
    lookup: dict
    state: GeneratorState

    @property
    def color(self) -> Color:
        return self.dark if self.pixel.is_dark else self.light

    def should_connect(self, dx: int, dy: int) -> bool | None:
        """True/False for a definite neighbour, None when the neighbour is ambiguous."""
        neighbour = self.lookup.get((self.pixel.x + dx, self.pixel.y + dy))
        if neighbour is None:
            return True
        if neighbour.is_ignored or (neighbour.is_border and not neighbour.is_dark):
            return None
        return neighbour.is_dark


def border_opacity(state: GeneratorState, x: int, y: int) -> float:
    opacity = state.margin_noise_opacity
    if isinstance(opacity, (int, float)):
        return float(opacity)
    lo, hi = opacity
    return cell_random(state.seed, "border-op", x, y) * (hi - lo) + lo


def point_to_line_projection(px, py, x1, y1, x2, y2) -> Point:
    dx = x2 - x1
    dy = y2 - y1
    d = dx * dx + dy * dy
    u = ((px - x1) * dx + (py - y1) * dy) / d
    return x1 + u * dx, y1 + u * dy


# ---------------------------------------------------------------------------
# Cell primitives
# ---------------------------------------------------------------------------

def square(cell: Cell, color: Color | None = None) -> None:
    ctx = cell.ctx
    ctx.fill_rect(cell.pixel.x * ctx.cell, cell.pixel.y * ctx.cell, ctx.cell, ctx.cell, color or cell.color)


def dot(cell: Cell, color: Color | None = None) -> None:
    ctx = cell.ctx
    cx, cy = ctx.center(cell.pixel.x, cell.pixel.y)
    ctx.fill_circle(cx, cy, ctx.half, color or cell.color)


def corner(cell: Cell, index: int, color: Color | None = None) -> None:
    """Fill the sliver a rounded corner of radius ~half a cell would cut away."""
    ctx = cell.ctx
    ox, oy = cell.pixel.x * ctx.cell, cell.pixel.y * ctx.cell
    p0, p1, p2 = ((ox + ctx.half * u, oy + ctx.half * v) for u, v in _CORNERS[index])
    path = [p0, p1]
    arc_to(path, p0, p2, ctx.half + 2)
    ctx.fill_polygon(path, color or cell.color)


# ---------------------------------------------------------------------------
# Pixel styles
# ---------------------------------------------------------------------------

def _squircle(cell: Cell) -> None:
    dot(cell)
    x, y = cell.pixel.x, cell.pixel.y
    for i in range(4):
        if cell_random(cell.state.seed, f"squircle-{i}", x, y) < 0.5:
            corner(cell, i)


def _or_assign(values: list, index: int, value) -> None:
    if not values[index]:
        values[index] = value


def _connected(cell: Cell, style: str) -> None:
    """Rounded, row and column styles: corners follow neighbour connectivity."""
    top = cell.should_connect(0, -1)
    bottom = cell.should_connect(0, 1)
    left = cell.should_connect(-1, 0)
    right = cell.should_connect(1, 0)
    top_left = cell.should_connect(-1, -1)
    top_right = cell.should_connect(1, -1)
    bottom_left = cell.should_connect(-1, 1)
    bottom_right = cell.should_connect(1, 1)

    dark, light = cell.dark, cell.light

    if cell.pixel.is_dark:
        colors = [None, None, None, None]
        if style != "row":
            _or_assign(colors, TOP_LEFT, top)
            _or_assign(colors, TOP_RIGHT, top)
            _or_assign(colors, BOTTOM_LEFT, bottom)
            _or_assign(colors, BOTTOM_RIGHT, bottom)
        if style != "column":
            _or_assign(colors, TOP_LEFT, left)
            _or_assign(colors, BOTTOM_LEFT, left)
            _or_assign(colors, TOP_RIGHT, right)
            _or_assign(colors, BOTTOM_RIGHT, right)

        if style == "rounded":
            # One ambiguous side next to a definite one still squares the corner
            if (top is None) != (left is None):
                _or_assign(colors, TOP_LEFT, True)
            if (top is None) != (right is None):
                _or_assign(colors, TOP_RIGHT, True)
            if (bottom is None) != (left is None):
                _or_assign(colors, BOTTOM_LEFT, True)
            if (bottom is None) != (right is None):
                _or_assign(colors, BOTTOM_RIGHT, True)

        for idx, value in enumerate(colors):
            if value is not None:
                corner(cell, idx, dark if value else light)
    elif style == "rounded":
        inside = not cell.pixel.is_border
        if top is not None or left is not None:
            corner(cell, TOP_LEFT, dark if top and left and top_left and inside else light)
        if top is not None or right is not None:
            corner(cell, TOP_RIGHT, dark if top and right and top_right and inside else light)
        if bottom is not None or left is not None:
            corner(cell, BOTTOM_LEFT, dark if bottom and left and bottom_left and inside else light)
        if bottom is not None or right is not None:
            corner(cell, BOTTOM_RIGHT, dark if bottom and right and bottom_right and inside else light)
    elif style == "row":
        if left is not None:
            corner(cell, TOP_LEFT, light)
            corner(cell, BOTTOM_LEFT, light)
        if right is not None:
            corner(cell, TOP_RIGHT, light)
            corner(cell, BOTTOM_RIGHT, light)
    elif style == "column":
        if top is not None:
            corner(cell, TOP_LEFT, light)
            corner(cell, TOP_RIGHT, light)
        if bottom is not None:
            corner(cell, BOTTOM_LEFT, light)
            corner(cell, BOTTOM_RIGHT, light)

    dot(cell)


PIXEL_STYLE_PAINTERS = {
    "square": square,
    "dot": dot,
    "squircle": _squircle,
    "rounded": lambda cell: _connected(cell, "rounded"),
    "row": lambda cell: _connected(cell, "row"),
    "column": lambda cell: _connected(cell, "column"),
}


# ---------------------------------------------------------------------------
# Vector marker shapes (drawn once, at the marker centre)
# ---------------------------------------------------------------------------

def _rings(cell: Cell, outer: float, inner: float) -> None:
    """Light square backdrop, dark disc, light hole, all in cell units."""
    ctx = cell.ctx
    cx, cy = ctx.center(cell.pixel.x, cell.pixel.y)
    c = ctx.cell
    ctx.fill_rect(cx - c * outer, cy - c * outer, c * outer * 2, c * outer * 2, cell.light)
    ctx.fill_circle(cx, cy, c * outer, cell.dark)
    ctx.fill_circle(cx, cy, c * inner, cell.light)


def _octagon_points(dx: float, dy: float) -> list[Point]:
    return [(dx, dy), (-dx, dy), (-dy, dx), (-dy, -dx), (-dx, -dy), (dx, -dy), (dy, -dx), (dy, dx)]


def _octagon_path(cell: Cell, size: float, rounded: bool) -> list[Point]:
    ctx = cell.ctx
    cx, cy = ctx.center(cell.pixel.x, cell.pixel.y)
    c = ctx.cell
    points = [(cx + x * c, cy + y * c) for x, y in _octagon_points(1.5 / 3.5 * size, size)]
    if not rounded:
        return points

    inner = [(cx + x * c, cy + y * c) for x, y in _octagon_points(1.5 / 3.5 * (size - 1), size - 1)]
    path = [((points[0][0] + points[1][0]) / 2, (points[0][1] + points[1][1]) / 2)]
    for i, (x, y) in enumerate(points + [points[0]]):
        previous = points[i - 1] if i > 0 else points[-1]
        nxt = points[(i + 1) % len(points)]
        ix, iy = inner[i % len(inner)]
        p1 = point_to_line_projection(ix, iy, *previous, x, y)
        p2 = point_to_line_projection(ix, iy, *nxt, x, y)
        path.append(p1)
        arc_to(path, (x, y), p2, c)
        path.append(p2)
    return path


def _octagon_marker(cell: Cell, style: str) -> None:
    ctx = cell.ctx
    cx, cy = ctx.center(cell.pixel.x, cell.pixel.y)
    c = ctx.cell
    ctx.fill_rect(cx - c * 3.5, cy - c * 3.5, c * 7, c * 7, cell.light)
    rounded = style == "rounded"
    ctx.fill_polygon(_octagon_path(cell, 3.5, rounded), cell.dark)
    ctx.fill_polygon(_octagon_path(cell, 2.5, rounded), cell.light)


MARKER_SHAPE_PAINTERS = {
    "circle": lambda cell, style: _rings(cell, 3.5, 2.5),
    "octagon": _octagon_marker,
}


def _inner_backdrop(cell: Cell) -> tuple[float, float, float]:
    ctx = cell.ctx
    cx, cy = ctx.center(cell.pixel.x, cell.pixel.y)
    r = ctx.cell * 1.5
    ctx.fill_rect(cx - r, cy - r, r * 2, r * 2, cell.light)
    return cx, cy, r


def _inner_circle(cell: Cell) -> None:
    cx, cy, r = _inner_backdrop(cell)
    cell.ctx.fill_circle(cx, cy, r, cell.dark)


def _inner_eye(cell: Cell) -> None:
    cx, cy, r = _inner_backdrop(cell)
    c = cell.ctx.cell
    path = [(cx, cy - r)]
    arc_to(path, (cx + r, cy), (cx, cy + r), c)
    path.append((cx, cy + r))
    arc_to(path, (cx - r, cy), (cx, cy - r), c)
    cell.ctx.fill_polygon(path, cell.dark)


def _inner_diamond(cell: Cell) -> None:
    cx, cy, r = _inner_backdrop(cell)
    cell.ctx.fill_polygon([(cx, cy - r), (cx + r, cy), (cx, cy + r), (cx - r, cy)], cell.dark)


INNER_SHAPE_PAINTERS = {
    "circle": _inner_circle,
    "eye": _inner_eye,
    "diamond": _inner_diamond,
}

SUB_MARKER_PAINTERS = {
    "circle": lambda cell: _rings(cell, 2.5, 1.5),
}


# ---------------------------------------------------------------------------
# Rasterizer
# ---------------------------------------------------------------------------

@trace
def rasterize(ctx: RenderContext, pixels: list[PixelInfo], state: GeneratorState) -> int:
    """Paint the classified pixels (already in draw order) onto ``ctx``.

    Returns the number of cells painted.
    """
    lookup: dict[tuple[int, int], PixelInfo] = {}
    for p in pixels:
        lookup.setdefault((p.x, p.y), p)

    light_base = TRANSPARENT if state.transparent else parse_color(state.light_color)
    dark_base = parse_color(state.dark_color)
    points = state.render_points_type
    painted = 0

    for pixel in pixels:
        if pixel.is_ignored:
            continue

        opacity = border_opacity(state, pixel.x, pixel.y) if pixel.is_border else 1.0
        fg = with_opacity(dark_base, opacity)
        dark, light = (light_base, fg) if state.invert else (fg, light_base)
        cell = Cell(ctx=ctx, pixel=pixel, dark=dark, light=light, lookup=lookup, state=state)

        style = state.pixel_style
        marker = pixel.marker

        if marker is not None and not marker.is_sub:
            if marker.style.marker_style != "auto":
                style = marker.style.marker_style
            if points == "data":
                continue

            shape_painter = MARKER_SHAPE_PAINTERS.get(marker.style.marker_shape)
            if shape_painter is not None:
                if marker.is_border:
                    continue
                if marker.is_center:
                    shape_painter(cell, style)

            if marker.is_inner:
                inner_painter = INNER_SHAPE_PAINTERS.get(marker.style.marker_inner_shape)
                if inner_painter is not None:
                    if marker.is_center:
                        inner_painter(cell)
                    continue

        if marker is not None and marker.is_sub:
            if points == "data":
                continue
            sub_painter = SUB_MARKER_PAINTERS.get(state.marker_sub)
            if sub_painter is not None:
                if marker.is_border:
                    continue
                if marker.is_center:
                    sub_painter(cell)

        # Let a background image show through light margin cells
        if not pixel.is_dark and state.background_image and pixel.is_border:
            continue

        PIXEL_STYLE_PAINTERS[style](cell)
        painted += 1

    audit("pixels.rasterized", logger=log, painted=painted, style=state.pixel_style,
          marker_shape=state.marker_shape, marker_sub=state.marker_sub)
    return painted

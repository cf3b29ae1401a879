"""Drawing surfaces: the per-render RenderContext and the caller-held output Canvas."""

import io
import math
from dataclasses import dataclass, field

from PIL import Image, ImageColor, ImageDraw

from qrstudio.state import Margin

Color = tuple[int, int, int, int]
Point = tuple[float, float]

TRANSPARENT: Color = (0, 0, 0, 0)

ARC_STEPS = 12


def parse_color(value: str | tuple) -> Color:
    """Parse any Pillow colour string (or tuple) into RGBA."""
    if isinstance(value, tuple):
        rgb = value
    else:
        rgb = ImageColor.getrgb(value)
    if len(rgb) == 3:
        return (rgb[0], rgb[1], rgb[2], 255)
    return tuple(rgb[:4])


def with_opacity(color: Color, opacity: float) -> Color:
    """Scale a colour's alpha by ``opacity`` (0-1)."""
    if opacity >= 1:
        return color
    return (color[0], color[1], color[2], round(color[3] * opacity))


def arc_to(path: list[Point], corner: Point, end: Point, radius: float, steps: int = ARC_STEPS) -> None:
    """Append a tangent arc from the current point towards ``end`` around ``corner``.

    Mirrors the 2D-canvas ``arcTo``: the arc is tangent to the lines
    current->corner and corner->end; ``path[-1]`` is the current point.
    """
    x0, y0 = path[-1]
    x1, y1 = corner
    x2, y2 = end
    ax, ay = x0 - x1, y0 - y1
    bx, by = x2 - x1, y2 - y1
    la = math.hypot(ax, ay)
    lb = math.hypot(bx, by)
    if radius <= 0 or la == 0 or lb == 0:
        path.append(corner)
        return
    ax, ay, bx, by = ax / la, ay / la, bx / lb, by / lb
    cos_theta = max(-1.0, min(1.0, ax * bx + ay * by))
    theta = math.acos(cos_theta)
    if theta < 1e-9 or abs(math.pi - theta) < 1e-9:
        path.append(corner)
        return

    dist = radius / math.tan(theta / 2)
    t1 = (x1 + ax * dist, y1 + ay * dist)
    t2 = (x1 + bx * dist, y1 + by * dist)
    mx, my = ax + bx, ay + by
    ml = math.hypot(mx, my)
    offset = radius / math.sin(theta / 2)
    cx, cy = x1 + mx / ml * offset, y1 + my / ml * offset

    a1 = math.atan2(t1[1] - cy, t1[0] - cx)
    a2 = math.atan2(t2[1] - cy, t2[0] - cx)
    sweep = a2 - a1
    # The tangent arc is always the short way round
    if sweep > math.pi:
        sweep -= 2 * math.pi
    elif sweep < -math.pi:
        sweep += 2 * math.pi

    path.append(t1)
    for i in range(1, steps):
        a = a1 + sweep * i / steps
        path.append((cx + radius * math.cos(a), cy + radius * math.sin(a)))
    path.append(t2)


@dataclass
class RenderContext:
    """Offscreen surface plus the geometry every drawing routine needs."""

    image: Image.Image
    cell: int
    margin: Margin
    width: int
    height: int
    draw: ImageDraw.ImageDraw = field(init=False, repr=False)

    def __post_init__(self):
        self.draw = ImageDraw.Draw(self.image, "RGBA")

    @classmethod
    def create(cls, size: int, cell: int, margin: Margin, background: Color) -> "RenderContext":
        width = (size + margin.left + margin.right) * cell
        height = (size + margin.top + margin.bottom) * cell
        image = Image.new("RGBA", (width, height), background)
        return cls(image=image, cell=cell, margin=margin, width=width, height=height)

    @property
    def half(self) -> float:
        return self.cell / 2

    def center(self, x: int, y: int) -> Point:
        return x * self.cell + self.half, y * self.cell + self.half

    def fill_rect(self, x: float, y: float, w: float, h: float, color: Color) -> None:
        x0, y0 = round(x), round(y)
        x1, y1 = round(x + w) - 1, round(y + h) - 1
        if x1 < x0 or y1 < y0:
            return
        self.draw.rectangle([x0, y0, x1, y1], fill=color)

    def fill_circle(self, cx: float, cy: float, r: float, color: Color) -> None:
        if r <= 0:
            return
        self.draw.ellipse([cx - r, cy - r, cx + r - 1, cy + r - 1], fill=color)

    def fill_polygon(self, points: list[Point], color: Color) -> None:
        if len(points) >= 3:
            self.draw.polygon(points, fill=color)


class Canvas:
    """Caller-held output surface; ``generate`` replaces its image on success."""

    def __init__(self, image: Image.Image | None = None):
        self.image = image

    @property
    def width(self) -> int:
        return self.image.size[0] if self.image is not None else 0

    @property
    def height(self) -> int:
        return self.image.size[1] if self.image is not None else 0

    def save(self, path, format: str | None = None) -> None:
        if self.image is None:
            raise ValueError("Canvas is empty; render into it first")
        self.image.save(path, format=format)

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.save(buf, format="PNG")
        return buf.getvalue()


def paste_over(dest: Image.Image, src: Image.Image, x: int, y: int) -> None:
    """Alpha-composite ``src`` onto ``dest`` at (x, y); offsets may be negative."""
    sx, sy = max(0, -x), max(0, -y)
    dx, dy = max(0, x), max(0, y)
    w = min(src.size[0] - sx, dest.size[0] - dx)
    h = min(src.size[1] - sy, dest.size[1] - dy)
    if w <= 0 or h <= 0:
        return
    dest.alpha_composite(src, dest=(dx, dy), source=(sx, sy, sx + w, sy + h))

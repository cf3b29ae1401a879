"""Geometric post-processing: perspective warp of the rendered bitmap and centred scaling."""

import numpy as np
from PIL import Image

from qrstudio.canvas import Color, paste_over
from qrstudio.logging import audit, get_logger, trace

log = get_logger("transform")

Quad = tuple[tuple[float, float], tuple[float, float], tuple[float, float], tuple[float, float]]


def perspective_corners(width: int, height: int, perspective_x: float, perspective_y: float) -> Quad:
    """Displaced corners (top-left, top-right, bottom-right, bottom-left) of the warp target.

    ``perspective_x`` pulls both sides inwards and tilts the far edge
    (right edge for positive values, left for negative); ``perspective_y``
    does the same with the axes swapped.
    """
    tl = [0.0, 0.0]
    tr = [float(width), 0.0]
    br = [float(width), float(height)]
    bl = [0.0, float(height)]

    if perspective_x != 0:
        offset_x = abs(width * perspective_x / 2)
        offset_y = abs(height * perspective_x / 3)
        tl[0] += offset_x
        tr[0] -= offset_x
        bl[0] += offset_x
        br[0] -= offset_x
        if perspective_x > 0:
            tr[1] += offset_y
            br[1] -= offset_y
        else:
            tl[1] += offset_y
            bl[1] -= offset_y

    if perspective_y != 0:
        offset_x = abs(width * perspective_y / 3)
        offset_y = abs(height * perspective_y / 2)
        tl[1] += offset_y
        tr[1] += offset_y
        bl[1] -= offset_y
        br[1] -= offset_y
        if perspective_y > 0:
            bl[0] += offset_x
            br[0] -= offset_x
        else:
            tl[0] += offset_x
            tr[0] -= offset_x

    return tuple(tl), tuple(tr), tuple(br), tuple(bl)


def _perspective_coeffs(target: Quad, source: Quad) -> list[float]:
    """Coefficients for PIL's PERSPECTIVE transform mapping target points back to source."""
    rows = []
    for (x, y), (u, v) in zip(target, source):
        rows.append([x, y, 1, 0, 0, 0, -u * x, -u * y])
        rows.append([0, 0, 0, x, y, 1, -v * x, -v * y])
    a = np.array(rows, dtype=np.float64)
    b = np.array(source, dtype=np.float64).reshape(8)
    return np.linalg.solve(a, b).tolist()


@trace
def apply_perspective(image: Image.Image, perspective_x: float, perspective_y: float) -> Image.Image:
    """Resample the bitmap into the perspective quadrilateral; outside it is transparent."""
    if perspective_x == 0 and perspective_y == 0:
        return image

    w, h = image.size
    target = perspective_corners(w, h, perspective_x, perspective_y)
    source = ((0, 0), (w, 0), (w, h), (0, h))
    try:
        coeffs = _perspective_coeffs(target, source)
    except np.linalg.LinAlgError:
        # The quad collapsed to a line (|perspective| == 1): nothing left to draw
        log.warning("Perspective %.2f/%.2f collapses the image", perspective_x, perspective_y)
        return Image.new("RGBA", (w, h), (0, 0, 0, 0))

    warped = image.convert("RGBA").transform(
        (w, h),
        Image.Transform.PERSPECTIVE,
        coeffs,
        Image.Resampling.BILINEAR,
        fillcolor=(0, 0, 0, 0),
    )
    audit("transform.perspective", logger=log,
          perspective_x=perspective_x, perspective_y=perspective_y,
          corners=[tuple(round(c, 1) for c in p) for p in target])
    return warped


@trace
def apply_scale(image: Image.Image, scale: float, background: Color) -> Image.Image:
    """Copy the bitmap onto a fresh background, zoomed by ``scale`` about its centre."""
    w, h = image.size
    out = Image.new("RGBA", (w, h), background)
    if scale == 1:
        out.alpha_composite(image.convert("RGBA"))
        return out

    sw, sh = max(1, round(w * scale)), max(1, round(h * scale))
    scaled = image.convert("RGBA").resize((sw, sh), Image.Resampling.BILINEAR)
    paste_over(out, scaled, round((w - sw) / 2), round((h - sh) / 2))
    audit("transform.scaled", logger=log, scale=scale, size=f"{sw}x{sh}")
    return out

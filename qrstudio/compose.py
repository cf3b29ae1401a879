"""Compositor: background fill/image under the QR bitmap and the centre logo on top."""

import base64
import binascii
import io
from pathlib import Path

import requests
from PIL import Image, ImageChops, ImageDraw

from qrstudio.canvas import TRANSPARENT, paste_over, parse_color
from qrstudio.logging import audit, get_logger, trace
from qrstudio.state import GeneratorState, QRStudioError

log = get_logger("compose")

FETCH_TIMEOUT_S = 15


class ImageLoadError(QRStudioError):
    """A background or logo image could not be fetched or decoded."""


@trace
def load_image(source) -> Image.Image:
    """Load an image from a PIL image, file path, ``data:`` URL or http(s) URL."""
    if isinstance(source, Image.Image):
        return source.convert("RGBA")

    try:
        if isinstance(source, Path) or not isinstance(source, str):
            raw = Path(source).read_bytes()
        elif source.startswith("data:"):
            header, _, payload = source.partition(",")
            if ";base64" in header:
                raw = base64.b64decode(payload, validate=True)
            else:
                raw = payload.encode()
        elif source.startswith(("http://", "https://")):
            resp = requests.get(source, timeout=FETCH_TIMEOUT_S)
            resp.raise_for_status()
            raw = resp.content
        else:
            raw = Path(source).read_bytes()

        img = Image.open(io.BytesIO(raw))
        img.load()
    except (OSError, ValueError, binascii.Error, requests.RequestException) as e:
        raise ImageLoadError(f"Could not load image {str(source)[:50]}: {e}") from e

    return img.convert("RGBA")


def _cover_fit(img: Image.Image, width: int, height: int) -> tuple[Image.Image, int, int]:
    """Resize to cover width x height keeping aspect; returns (image, x, y) centred."""
    img_ratio = img.size[0] / img.size[1]
    if img_ratio < width / height:
        dw, dh = width, width / img_ratio
    else:
        dw, dh = height * img_ratio, height
    resized = img.resize((max(1, round(dw)), max(1, round(dh))), Image.LANCZOS)
    return resized, round((width - dw) / 2), round((height - dh) / 2)


@trace
def apply_background(image: Image.Image, state: GeneratorState, loader=load_image) -> Image.Image:
    """Lay the background down, then re-draw the QR bitmap on top of it.

    A background image that fails to load is logged and skipped; the plain
    fill stays.
    """
    w, h = image.size
    if state.invert:
        fill = parse_color(state.dark_color)
    else:
        fill = TRANSPARENT if state.transparent else parse_color(state.light_color)
    out = Image.new("RGBA", (w, h), fill)

    source = state.background_image
    kind = "fill"
    if source and not state.transparent:
        if isinstance(source, str) and source.startswith("#"):
            out = Image.new("RGBA", (w, h), parse_color(source))
            kind = "color"
        else:
            try:
                bg = loader(source)
            except ImageLoadError as e:
                log.warning("Background image skipped: %s", e)
            else:
                fitted, x, y = _cover_fit(bg, w, h)
                paste_over(out, fitted, x, y)
                kind = "image"

    out.alpha_composite(image.convert("RGBA"))
    audit("background.applied", logger=log, kind=kind, size=f"{w}x{h}")
    return out


def _rounded_mask(size: int, radius: float) -> Image.Image:
    mask = Image.new("L", (size, size), 0)
    ImageDraw.Draw(mask).rounded_rectangle([0, 0, size - 1, size - 1], radius=radius, fill=255)
    return mask


@trace
def draw_logo(image: Image.Image, state: GeneratorState, loader=load_image) -> Image.Image:
    """Overlay the centre logo in place on ``image`` and return it.

    The logo sits on a rounded light box ``logo + 2 * margin`` wide and is
    clipped to its own rounded square, cover-fitted (wide logos are fitted
    by height and cropped left/right, tall ones by width).

    Raises:
        ImageLoadError: the logo could not be loaded.
    """
    if not state.logo_image:
        return image

    logo = loader(state.logo_image)

    w, h = image.size
    logo_size = min(w, h) * state.logo_size / 100
    total = logo_size + state.logo_margin * 2
    cx, cy = w / 2, h / 2

    draw = ImageDraw.Draw(image)
    bg_x, bg_y = cx - total / 2, cy - total / 2
    draw.rounded_rectangle(
        [bg_x, bg_y, bg_x + total - 1, bg_y + total - 1],
        radius=total * state.logo_border_radius / 100,
        fill=parse_color(state.light_color),
    )

    side = round(logo_size)
    if side <= 0:
        return image

    fitted, ox, oy = _cover_fit(logo, side, side)
    tile = Image.new("RGBA", (side, side), TRANSPARENT)
    paste_over(tile, fitted, ox, oy)
    clip = _rounded_mask(side, side * state.logo_border_radius / 100)
    tile.putalpha(ImageChops.multiply(tile.getchannel("A"), clip))

    paste_over(image, tile, round(cx - side / 2), round(cy - side / 2))
    audit("logo.composited", logger=log, logo_px=side, box_px=round(total),
          radius_pct=state.logo_border_radius)
    return image

"""Pixel effects: whole-bitmap decorative distortions.

Implements:
    crystalize  seeded Voronoi faceting (every pixel takes its nearest site's colour)
    liquidify   blur + two-tone threshold, optionally pre-distorted by crystalize
"""

import numpy as np
from PIL import Image, ImageFilter
from scipy import ndimage

from qrstudio.canvas import Color, parse_color
from qrstudio.logging import audit, get_logger, trace
from qrstudio.state import GeneratorState

log = get_logger("effects")


@trace
def crystalize(image: Image.Image, radius: int, seed: int) -> Image.Image:
    """Facet the bitmap into Voronoi cells of roughly ``radius`` pixels.

    One site is dropped at a seeded random spot inside every
    ``radius`` x ``radius`` tile; each pixel then copies the colour found
    at its nearest site.
    """
    radius = max(1, int(radius))
    arr = np.asarray(image.convert("RGBA"))
    h, w = arr.shape[:2]

    # default_rng only takes non-negative seeds
    rng = np.random.default_rng(seed & 0xFFFF_FFFF_FFFF_FFFF)
    gy, gx = np.meshgrid(np.arange(0, h, radius), np.arange(0, w, radius), indexing="ij")
    jitter = rng.integers(0, radius, size=(2,) + gy.shape)
    sites_y = np.clip(gy + jitter[0], 0, h - 1)
    sites_x = np.clip(gx + jitter[1], 0, w - 1)

    # Sites are the zero (background) cells of the distance transform
    not_site = np.ones((h, w), dtype=bool)
    not_site[sites_y, sites_x] = False
    nearest_y, nearest_x = ndimage.distance_transform_edt(
        not_site, return_distances=False, return_indices=True,
    )

    out = arr[nearest_y, nearest_x]
    audit("effect.crystalize", logger=log, radius=radius, seed=seed, sites=int(sites_y.size))
    return Image.fromarray(out)


@trace
def liquidify(image: Image.Image, radius: int, threshold: int, light: Color, dark: Color) -> Image.Image:
    """Melt module edges together and recolour with a two-tone palette.

    Luminance is blurred with a Gaussian of roughly ``radius`` reach; pixels
    darker than ``threshold`` (0-255) become ``dark``, the rest ``light``.
    """
    w, h = image.size
    # Measure luminance over an opaque version of the light colour so that
    # transparent areas count as light
    base = Image.new("RGBA", (w, h), light[:3] + (255,))
    base.alpha_composite(image.convert("RGBA"))
    gray = base.convert("L")
    if radius > 0:
        gray = gray.filter(ImageFilter.GaussianBlur(radius / 3))

    lum = np.asarray(gray)
    is_dark = lum < threshold
    out = np.empty((h, w, 4), dtype=np.uint8)
    out[is_dark] = dark
    out[~is_dark] = light

    audit("effect.liquidify", logger=log, radius=radius, threshold=threshold,
          dark_ratio=round(float(is_dark.mean()), 3))
    return Image.fromarray(out)


def _no_effect(image: Image.Image, state: GeneratorState) -> Image.Image:
    return image


def _crystalize_effect(image: Image.Image, state: GeneratorState) -> Image.Image:
    return crystalize(image, state.effect_crystalize_radius, state.seed)


def _liquidify_effect(image: Image.Image, state: GeneratorState) -> Image.Image:
    if state.effect_liquidify_distort_radius:
        image = crystalize(image, state.effect_liquidify_distort_radius, state.seed)
    return liquidify(
        image,
        state.effect_liquidify_radius,
        state.effect_liquidify_threshold,
        parse_color(state.light_color),
        parse_color(state.dark_color),
    )


EFFECTS = {
    "none": _no_effect,
    "crystalize": _crystalize_effect,
    "liquidify": _liquidify_effect,
}


def apply_effect(image: Image.Image, state: GeneratorState) -> Image.Image:
    return EFFECTS[state.effect](image, state)

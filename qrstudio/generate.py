"""Render pipeline: text + style state in, finished bitmap out.

    encode -> classify -> rasterize -> perspective -> background/effect
    (order set by ``effect_timing``) -> centred scale -> logo
"""

from dataclasses import dataclass

from PIL import Image

from qrstudio.canvas import TRANSPARENT, Canvas, RenderContext, parse_color
from qrstudio.classify import classify_pixels
from qrstudio.compose import ImageLoadError, apply_background, draw_logo, load_image
from qrstudio.effects import apply_effect
from qrstudio.encoder import EncodedSymbol, QREncoder, SegnoEncoder
from qrstudio.logging import audit, get_logger, trace
from qrstudio.shapes import rasterize
from qrstudio.state import GeneratorState, normalize_state, resolve_margin
from qrstudio.transform import apply_perspective, apply_scale

log = get_logger("generate")


@dataclass
class RenderInfo:
    width: int
    height: int


@dataclass
class GenerateResult:
    qrcode: EncodedSymbol
    info: RenderInfo


@trace
def generate(
    canvas: Canvas | None,
    state: GeneratorState,
    *,
    encoder: QREncoder | None = None,
    loader=None,
) -> GenerateResult | None:
    """Render ``state`` into ``canvas``.

    Args:
        canvas: Output surface; its ``image`` is replaced with the result.
            When None nothing is rendered and None is returned.
        state: Render configuration. Numeric fields are clamped first.
        encoder: QR encoder back-end (defaults to segno).
        loader: Callable turning ``background_image`` / ``logo_image`` into
            a PIL image (defaults to ``load_image``).

    Raises:
        EncodingCapacityExceeded: the text does not fit ``max_version``.
    """
    if canvas is None:
        log.debug("generate: no canvas, skipping render")
        return None

    state = normalize_state(state)
    encoder = encoder or SegnoEncoder()
    loader = loader or load_image

    symbol = encoder.encode(
        state.text,
        min_version=state.min_version,
        max_version=state.max_version,
        ecc=state.ecc,
        mask_pattern=state.mask_pattern,
        boost_ecc=state.boost_ecc,
    )

    light = TRANSPARENT if state.transparent else parse_color(state.light_color)
    background = parse_color(state.dark_color) if state.invert else light

    ctx = RenderContext.create(symbol.size, state.scale, resolve_margin(state.margin), background)
    pixels = classify_pixels(symbol, state)
    rasterize(ctx, pixels, state)

    image = apply_perspective(ctx.image, state.transform_perspective_x, state.transform_perspective_y)

    if state.effect_timing == "after":
        image = apply_background(image, state, loader)
    image = apply_effect(image, state)
    if state.effect_timing == "before":
        image = apply_background(image, state, loader)

    final = apply_scale(image, state.transform_scale, background)

    if state.logo_image:
        try:
            draw_logo(final, state, loader)
        except ImageLoadError as e:
            log.warning("Logo skipped, QR code is still valid: %s", e)

    canvas.image = final
    result = GenerateResult(qrcode=symbol, info=RenderInfo(width=ctx.width, height=ctx.height))
    audit(
        "qr.rendered", logger=log,
        data=state.text[:80], version=symbol.version, ecc=symbol.ecc,
        size=f"{ctx.width}x{ctx.height}", style=state.pixel_style,
        marker=state.marker_shape, effect=state.effect, seed=state.seed,
    )
    return result


def render(state: GeneratorState, **kwargs) -> tuple[Image.Image, GenerateResult]:
    """Render into a fresh canvas and return ``(image, result)``."""
    canvas = Canvas()
    result = generate(canvas, state, **kwargs)
    return canvas.image, result

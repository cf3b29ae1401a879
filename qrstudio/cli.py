"""qrstudio CLI: render styled QR codes from the command line."""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from qrstudio.logging import audit, get_logger, setup_logging
from qrstudio.state import (
    ECC_LEVELS,
    EFFECT_TIMINGS,
    EFFECTS,
    MARGIN_NOISE_SPACES,
    MARKER_INNER_SHAPES,
    MARKER_SHAPES,
    MARKER_STYLES,
    PIXEL_STYLES,
    PRESET_BACKGROUND_COLORS,
    PRESET_COLORS,
    RENDER_POINTS_TYPES,
    ROTATIONS,
    STYLE_LABELS,
    GeneratorState,
    QRStudioError,
    load_state,
    style_label,
    validate_state,
)

log = get_logger("cli")

# CLI flag -> GeneratorState field, for flags that override a loaded state
_STATE_FLAGS = (
    "ecc", "min_version", "max_version", "mask_pattern", "boost_ecc",
    "margin", "scale", "light_color", "dark_color", "invert", "transparent",
    "pixel_style", "marker_style", "marker_shape", "marker_inner_shape", "marker_sub",
    "margin_noise", "margin_noise_rate", "margin_noise_space", "margin_noise_opacity",
    "render_points_type", "seed", "rotate",
    "effect", "effect_timing", "effect_crystalize_radius",
    "effect_liquidify_distort_radius", "effect_liquidify_radius", "effect_liquidify_threshold",
    "background_image", "transform_perspective_x", "transform_perspective_y", "transform_scale",
    "logo_image", "logo_size", "logo_margin", "logo_border_radius",
)


def _parse_margin(s: str) -> int | dict:
    """'2' for a uniform margin, or 'top,right,bottom,left'."""
    parts = [int(p) for p in s.split(",")]
    if len(parts) == 1:
        return parts[0]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("margin takes 1 or 4 comma-separated integers")
    return dict(zip(("top", "right", "bottom", "left"), parts))


def _parse_opacity(s: str) -> float | tuple[float, float]:
    """'0.6' or a 'min,max' range."""
    parts = [float(p) for p in s.split(",")]
    if len(parts) == 1:
        return parts[0]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError("opacity takes a value or a min,max range")
    return parts[0], parts[1]


def build_state(args) -> GeneratorState:
    """Start from --state (or defaults) and apply every flag given explicitly."""
    state = load_state(args.state) if args.state else GeneratorState()
    if args.text is not None:
        state = replace(state, text=args.text)

    overrides = {name: getattr(args, name) for name in _STATE_FLAGS if getattr(args, name) is not None}
    if overrides:
        state = replace(state, **overrides)
    if args.random_seed:
        state = state.with_random_seed()
    validate_state(state)
    return state


def cmd_generate(args):
    """Render a QR code to a PNG."""
    from qrstudio.encoder import get_encoder
    from qrstudio.generate import render

    state = build_state(args)
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    img, result = render(state, encoder=get_encoder(args.encoder))
    img.save(output)

    symbol = result.qrcode
    print(f"Generated: {output} ({img.size[0]}x{img.size[1]})")
    print(f"  Version: {symbol.version}, ECC: {symbol.ecc}, Mask: {symbol.mask}")
    print(f"  Style: {style_label('pixel_style', state.pixel_style)}, "
          f"Marker: {style_label('marker_shape', state.marker_shape)}, "
          f"Effect: {style_label('effect', state.effect)}, Seed: {state.seed}")

    if args.save_state:
        from qrstudio.state import save_state

        save_state(state, args.save_state)
        print(f"  State saved to: {args.save_state}")

    if args.verify:
        from qrstudio.verify import verify

        results = verify(img, expected_data=state.text or None)
        all_pass = True
        for r in results:
            status = "PASS" if r.success else "FAIL"
            if not r.success:
                all_pass = False
            print(f"  [{r.decoder:12s}] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")
        if not all_pass:
            log.warning("Styled code did not scan with every decoder")
            sys.exit(1)


def cmd_types(args):
    """Dump a colour-coded module-type map."""
    from qrstudio.encoder import get_encoder, render_type_map

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    symbol = get_encoder(args.encoder).encode(
        args.text,
        min_version=args.min_version,
        max_version=args.max_version,
        ecc=args.ecc,
        mask_pattern=args.mask_pattern,
    )
    render_type_map(symbol, scale=args.scale, output_path=str(output))

    counts = {}
    for row in symbol.types:
        for t in row:
            counts[t.name] = counts.get(t.name, 0) + 1

    print(f"QR Version {symbol.version} ({symbol.size}x{symbol.size} = {symbol.size ** 2} modules)")
    for name in ("POSITION", "ALIGNMENT", "TIMING", "FUNCTION", "DATA"):
        print(f"  {name.capitalize():10s} {counts.get(name, 0):5d} modules")
    print(f"Saved to: {output}")


def cmd_styles(args):
    """List every style enumeration and colour preset."""
    tables = {
        "pixel styles": ("pixel_style", PIXEL_STYLES),
        "marker styles": ("marker_style", MARKER_STYLES),
        "marker shapes": ("marker_shape", MARKER_SHAPES),
        "marker inner shapes": ("marker_inner_shape", MARKER_INNER_SHAPES),
        "margin noise spaces": ("margin_noise_space", MARGIN_NOISE_SPACES),
        "render points": ("render_points_type", RENDER_POINTS_TYPES),
        "effects": ("effect", EFFECTS),
        "effect timings": ("effect_timing", EFFECT_TIMINGS),
        "ecc levels": ("ecc", ECC_LEVELS),
        "rotations": ("rotate", ROTATIONS),
        "preset colors": ("", PRESET_COLORS),
        "preset backgrounds": ("", PRESET_BACKGROUND_COLORS),
    }
    for label, (field, values) in tables.items():
        if field in STYLE_LABELS:
            shown = [f"{v} ({style_label(field, v)})" for v in values]
        else:
            shown = [str(v) for v in values]
        print(f"{label + ':':22s} {', '.join(shown)}")


def cmd_state(args):
    """Print a state (defaults or a file) as JSON."""
    state = load_state(args.state) if args.state else GeneratorState()
    if args.random_seed:
        state = state.with_random_seed()
    print(json.dumps(state.to_dict(), indent=2))


def _add_state_flags(p):
    p.add_argument("text", nargs="?", default=None, help="Text or URL to encode")
    p.add_argument("--state", default=None, help="JSON state file to start from")
    p.add_argument("--random-seed", action="store_true", help="Draw a fresh random seed")

    enc = p.add_argument_group("encoding")
    enc.add_argument("-e", "--ecc", type=str.upper, choices=ECC_LEVELS, default=None, help="Error correction level")
    enc.add_argument("--min-version", type=int, default=None, help="Smallest QR version (1-40)")
    enc.add_argument("--max-version", type=int, default=None, help="Largest QR version (1-40)")
    enc.add_argument("-m", "--mask-pattern", type=int, default=None, help="Mask 0-7, -1 for auto")
    enc.add_argument("--boost-ecc", action="store_true", default=None, help="Raise ECC while the version fits")

    look = p.add_argument_group("appearance")
    look.add_argument("--margin", type=_parse_margin, default=None, help="Quiet zone: N or top,right,bottom,left")
    look.add_argument("--scale", type=int, default=None, help="Pixels per module")
    look.add_argument("--light-color", default=None, help="Light module colour")
    look.add_argument("--dark-color", default=None, help="Dark module colour")
    look.add_argument("--invert", action="store_true", default=None, help="Swap light and dark")
    look.add_argument("--transparent", action="store_true", default=None, help="Leave light areas transparent")
    look.add_argument("--pixel-style", choices=PIXEL_STYLES, default=None)
    look.add_argument("--marker-style", choices=MARKER_STYLES, default=None)
    look.add_argument("--marker-shape", choices=MARKER_SHAPES, default=None)
    look.add_argument("--marker-inner-shape", choices=MARKER_INNER_SHAPES, default=None)
    look.add_argument("--marker-sub", choices=MARKER_SHAPES, default=None, help="Alignment pattern shape")
    look.add_argument("--render-points-type", choices=RENDER_POINTS_TYPES, default=None)
    look.add_argument("--seed", type=int, default=None, help="Seed for all per-cell randomness")
    look.add_argument("--rotate", type=int, choices=ROTATIONS, default=None)

    noise = p.add_argument_group("margin noise")
    noise.add_argument("--margin-noise", action="store_true", default=None, help="Fill the margin with noise")
    noise.add_argument("--margin-noise-rate", type=float, default=None)
    noise.add_argument("--margin-noise-space", choices=MARGIN_NOISE_SPACES, default=None)
    noise.add_argument("--margin-noise-opacity", type=_parse_opacity, default=None, help="Opacity or min,max")

    fx = p.add_argument_group("effects")
    fx.add_argument("--effect", choices=EFFECTS, default=None)
    fx.add_argument("--effect-timing", choices=EFFECT_TIMINGS, default=None)
    fx.add_argument("--effect-crystalize-radius", type=int, default=None)
    fx.add_argument("--effect-liquidify-distort-radius", type=int, default=None)
    fx.add_argument("--effect-liquidify-radius", type=int, default=None)
    fx.add_argument("--effect-liquidify-threshold", type=int, default=None)

    comp = p.add_argument_group("compositing")
    comp.add_argument("--background-image", default=None, help="Path, URL, data: URL or #colour")
    comp.add_argument("--transform-perspective-x", type=float, default=None)
    comp.add_argument("--transform-perspective-y", type=float, default=None)
    comp.add_argument("--transform-scale", type=float, default=None)
    comp.add_argument("--logo-image", default=None, help="Path, URL or data: URL of the centre logo")
    comp.add_argument("--logo-size", type=float, default=None, help="Logo size, percent of the image")
    comp.add_argument("--logo-margin", type=int, default=None, help="Logo box padding in pixels")
    comp.add_argument("--logo-border-radius", type=float, default=None, help="Corner radius, percent")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="qrstudio", description="qrstudio: styled QR code renderer")

    # Global logging flags
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--json-logs", action="store_true", help="Emit console logs as JSON lines")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Render a styled QR code")
    _add_state_flags(p_gen)
    p_gen.add_argument("-o", "--output", default="output/qr.png", help="Output file path")
    p_gen.add_argument("--encoder", default="segno", choices=["segno", "qrcode"], help="QR encoder back-end")
    p_gen.add_argument("--save-state", default=None, help="Also write the effective state as JSON")
    p_gen.add_argument("--verify", action="store_true", help="Decode the result with pyzbar and OpenCV")

    # --- types ---
    p_types = subparsers.add_parser("types", help="Dump a colour-coded module-type map")
    p_types.add_argument("text", help="Text or URL to encode")
    p_types.add_argument("-o", "--output", default="output/types.png", help="Output file path")
    p_types.add_argument("-e", "--ecc", type=str.upper, choices=ECC_LEVELS, default="M")
    p_types.add_argument("--min-version", type=int, default=1)
    p_types.add_argument("--max-version", type=int, default=40)
    p_types.add_argument("-m", "--mask-pattern", type=int, default=-1)
    p_types.add_argument("--scale", type=int, default=20, help="Pixels per module")
    p_types.add_argument("--encoder", default="segno", choices=["segno", "qrcode"])

    # --- styles ---
    subparsers.add_parser("styles", help="List style options and colour presets")

    # --- state ---
    p_state = subparsers.add_parser("state", help="Print a generator state as JSON")
    p_state.add_argument("--state", default=None, help="JSON state file to normalise and print")
    p_state.add_argument("--random-seed", action="store_true", help="Draw a fresh random seed")

    args = parser.parse_args(argv)

    # Setup logging before any command runs
    level = "DEBUG" if args.verbose else None
    setup_logging(level=level, log_file=args.log_file, json_format=args.json_logs)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    commands = {
        "generate": cmd_generate,
        "types": cmd_types,
        "styles": cmd_styles,
        "state": cmd_state,
    }
    try:
        commands[args.command](args)
    except QRStudioError as e:
        log.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()

"""Encoder adapter: turn text into a module grid plus a parallel module-type grid.

Two interchangeable back-ends are provided. Anything with an ``encode``
method of the same signature can be injected into ``generate``.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Protocol

import qrcode
import qrcode.constants
import qrcode.exceptions
import qrcode.util
import segno
from segno import consts as segno_consts
from PIL import Image, ImageDraw

from qrstudio.logging import audit, get_logger, trace
from qrstudio.state import FALLBACK_TEXT, ECC_LEVELS, QRStudioError

log = get_logger("encoder")


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}


class ModuleType(IntEnum):
    """Classification of a module; everything >= FUNCTION is a fixed pattern."""

    BORDER = -1
    DATA = 0
    FUNCTION = 1
    POSITION = 2
    TIMING = 3
    ALIGNMENT = 4


class EncodingCapacityExceeded(QRStudioError):
    """The payload does not fit in ``max_version`` at the requested ECC level."""


@dataclass
class EncodedSymbol:
    """A square QR symbol: dark bits and module types, indexed ``[y][x]``."""

    version: int
    size: int
    ecc: str
    mask: int | None
    data: list[list[bool]]
    types: list[list[ModuleType]]

    def is_dark(self, x: int, y: int) -> bool:
        if x < 0 or y < 0 or x >= self.size or y >= self.size:
            return False
        return self.data[y][x]

    def type_at(self, x: int, y: int) -> ModuleType:
        if x < 0 or y < 0 or x >= self.size or y >= self.size:
            return ModuleType.BORDER
        return self.types[y][x]


class QREncoder(Protocol):
    def encode(
        self,
        text: str,
        *,
        min_version: int = 1,
        max_version: int = 40,
        ecc: str = "M",
        mask_pattern: int = -1,
        boost_ecc: bool = False,
    ) -> EncodedSymbol: ...


def _higher_levels(ecc: str) -> list[str]:
    return list(ECC_LEVELS[ECC_LEVELS.index(ecc) + 1:])


# ---------------------------------------------------------------------------
# segno back-end (default)
# ---------------------------------------------------------------------------

_SEGNO_TYPES = {
    segno_consts.TYPE_FINDER_PATTERN_DARK: ModuleType.POSITION,
    segno_consts.TYPE_FINDER_PATTERN_LIGHT: ModuleType.POSITION,
    segno_consts.TYPE_SEPARATOR: ModuleType.POSITION,
    segno_consts.TYPE_ALIGNMENT_PATTERN_DARK: ModuleType.ALIGNMENT,
    segno_consts.TYPE_ALIGNMENT_PATTERN_LIGHT: ModuleType.ALIGNMENT,
    segno_consts.TYPE_TIMING_DARK: ModuleType.TIMING,
    segno_consts.TYPE_TIMING_LIGHT: ModuleType.TIMING,
    segno_consts.TYPE_FORMAT_DARK: ModuleType.FUNCTION,
    segno_consts.TYPE_FORMAT_LIGHT: ModuleType.FUNCTION,
    segno_consts.TYPE_VERSION_DARK: ModuleType.FUNCTION,
    segno_consts.TYPE_VERSION_LIGHT: ModuleType.FUNCTION,
    segno_consts.TYPE_DARKMODULE: ModuleType.FUNCTION,
}


class SegnoEncoder:
    """Encode with segno; module types come from its verbose matrix iterator."""

    def _make(self, text: str, version: int | None, ecc: str, mask: int | None, boost: bool):
        return segno.make(text, error=ecc, version=version, mask=mask, micro=False, boost_error=boost)

    @trace
    def encode(self, text, *, min_version=1, max_version=40, ecc="M", mask_pattern=-1, boost_ecc=False):
        text = text or FALLBACK_TEXT
        ecc = ecc.upper()
        mask = None if mask_pattern is None or mask_pattern < 0 else mask_pattern

        try:
            qr = self._make(text, None, ecc, mask, boost_ecc)
        except segno.DataOverflowError as e:
            raise EncodingCapacityExceeded(
                f"{len(text)} chars do not fit in any version at ECC {ecc}"
            ) from e

        if qr.version > max_version:
            raise EncodingCapacityExceeded(
                f"{len(text)} chars need version {qr.version} at ECC {ecc}, max is {max_version}"
            )
        if qr.version < min_version:
            qr = self._make(text, min_version, ecc, mask, boost_ecc)

        size = len(qr.matrix)
        data = [[bool(v) for v in row] for row in qr.matrix]
        types = [
            [_SEGNO_TYPES.get(t, ModuleType.DATA) for t in row]
            for row in qr.matrix_iter(scale=1, border=0, verbose=True)
        ]
        symbol = EncodedSymbol(
            version=qr.version, size=size, ecc=qr.error.upper(), mask=qr.mask, data=data, types=types,
        )
        audit("qr.encoded", logger=log, backend="segno", data=text[:80], version=symbol.version,
              size=f"{size}x{size}", ecc=symbol.ecc, mask=symbol.mask)
        return symbol


# ---------------------------------------------------------------------------
# python-qrcode back-end
# ---------------------------------------------------------------------------

# qrcode 8 sets version 41 on overflow and the setter raises ValueError
# before DataOverflowError is reached
_QRCODE_OVERFLOW = (qrcode.exceptions.DataOverflowError, ValueError)


class QrcodeEncoder:
    """Encode with python-qrcode; module types are derived from symbol geometry."""

    def _fits(self, text: str, version: int, ecc: str) -> bool:
        candidate = qrcode.QRCode(version=version, error_correction=ECC_NAMES[ecc].value, border=0)
        candidate.add_data(text)
        try:
            return candidate.best_fit(start=version) == version
        except _QRCODE_OVERFLOW:
            return False

    @trace
    def encode(self, text, *, min_version=1, max_version=40, ecc="M", mask_pattern=-1, boost_ecc=False):
        text = text or FALLBACK_TEXT
        ecc = ecc.upper()
        mask = None if mask_pattern is None or mask_pattern < 0 else mask_pattern

        qr = qrcode.QRCode(
            version=min_version,
            error_correction=ECC_NAMES[ecc].value,
            box_size=1,
            border=0,
            mask_pattern=mask,
        )
        qr.add_data(text)
        try:
            qr.make(fit=True)
        except _QRCODE_OVERFLOW as e:
            raise EncodingCapacityExceeded(
                f"{len(text)} chars do not fit in any version at ECC {ecc}"
            ) from e

        version = qr.version
        if version > max_version:
            raise EncodingCapacityExceeded(
                f"{len(text)} chars need version {version} at ECC {ecc}, max is {max_version}"
            )

        if boost_ecc:
            boosted = ecc
            for level in _higher_levels(ecc):
                if not self._fits(text, version, level):
                    break
                boosted = level
            if boosted != ecc:
                ecc = boosted
                qr = qrcode.QRCode(
                    version=version, error_correction=ECC_NAMES[ecc].value,
                    box_size=1, border=0, mask_pattern=mask,
                )
                qr.add_data(text)
                qr.make(fit=False)

        size = version * 4 + 17
        data = [[bool(v) for v in row] for row in qr.modules]
        symbol = EncodedSymbol(
            version=version, size=size, ecc=ecc, mask=mask, data=data, types=module_types(version),
        )
        audit("qr.encoded", logger=log, backend="qrcode", data=text[:80], version=version,
              size=f"{size}x{size}", ecc=ecc, mask=mask if mask is not None else "auto")
        return symbol


def module_types(version: int) -> list[list[ModuleType]]:
    """Module-type grid for a version, from the fixed-pattern layout."""
    size = version * 4 + 17
    types = [[ModuleType.DATA] * size for _ in range(size)]

    # Timing patterns (row 6 and column 6)
    for i in range(8, size - 8):
        types[6][i] = ModuleType.TIMING
        types[i][6] = ModuleType.TIMING

    # Alignment patterns override timing where they overlap it
    centers = qrcode.util.pattern_position(version)
    corners = {(6, 6), (6, size - 7), (size - 7, 6)}
    for cy in centers:
        for cx in centers:
            if (cx, cy) in corners:
                continue
            for y in range(cy - 2, cy + 3):
                for x in range(cx - 2, cx + 3):
                    types[y][x] = ModuleType.ALIGNMENT

    # Format information and the dark module
    for i in range(9):
        if i == 6:
            continue
        types[8][i] = ModuleType.FUNCTION
        types[i][8] = ModuleType.FUNCTION
    for i in range(8):
        types[8][size - 8 + i] = ModuleType.FUNCTION
        types[size - 8 + i][8] = ModuleType.FUNCTION

    # Version information (v7+): two 6x3 blocks
    if version >= 7:
        for i in range(6):
            for j in range(3):
                types[i][size - 11 + j] = ModuleType.FUNCTION
                types[size - 11 + j][i] = ModuleType.FUNCTION

    # Finder patterns with their separators (8x8 per corner)
    for i in range(8):
        for j in range(8):
            types[i][j] = ModuleType.POSITION
            types[i][size - 8 + j] = ModuleType.POSITION
            types[size - 8 + i][j] = ModuleType.POSITION

    return types


ENCODERS = {
    "segno": SegnoEncoder,
    "qrcode": QrcodeEncoder,
}


def get_encoder(name: str = "segno") -> QREncoder:
    try:
        return ENCODERS[name]()
    except KeyError:
        raise ValueError(f"Unknown encoder {name!r}; choose from {', '.join(ENCODERS)}") from None


# ---------------------------------------------------------------------------
# Diagnostic module-type dump
# ---------------------------------------------------------------------------

_TYPE_COLORS = {
    ModuleType.POSITION: ((220, 50, 50), (255, 180, 180)),   # red
    ModuleType.ALIGNMENT: ((50, 50, 220), (180, 180, 255)),  # blue
    ModuleType.TIMING: ((50, 180, 50), (180, 255, 180)),     # green
    ModuleType.FUNCTION: ((220, 200, 50), (255, 240, 180)),  # yellow
    ModuleType.DATA: ((0, 0, 0), (255, 255, 255)),
}


@trace
def render_type_map(symbol: EncodedSymbol, scale: int = 20, output_path: str | None = None) -> Image.Image:
    """Render a color-coded bitmap showing module types.

    Colors:
        - Red: Finder patterns and separators
        - Blue: Alignment patterns
        - Green: Timing patterns
        - Yellow: Format / version information
        - Black/White: Data modules (actual value)
    """
    size = symbol.size
    img = Image.new("RGB", (size * scale, size * scale), (255, 255, 255))
    draw = ImageDraw.Draw(img)

    for y in range(size):
        for x in range(size):
            x0, y0 = x * scale, y * scale
            x1, y1 = x0 + scale - 1, y0 + scale - 1
            dark, light = _TYPE_COLORS[symbol.types[y][x]]
            draw.rectangle([x0, y0, x1, y1], fill=dark if symbol.data[y][x] else light)
            # Grid lines
            draw.rectangle([x0, y0, x1, y1], outline=(230, 230, 230))

    if output_path:
        img.save(output_path)
        audit("type_map.saved", logger=log, path=output_path, size=f"{size}x{size}")
    return img

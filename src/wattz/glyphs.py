"""5x7 bitmap font and helpers for drawing text into alpha masks."""

from __future__ import annotations

from typing import Iterable

import numpy as np

GLYPH_WIDTH = 5
GLYPH_HEIGHT = 7
GLYPH_SPACING = 1


GLYPHS_5x7: dict[str, tuple[int, ...]] = {
    "0": (0b01110, 0b10001, 0b10011, 0b10101, 0b11001, 0b10001, 0b01110),
    "1": (0b00100, 0b01100, 0b00100, 0b00100, 0b00100, 0b00100, 0b01110),
    "2": (0b01110, 0b10001, 0b00001, 0b00010, 0b00100, 0b01000, 0b11111),
    "3": (0b11110, 0b00001, 0b00001, 0b01110, 0b00001, 0b00001, 0b11110),
    "4": (0b00010, 0b00110, 0b01010, 0b10010, 0b11111, 0b00010, 0b00010),
    "5": (0b11111, 0b10000, 0b11110, 0b00001, 0b00001, 0b10001, 0b01110),
    "6": (0b00110, 0b01000, 0b10000, 0b11110, 0b10001, 0b10001, 0b01110),
    "7": (0b11111, 0b00001, 0b00010, 0b00100, 0b01000, 0b01000, 0b01000),
    "8": (0b01110, 0b10001, 0b10001, 0b01110, 0b10001, 0b10001, 0b01110),
    "9": (0b01110, 0b10001, 0b10001, 0b01111, 0b00001, 0b00010, 0b01100),
    ".": (0b00000, 0b00000, 0b00000, 0b00000, 0b00000, 0b01100, 0b01100),
    "-": (0b00000, 0b00000, 0b00000, 0b11111, 0b00000, 0b00000, 0b00000),
    "?": (0b01110, 0b10001, 0b00001, 0b00010, 0b00100, 0b00000, 0b00100),
    "%": (0b11000, 0b11001, 0b00010, 0b00100, 0b01000, 0b10011, 0b00011),
    "\N{DEGREE SIGN}": (0b01100, 0b10010, 0b10010, 0b01100, 0b00000, 0b00000, 0b00000),
    "A": (0b01110, 0b10001, 0b10001, 0b11111, 0b10001, 0b10001, 0b10001),
    "C": (0b01110, 0b10001, 0b10000, 0b10000, 0b10000, 0b10001, 0b01110),
    "H": (0b10001, 0b10001, 0b10001, 0b11111, 0b10001, 0b10001, 0b10001),
    "V": (0b10001, 0b10001, 0b10001, 0b10001, 0b10001, 0b01010, 0b00100),
    "W": (0b10001, 0b10001, 0b10001, 0b10101, 0b10101, 0b10101, 0b01010),
    " ": (0b00000,) * GLYPH_HEIGHT,
}


def measure_text(text: str, scale: int = 1) -> tuple[int, int]:
    """Return the ``(width, height)`` in pixels of *text* at *scale*."""

    if not text:
        return 0, 0
    count = len(text)
    width = (count * GLYPH_WIDTH + (count - 1) * GLYPH_SPACING) * scale
    return width, GLYPH_HEIGHT * scale


def fit_scale(text: str, max_width: int, max_height: int, *, max_scale: int) -> int:
    """Largest integer scale at which *text* fits the given box (minimum 1)."""

    base_width, base_height = measure_text(text)
    if base_width == 0:
        return 1
    scale = min(max_width // base_width, max_height // base_height, max_scale)
    return max(1, scale)


def draw_text(mask: np.ndarray, text: str, x: int, y: int, scale: int, value: int = 255) -> None:
    """Render *text* into the 2-D *mask* with its top-left corner at ``(x, y)``.

    Lower-case letters use the upper-case glyphs; unknown characters advance
    the cursor without drawing.
    """

    step = (GLYPH_WIDTH + GLYPH_SPACING) * scale
    cursor_x = x
    for char in text:
        glyph = GLYPHS_5x7.get(char) or GLYPHS_5x7.get(char.upper())
        if glyph is not None:
            _draw_glyph(mask, glyph, cursor_x, y, scale, value)
        cursor_x += step


def _draw_glyph(mask: np.ndarray, glyph: Iterable[int], x: int, y: int, scale: int, value: int) -> None:
    for row_index, row in enumerate(glyph):
        for col_index in range(GLYPH_WIDTH):
            if (row >> (GLYPH_WIDTH - 1 - col_index)) & 1:
                _fill_rect(mask, x + col_index * scale, y + row_index * scale, scale, scale, value)


def _fill_rect(mask: np.ndarray, x: int, y: int, width: int, height: int, value: int) -> None:
    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(mask.shape[1], x + width)
    y1 = min(mask.shape[0], y + height)
    if x1 <= x0 or y1 <= y0:
        return
    mask[y0:y1, x0:x1] = value


__all__ = [
    "GLYPHS_5x7",
    "GLYPH_HEIGHT",
    "GLYPH_SPACING",
    "GLYPH_WIDTH",
    "draw_text",
    "fit_scale",
    "measure_text",
]

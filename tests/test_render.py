from __future__ import annotations

import numpy as np
import pytest

from wattz import render
from wattz.glyphs import GLYPH_HEIGHT, draw_text, fit_scale, measure_text
from wattz.render import ICON_SIZE, StatusBoard, colourise_icon, encode_icon_jpeg, render_icon


def test_measure_text_accounts_for_spacing() -> None:
    assert measure_text("") == (0, 0)
    assert measure_text("8") == (5, GLYPH_HEIGHT)
    assert measure_text("88", scale=2) == (22, 14)


def test_fit_scale_respects_box_and_maximum() -> None:
    assert fit_scale("8", 44, 44, max_scale=3) == 3
    assert fit_scale("12345.67", 44, 44, max_scale=6) == 1
    assert fit_scale("", 10, 10, max_scale=4) == 1


def test_draw_text_clips_at_mask_edges() -> None:
    mask = np.zeros((5, 5), dtype=np.uint8)
    draw_text(mask, "W", 2, 2, 2)
    assert mask.max() == 255
    assert mask[:2, :].max() == 0


def test_render_icon_single_value_is_centred() -> None:
    icon = render_icon("87", "")

    assert icon.shape == (ICON_SIZE, ICON_SIZE)
    assert icon.dtype == np.uint8
    rows = np.flatnonzero(icon.any(axis=1))
    cols = np.flatnonzero(icon.any(axis=0))
    top, bottom = rows[0], ICON_SIZE - 1 - rows[-1]
    left, right = cols[0], ICON_SIZE - 1 - cols[-1]
    assert abs(top - bottom) <= 1
    assert abs(left - right) <= 1


def test_render_icon_stacks_value_over_unit() -> None:
    icon = render_icon("5", "W")
    half = ICON_SIZE // 2

    assert icon[:half].any()
    assert icon[half:].any()


def test_render_icon_differs_by_unit_layout() -> None:
    assert not np.array_equal(render_icon("5", ""), render_icon("5", "W"))


def test_render_icon_rejects_tiny_sizes() -> None:
    with pytest.raises(ValueError):
        render_icon("1", "W", size=4)


def test_colourise_icon_blends_between_colours() -> None:
    icon = np.array([[0, 255]], dtype=np.uint8)

    frame = colourise_icon(icon, (255, 255, 255), (10, 20, 30))

    assert frame.shape == (1, 2, 3)
    assert frame[0, 0].tolist() == [255, 255, 255]
    assert frame[0, 1].tolist() == [10, 20, 30]


def test_encode_icon_jpeg_produces_jpeg() -> None:
    pytest.importorskip("simplejpeg")

    payload = encode_icon_jpeg(render_icon("5", "W"))

    assert payload[:2] == b"\xff\xd8"


def test_encode_icon_jpeg_requires_simplejpeg(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(render, "simplejpeg", None)
    with pytest.raises(RuntimeError):
        encode_icon_jpeg(render_icon("5", "W"))


def test_status_board_keeps_latest_entry() -> None:
    board = StatusBoard()
    assert board.entry is None

    icon = board.render_icon("4.1", "V")
    board.update_status("Battery Voltage: 4.1V", "", icon)

    entry = board.entry
    assert entry is not None
    assert entry.title == "Battery Voltage: 4.1V"
    assert entry.to_dict()["body"] == ""
    assert "icon" not in entry.to_dict()
    with pytest.raises(TypeError):
        board.update_status("title", "body", "not an array")

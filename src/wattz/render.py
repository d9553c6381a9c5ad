"""Status icon rendering and the persistent status entry."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from .glyphs import draw_text, fit_scale, measure_text

logger = logging.getLogger(__name__)

try:  # pragma: no cover - dependency availability varies by platform
    import simplejpeg
except ImportError as exc:  # pragma: no cover - dependency availability varies
    simplejpeg = None
    _SIMPLEJPEG_IMPORT_ERROR = exc
else:  # pragma: no cover - dependency availability varies
    _SIMPLEJPEG_IMPORT_ERROR = None

ICON_SIZE = 48
_ICON_PADDING = 2
_SINGLE_MAX_SCALE = 6
_STACKED_MAX_SCALE = 3


class BaseRenderer(ABC):
    """Boundary between the monitor and whatever displays its status."""

    @abstractmethod
    def render_icon(self, value: str, unit: str) -> object:  # pragma: no cover - interface only
        raise NotImplementedError

    @abstractmethod
    def update_status(self, title: str, body: str, icon: object) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


def render_icon(value: str, unit: str, *, size: int = ICON_SIZE) -> np.ndarray:
    """Draw *value* and *unit* into a ``size``×``size`` 8-bit alpha mask.

    An empty *unit* centres the value as one large block; otherwise the value
    sits in the top half and the unit in the bottom half.
    """

    if size < 8:
        raise ValueError("Icon size must be at least 8 pixels")
    mask = np.zeros((size, size), dtype=np.uint8)
    inner = size - 2 * _ICON_PADDING
    if not unit:
        _draw_centred(mask, value, 0, size, inner, inner, _SINGLE_MAX_SCALE)
        return mask
    half = size // 2
    _draw_centred(mask, value, 0, half, inner, half - _ICON_PADDING, _STACKED_MAX_SCALE)
    _draw_centred(mask, unit, half, size - half, inner, half - _ICON_PADDING, _STACKED_MAX_SCALE)
    return mask


def _draw_centred(
    mask: np.ndarray,
    text: str,
    top: int,
    band_height: int,
    max_width: int,
    max_height: int,
    max_scale: int,
) -> None:
    if not text:
        return
    scale = fit_scale(text, max_width, max_height, max_scale=max_scale)
    width, height = measure_text(text, scale)
    x = (mask.shape[1] - width) // 2
    y = top + (band_height - height) // 2
    draw_text(mask, text, x, y, scale)


def colourise_icon(
    icon: np.ndarray,
    background: tuple[int, int, int],
    foreground: tuple[int, int, int],
) -> np.ndarray:
    """Blend an alpha *icon* between two colours into an RGB frame."""

    alpha = np.asarray(icon, dtype=np.float32)[:, :, np.newaxis] / 255.0
    bg = np.array(background, dtype=np.float32)
    fg = np.array(foreground, dtype=np.float32)
    rgb = bg * (1.0 - alpha) + fg * alpha
    return np.ascontiguousarray(rgb.clip(0, 255).astype(np.uint8))


def encode_icon_jpeg(
    icon: np.ndarray,
    *,
    background: tuple[int, int, int] = (255, 255, 255),
    foreground: tuple[int, int, int] = (0, 0, 0),
    quality: int = 90,
) -> bytes:
    """Encode *icon* as a JPEG preview using the notification colours."""

    if simplejpeg is None:  # pragma: no cover - dependency availability varies
        raise RuntimeError("simplejpeg is required for JPEG encoding") from _SIMPLEJPEG_IMPORT_ERROR
    frame = colourise_icon(icon, background, foreground)
    return simplejpeg.encode_jpeg(frame, quality=int(quality), colorspace="RGB")


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """The persistent status indicator as last rendered."""

    title: str
    body: str
    icon: np.ndarray
    updated_at: float

    def to_dict(self) -> dict[str, object]:
        return {"title": self.title, "body": self.body, "updated_at": self.updated_at}


class StatusBoard(BaseRenderer):
    """In-memory renderer that keeps the latest status entry."""

    def __init__(self, *, icon_size: int = ICON_SIZE) -> None:
        self._icon_size = icon_size
        self._entry: StatusEntry | None = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def entry(self) -> StatusEntry | None:
        with self._lock:
            return self._entry

    def render_icon(self, value: str, unit: str) -> np.ndarray:
        return render_icon(value, unit, size=self._icon_size)

    def update_status(self, title: str, body: str, icon: object) -> None:
        if not isinstance(icon, np.ndarray):
            raise TypeError("StatusBoard icons must be numpy arrays")
        entry = StatusEntry(title=title, body=body, icon=icon, updated_at=time.time())
        with self._lock:
            self._entry = entry
        self._logger.debug("Status updated: %s | %s", title, body)


__all__ = [
    "BaseRenderer",
    "ICON_SIZE",
    "StatusBoard",
    "StatusEntry",
    "colourise_icon",
    "encode_icon_jpeg",
    "render_icon",
]

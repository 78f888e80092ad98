"""
Font provisioning for the compositor.

Resolves a TrueType font per weight (settings override first, then common
system locations) and caches ImageFont instances per (weight, size). When no
TrueType file exists, Pillow's bundled scalable default is used instead.
"""
import logging
import os
from functools import lru_cache
from typing import Callable, Dict, Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from settings import settings

logger = logging.getLogger(__name__)

REGULAR = "regular"
MEDIUM = "medium"
BOLD = "bold"

_BOLD_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/usr/share/fonts/liberation/LiberationSans-Bold.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Bold.ttf",
    "/Library/Fonts/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
)
_MEDIUM_CANDIDATES = (
    "/usr/share/fonts/truetype/noto/NotoSans-Medium.ttf",
    "/usr/share/fonts/truetype/ubuntu/Ubuntu-M.ttf",
)
_REGULAR_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
    "/Library/Fonts/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
)


def _first_existing(paths: Sequence[Optional[str]]) -> Optional[str]:
    for p in paths:
        if p and os.path.exists(p):
            return p
    return None


def find_font(weight: str = REGULAR) -> Optional[str]:
    """Return a font path for the weight; medium falls back to regular."""
    if weight == BOLD:
        return _first_existing((settings.FONT_BOLD, *_BOLD_CANDIDATES))
    if weight == MEDIUM:
        return _first_existing((settings.FONT_MEDIUM, *_MEDIUM_CANDIDATES)) or find_font(REGULAR)
    return _first_existing((settings.FONT_REGULAR, *_REGULAR_CANDIDATES))


class FontBook:
    """Per-weight font cache plus the measurement function text layout depends on."""

    def __init__(self, paths: Optional[Dict[str, Optional[str]]] = None) -> None:
        if paths is None:
            paths = {w: find_font(w) for w in (REGULAR, MEDIUM, BOLD)}
        self.paths = dict(paths)
        missing = [w for w, p in self.paths.items() if not p]
        if missing:
            logger.warning("[fonts] no TrueType font for %s; using Pillow's bundled default", ", ".join(missing))
        self._measure_draw = ImageDraw.Draw(Image.new("L", (1, 1)))
        self._font = lru_cache(maxsize=256)(self._load)

    def _load(self, weight: str, size: int) -> ImageFont.FreeTypeFont:
        path = self.paths.get(weight) or self.paths.get(REGULAR)
        if path:
            try:
                return ImageFont.truetype(path, size)
            except OSError:
                logger.warning("[fonts] could not load %s at %spx; using default", path, size)
        return ImageFont.load_default(size)

    def font(self, weight: str, size: float) -> ImageFont.FreeTypeFont:
        return self._font(weight, max(1, int(round(size))))

    def measure(self, text: str, font: ImageFont.FreeTypeFont) -> float:
        return self._measure_draw.textlength(text, font=font)

    def measurer(self, weight: str, size: float) -> Callable[[str], float]:
        """Bind a font so text layout only sees text -> width."""
        font = self.font(weight, size)
        return lambda text: self.measure(text, font)

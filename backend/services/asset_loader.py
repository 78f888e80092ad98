"""
Asset loading for a render pass.

Decodes the logo, the SDG icon set, the UN badge and (optionally) the user
photo. Every decode runs off the event loop and load() returns only after
all of them have settled, so the compositor never draws half-loaded input.
Decorative assets that fail to load come back as None; the compositor skips
exactly those draw calls.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, List, Optional, Sequence

from PIL import Image

from domain.models import PhotoAsset
from services.layout_constants import LayoutConfig
from storage.static_assets import StaticAssetStore

logger = logging.getLogger(__name__)


@dataclass
class LoadedAssets:
    logo: Optional[Image.Image] = None
    icons: List[Optional[Image.Image]] = field(default_factory=list)
    un_logo: Optional[Image.Image] = None
    photo: Optional[Image.Image] = None

    @property
    def icon_count(self) -> int:
        return sum(1 for icon in self.icons if icon is not None)


class AssetLoader:
    """Loads and caches static assets; decodes the user photo per pass."""

    def __init__(self, store: StaticAssetStore, layout: LayoutConfig):
        self.store = store
        self.layout = layout
        self._cache: Dict[str, Image.Image] = {}
        self._cache_lock = threading.Lock()

    async def load(self, photo: Optional[PhotoAsset] = None) -> LoadedAssets:
        """
        Resolve every asset for one pass.

        Raises PhotoReleasedError if the photo handle was released while the
        pass was in flight; decorative failures never raise.
        """
        icon_tasks = [asyncio.to_thread(self._load_static, path) for path in self.layout.sdg_icon_paths]
        logo_task = asyncio.to_thread(self._load_first, self.layout.logo_candidates)
        un_task = asyncio.to_thread(self._load_first, self.layout.un_logo_candidates)
        photo_task = asyncio.to_thread(photo.image) if photo is not None else _none()

        results = await asyncio.gather(logo_task, un_task, photo_task, *icon_tasks, return_exceptions=True)
        logo, un_logo, photo_img, *icons = results
        # Photo errors must reach the caller; the static loaders already swallow theirs.
        if isinstance(photo_img, BaseException):
            raise photo_img
        assets = LoadedAssets(
            logo=_as_image(logo),
            icons=[_as_image(icon) for icon in icons],
            un_logo=_as_image(un_logo),
            photo=photo_img,
        )
        logger.debug(
            "[assets] loaded logo=%s icons=%s/%s un=%s photo=%s",
            assets.logo is not None,
            assets.icon_count,
            len(assets.icons),
            assets.un_logo is not None,
            assets.photo is not None,
        )
        return assets

    def load_now(self, photo: Optional[PhotoAsset] = None) -> LoadedAssets:
        """Blocking variant for scripts and tests that do not run an event loop."""
        return asyncio.run(self.load(photo))

    def _load_first(self, candidates: Sequence[str]) -> Optional[Image.Image]:
        for path in candidates:
            img = self._load_static(path)
            if img is not None:
                return img
        return None

    def _load_static(self, logical_path: str) -> Optional[Image.Image]:
        with self._cache_lock:
            if logical_path in self._cache:
                return self._cache[logical_path]
        img = self._decode(logical_path)
        # Absent assets are retried on the next pass.
        if img is not None:
            with self._cache_lock:
                self._cache[logical_path] = img
        return img

    def _decode(self, logical_path: str) -> Optional[Image.Image]:
        try:
            data = self.store.read_bytes(logical_path)
        except Exception as exc:
            logger.warning("[assets] lookup failed for %s: %s", logical_path, exc)
            return None
        if not data:
            return None
        try:
            with Image.open(BytesIO(data)) as src:
                src.load()
                return src.convert("RGBA")
        except Exception as exc:
            logger.warning("[assets] decode failed for %s: %s", logical_path, exc)
            return None


async def _none() -> None:
    return None


def _as_image(value) -> Optional[Image.Image]:
    if isinstance(value, BaseException):
        logger.warning("[assets] asset load raised %r; treating as absent", value)
        return None
    return value

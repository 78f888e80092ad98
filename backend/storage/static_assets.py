"""
Static asset storage.

Resolves the fixed image resources (logo, SDG icons, UN badge) by their
logical site path, e.g. "/brand/logo.png". Files are read from a local
static root first; when an asset base URL is configured, missing files are
fetched over HTTP instead.
"""
import logging
import threading
from pathlib import Path
from typing import Optional

import requests

from settings import settings

logger = logging.getLogger(__name__)


class StaticAssetStore:
    """
    Read-only view over the static asset tree.

    Layout mirrors the public site:
    - {static_root}/brand/logo.png
    - {static_root}/brand/sdg/sdg-{goal}.png
    - {static_root}/brand/un-logo.png
    """

    def __init__(
        self,
        static_root: Optional[Path] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.static_root = Path(static_root if static_root is not None else settings.STATIC_ROOT).resolve()
        self.base_url = (settings.ASSET_BASE_URL if base_url is None else base_url).rstrip("/")
        self.timeout = settings.ASSET_TIMEOUT if timeout is None else timeout
        self._session = session
        self._session_lock = threading.Lock()

    def resolve(self, logical_path: str) -> Optional[Path]:
        """Map a logical path to a file under the static root; None if it escapes the root."""
        candidate = (self.static_root / logical_path.lstrip("/")).resolve()
        try:
            candidate.relative_to(self.static_root)
        except ValueError:
            logger.warning("[assets] refusing path outside static root: %s", logical_path)
            return None
        return candidate

    def read_bytes(self, logical_path: str) -> Optional[bytes]:
        """Return raw bytes for the asset, or None when it is unavailable anywhere."""
        local = self.resolve(logical_path)
        if local is None:
            return None
        if local.is_file():
            try:
                return local.read_bytes()
            except OSError as exc:
                logger.warning("[assets] read failed for %s: %s", local, exc)
                return None
        if self.base_url:
            return self._fetch_remote(logical_path)
        logger.debug("[assets] missing %s", logical_path)
        return None

    def _get_session(self) -> requests.Session:
        with self._session_lock:
            if self._session is None:
                self._session = requests.Session()
                self._session.headers["User-Agent"] = settings.ASSET_USER_AGENT
            return self._session

    def _fetch_remote(self, logical_path: str) -> Optional[bytes]:
        url = f"{self.base_url}/{logical_path.lstrip('/')}"
        try:
            resp = self._get_session().get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("[assets] fetch failed for %s: %s", url, exc)
            return None
        return resp.content

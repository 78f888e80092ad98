import os
from pathlib import Path

from dotenv import load_dotenv

# Basic settings helper to read environment configuration.

BASE_DIR = Path(__file__).resolve().parent

# Load environment variables from backend/.env (optional) before anything reads them
load_dotenv(BASE_DIR / ".env")


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_path(val: str | None, default: Path) -> Path:
    if not val:
        return default
    return Path(val).expanduser()


class Settings:
    def __init__(self) -> None:
        self.STATIC_ROOT: Path = _as_path(os.getenv("STORYCARD_STATIC_ROOT"), BASE_DIR / "static")
        self.ASSET_BASE_URL: str = os.getenv("STORYCARD_ASSET_BASE_URL", "").rstrip("/")
        self.ASSET_TIMEOUT: float = float(os.getenv("STORYCARD_ASSET_TIMEOUT", "3"))
        self.ASSET_USER_AGENT: str = os.getenv("STORYCARD_ASSET_USER_AGENT", "storycard-studio/1.0 (asset-fetch)")
        self.FONT_REGULAR: str | None = os.getenv("STORYCARD_FONT_REGULAR") or None
        self.FONT_MEDIUM: str | None = os.getenv("STORYCARD_FONT_MEDIUM") or None
        self.FONT_BOLD: str | None = os.getenv("STORYCARD_FONT_BOLD") or None
        self.PREVIEW_WIDTH: int = int(os.getenv("STORYCARD_PREVIEW_WIDTH", "540"))
        self.EXPORT_DIR: Path = _as_path(os.getenv("STORYCARD_EXPORT_DIR"), Path("exports"))
        self.DEBUG_ARTIFACTS: bool = _as_bool(os.getenv("STORYCARD_DEBUG_ARTIFACTS"), False)


settings = Settings()

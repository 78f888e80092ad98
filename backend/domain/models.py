"""
Core domain models for the story card generator.
These are framework-agnostic and shared by the layout, loader and render services.
"""
import datetime
import threading
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

# User photos straight from phones are often HEIC.
register_heif_opener()


Color = Tuple[int, int, int]
RGBA = Tuple[int, int, int, int]


class PosterSize(str, Enum):
    """Canonical output sizes. Pixel dimensions live in the layout constants table."""
    SQUARE = "square"
    PORTRAIT = "portrait"
    STORY = "story"


class TemplateName(str, Enum):
    """
    Visual templates.

    ONETREE is the story/pledge card (name + photo); the others are
    campaign posters driven by title/subtitle/description copy.
    """
    IMPACT = "impact"
    VOLUNTEER = "volunteer"
    DRIVE = "drive"
    THANKYOU = "thankyou"
    ONETREE = "onetree"


class BackgroundMode(str, Enum):
    """Background fill for campaign templates."""
    GRADIENT = "gradient"
    PHOTO = "photo"
    SOLID = "solid"


class TextBlock(str, Enum):
    """Variable-length text blocks that go through wrap + clamp."""
    TITLE = "title"
    SUBTITLE = "subtitle"
    DESCRIPTION = "description"


@dataclass(frozen=True)
class SizeSpec:
    value: PosterSize
    label: str
    width: int
    height: int


@dataclass(frozen=True)
class TemplateStyle:
    """Immutable look of a template. Never mutated at runtime."""
    label: str
    description: str
    accent: Color
    gradient: Tuple[Color, Color]
    glow: Color
    photo_driven: bool = False


NAME_MAX_LENGTH = 80


@dataclass(frozen=True)
class PledgeStoryContent:
    """Content of the story/pledge card."""
    name: str = ""
    pledge_checked: bool = True

    def __post_init__(self) -> None:
        if len(self.name) > NAME_MAX_LENGTH:
            raise ValueError(f"Name is limited to {NAME_MAX_LENGTH} characters, got {len(self.name)}")


@dataclass(frozen=True)
class CampaignContent:
    """Content of the campaign poster templates."""
    title: str = ""
    subtitle: str = ""
    description: str = ""
    cta_text: str = ""
    cta_link: str = ""
    city: str = ""
    date: Optional[datetime.date] = None
    background: BackgroundMode = BackgroundMode.GRADIENT


PosterContent = Union[PledgeStoryContent, CampaignContent]


@dataclass(frozen=True)
class PosterState:
    """
    Single source of truth for one poster.

    The content variant is tied to the template: ONETREE takes
    PledgeStoryContent, every other template takes CampaignContent.
    """
    size: PosterSize = PosterSize.STORY
    template: TemplateName = TemplateName.ONETREE
    content: PosterContent = field(default_factory=PledgeStoryContent)

    def __post_init__(self) -> None:
        expected = PledgeStoryContent if self.template == TemplateName.ONETREE else CampaignContent
        if not isinstance(self.content, expected):
            raise ValueError(
                f"Template {self.template.value!r} requires {expected.__name__}, "
                f"got {type(self.content).__name__}"
            )

    @property
    def is_story(self) -> bool:
        return self.template == TemplateName.ONETREE

    @property
    def name(self) -> str:
        if isinstance(self.content, PledgeStoryContent):
            return self.content.name
        return ""


class PhotoDecodeError(ValueError):
    """Raised when the selected file cannot be decoded as an image."""


class PhotoReleasedError(RuntimeError):
    """Raised when a released photo handle is used."""


class ExportBlockedError(RuntimeError):
    """Raised when export is requested while the export gate is closed."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PhotoAsset:
    """
    Ownership handle over one user-selected photo.

    Decoding happens once and is cached. release() closes the decoded
    bitmap and drops the source bytes; the handle is unusable afterwards.
    """

    def __init__(self, data: bytes, filename: str = "photo") -> None:
        self.filename = filename
        self._data: Optional[bytes] = data
        self._image: Optional[Image.Image] = None
        self._lock = threading.Lock()
        self._released = False

    @classmethod
    def open(cls, data: bytes, filename: str = "photo") -> "PhotoAsset":
        """Create a handle and decode it eagerly so bad files fail at selection time."""
        handle = cls(data, filename=filename)
        handle.image()
        return handle

    @property
    def released(self) -> bool:
        return self._released

    def image(self) -> Image.Image:
        """Return the decoded RGB bitmap (EXIF orientation applied)."""
        with self._lock:
            if self._released:
                raise PhotoReleasedError(f"Photo handle {self.filename!r} was released")
            if self._image is None:
                try:
                    with Image.open(BytesIO(self._data)) as src:
                        src.load()
                        self._image = ImageOps.exif_transpose(src).convert("RGB")
                except (UnidentifiedImageError, OSError) as exc:
                    raise PhotoDecodeError(f"Could not decode {self.filename!r}: {exc}") from exc
            return self._image

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            if self._image is not None:
                self._image.close()
            self._image = None
            self._data = None
            self._released = True


@dataclass
class RenderedFrame:
    """Output of one compositor pass."""
    image: Image.Image
    size: PosterSize
    template: TemplateName
    generation: int = 0

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


@dataclass
class ExportArtifact:
    """Final PNG at the canonical pixel size, ready for download."""
    filename: str
    data: bytes
    width: int
    height: int
    media_type: str = "image/png"
    caption: str = ""

    def save(self, directory: Path) -> Path:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        out_path = directory / self.filename
        out_path.write_bytes(self.data)
        return out_path


@dataclass(frozen=True)
class ExportGate:
    enabled: bool
    reason: Optional[str] = None

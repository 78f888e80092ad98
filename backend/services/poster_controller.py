"""
Preview/export controller.

Owns the PosterState and the single active PhotoAsset, schedules one full
re-render per input change, and produces export artifacts at the exact
canonical pixel size.

Scheduling:
- With a running event loop, every change spawns a render task tagged with
  a generation number. A pass whose generation is stale once its assets
  have loaded is dropped, so the newest input always wins.
- Without a loop (scripts, plain tests) changes only mark the preview dirty;
  render_now() flushes it synchronously.
"""
import asyncio
import dataclasses
import logging
import re
from io import BytesIO
from typing import Optional, Set, Tuple

from domain.models import (
    BackgroundMode,
    CampaignContent,
    ExportArtifact,
    ExportBlockedError,
    ExportGate,
    PhotoAsset,
    PhotoDecodeError,
    PhotoReleasedError,
    PledgeStoryContent,
    PosterSize,
    PosterState,
    RenderedFrame,
    TemplateName,
    TextBlock,
)
from services.asset_loader import AssetLoader
from services.compositor import Compositor
from services.layout_constants import CAMPAIGN_KIND, STORY_KIND, LayoutConfig, template_kind
from settings import settings

logger = logging.getLogger(__name__)

STORY_GATE_REASON = "Add your name and a photo to export."
CAMPAIGN_GATE_REASON = "Add a title before exporting."

FILENAME_PREFIX = "oneteenonetree"
MAX_SLUG_LENGTH = 80


def slugify(value: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim edges, cap length."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH]


class PosterController:
    """
    Single owner of poster input state.

    Usage:
        with PosterController(layout, loader, compositor) as ctl:
            ctl.attach_preview(540, device_pixel_ratio=2)
            ctl.update(name="Asha")
            ctl.select_photo(data)
            artifact = ctl.export_now()
    """

    def __init__(
        self,
        layout: LayoutConfig,
        loader: AssetLoader,
        compositor: Compositor,
        state: Optional[PosterState] = None,
    ):
        self.layout = layout
        self.loader = loader
        self.compositor = compositor
        self._state = state or PosterState()
        # Last content per template kind, so switching back restores it.
        self._contents = {template_kind(self._state.template): self._state.content}
        self._photo: Optional[PhotoAsset] = None
        self._preview_width: Optional[int] = None
        self._generation = 0
        self._dirty = True
        self._frame: Optional[RenderedFrame] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    # ----------------------------------------------------------- properties

    @property
    def state(self) -> PosterState:
        return self._state

    @property
    def photo(self) -> Optional[PhotoAsset]:
        return self._photo

    @property
    def frame(self) -> Optional[RenderedFrame]:
        """Most recently completed preview frame."""
        return self._frame

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def dirty(self) -> bool:
        return self._dirty

    def preview_size(self, state: Optional[PosterState] = None) -> Optional[Tuple[int, int]]:
        """Pixel size of the preview buffer for the state, or None until a preview is attached."""
        if self._preview_width is None:
            return None
        spec = self.layout.size_spec((state or self._state).size)
        return self._preview_width, max(1, int(round(self._preview_width * spec.height / spec.width)))

    # ---------------------------------------------------------------- input

    def update(self, **changes) -> PosterState:
        """
        Replace content fields of the active template variant.

        Unknown fields raise TypeError (dataclasses.replace); fields of the
        other variant are not accepted.
        """
        content = dataclasses.replace(self._state.content, **changes)
        return self._install(dataclasses.replace(self._state, content=content))

    def set_size(self, size: PosterSize) -> PosterState:
        spec = self.layout.size_spec(size)
        return self._install(dataclasses.replace(self._state, size=spec.value))

    def set_template(self, template: TemplateName) -> PosterState:
        self.layout.template_style(template)
        template = TemplateName(template)
        kind = template_kind(template)
        content = self._contents.get(kind)
        if content is None:
            content = PledgeStoryContent() if kind == STORY_KIND else CampaignContent()
        return self._install(PosterState(size=self._state.size, template=template, content=content))

    def select_photo(self, data: bytes, filename: str = "photo") -> PhotoAsset:
        """
        Replace the active photo, decoding it on the calling thread.

        The previous handle is released before the new file is decoded, so
        at most one decoded photo is alive. A file that fails to decode
        leaves no photo selected and raises PhotoDecodeError. Code running
        on an event loop should await select_photo_async() instead.
        """
        self._check_open()
        self._release_photo()
        try:
            handle = PhotoAsset.open(data, filename=filename)
        except PhotoDecodeError:
            self._schedule()
            raise
        return self._adopt_photo(handle)

    async def select_photo_async(self, data: bytes, filename: str = "photo") -> PhotoAsset:
        """Same as select_photo(), with the decode in a worker thread."""
        self._check_open()
        self._release_photo()
        try:
            handle = await asyncio.to_thread(PhotoAsset.open, data, filename)
        except PhotoDecodeError:
            self._schedule()
            raise
        return self._adopt_photo(handle)

    def _adopt_photo(self, handle: PhotoAsset) -> PhotoAsset:
        if self._closed:
            handle.release()
            raise RuntimeError("controller is closed")
        # Another selection may have landed while this one was decoding.
        self._release_photo()
        self._photo = handle
        if isinstance(self._state.content, CampaignContent):
            content = dataclasses.replace(self._state.content, background=BackgroundMode.PHOTO)
            self._set_state(dataclasses.replace(self._state, content=content))
        self._schedule()
        logger.info("[photo] selected %s (%sx%s)", handle.filename, *handle.image().size)
        return handle

    def clear_photo(self) -> None:
        if self._photo is None:
            return
        self._release_photo()
        self._schedule()

    def _release_photo(self) -> None:
        if self._photo is not None:
            logger.debug("[photo] releasing %s", self._photo.filename)
            self._photo.release()
            self._photo = None

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("controller is closed")

    def _set_state(self, state: PosterState) -> None:
        self._state = state
        self._contents[template_kind(state.template)] = state.content

    def _install(self, state: PosterState) -> PosterState:
        self._check_open()
        self._set_state(state)
        self._schedule()
        return state

    # ------------------------------------------------------------ rendering

    def attach_preview(self, display_width: Optional[int] = None, device_pixel_ratio: float = 1.0) -> Tuple[int, int]:
        """
        Create the preview surface: display_width * device_pixel_ratio pixels
        wide, with the canonical aspect of the selected size.
        """
        display_width = display_width or settings.PREVIEW_WIDTH
        if display_width <= 0 or device_pixel_ratio <= 0:
            raise ValueError("preview width and device pixel ratio must be positive")
        self._preview_width = max(1, int(round(display_width * device_pixel_ratio)))
        self._schedule()
        return self.preview_size()

    def _schedule(self) -> None:
        self._generation += 1
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._render_pass(self._generation))
        self._tasks.add(task)
        task.add_done_callback(self._pass_done)

    def _pass_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[render] preview pass failed: %r", exc, exc_info=exc)

    async def _render_pass(self, generation: int) -> Optional[RenderedFrame]:
        size = self.preview_size()
        if size is None:
            # No surface yet; stays dirty for the next pass.
            logger.debug("[render] pass %s skipped: no preview surface", generation)
            return None
        state, photo = self._state, self._photo
        try:
            assets = await self.loader.load(photo)
        except PhotoReleasedError:
            logger.debug("[render] pass %s dropped: photo replaced mid-load", generation)
            return None
        if generation != self._generation:
            logger.debug("[render] pass %s dropped: superseded by %s", generation, self._generation)
            return None
        surface = self.compositor.render_image(state, size[0], size[1], assets)
        self._frame = RenderedFrame(image=surface, size=state.size, template=state.template, generation=generation)
        self._dirty = False
        return self._frame

    async def wait_idle(self) -> Optional[RenderedFrame]:
        """Wait for every scheduled pass to settle; returns the current frame."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self._frame

    def render_now(self) -> Optional[RenderedFrame]:
        """Synchronously flush a pending re-render. For callers without an event loop."""
        if not self._dirty:
            return self._frame
        return asyncio.run(self._render_pass(self._generation))

    # --------------------------------------------------------------- export

    def export_gate(self) -> ExportGate:
        state = self._state
        if template_kind(state.template) == STORY_KIND:
            if not state.name.strip() or self._photo is None:
                return ExportGate(enabled=False, reason=STORY_GATE_REASON)
        elif not state.content.title.strip():
            return ExportGate(enabled=False, reason=CAMPAIGN_GATE_REASON)
        return ExportGate(enabled=True)

    def export_label(self) -> str:
        state = self._state
        if template_kind(state.template) == CAMPAIGN_KIND:
            return state.content.title.strip()
        return state.name.strip()

    def export_filename(self) -> str:
        template_slug = slugify(self.layout.template_style(self._state.template).label)
        label_slug = slugify(self.export_label()) or "poster"
        return f"{FILENAME_PREFIX}-{template_slug}-{label_slug}.png"

    def share_caption(self) -> str:
        """Caption for sharing the exported poster."""
        state = self._state
        label = self.layout.template_style(state.template).label
        if template_kind(state.template) == STORY_KIND:
            title = self.layout.locked_copy[TextBlock.TITLE]
            city = ""
        else:
            title = state.content.title.strip()
            city = state.content.city.strip()
        location = (
            f" Student-led climate action in {city}." if city else " Student-led climate action across communities."
        )
        return f"{self.layout.brand_name} {label} poster: {title}.{location} Join at {self.layout.site_url}."

    async def export(self) -> ExportArtifact:
        """
        Render the current state into a fresh surface at the canonical size
        and encode it as PNG.

        Raises ExportBlockedError when the export gate is closed.
        """
        while True:
            gate = self.export_gate()
            if not gate.enabled:
                raise ExportBlockedError(gate.reason)
            state, photo = self._state, self._photo
            try:
                assets = await self.loader.load(photo)
            except PhotoReleasedError:
                logger.debug("[export] photo replaced mid-load; retrying")
                continue
            if state is self._state and photo is self._photo:
                break
            logger.debug("[export] input changed mid-load; retrying")

        spec = self.layout.size_spec(state.size)
        surface = self.compositor.render_image(state, spec.width, spec.height, assets)
        buf = BytesIO()
        surface.save(buf, format="PNG", optimize=True)
        artifact = ExportArtifact(
            filename=self.export_filename(),
            data=buf.getvalue(),
            width=surface.width,
            height=surface.height,
            caption=self.share_caption(),
        )
        logger.info("[export] %s %sx%s (%s bytes)", artifact.filename, artifact.width, artifact.height, len(artifact.data))
        return artifact

    def export_now(self) -> ExportArtifact:
        return asyncio.run(self.export())

    # ------------------------------------------------------------- teardown

    def close(self) -> None:
        if self._closed:
            return
        self._release_photo()
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._closed = True

    def __enter__(self) -> "PosterController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

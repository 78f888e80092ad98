import asyncio
import io
import logging

import pytest
from PIL import Image

from conftest import png_bytes
from domain.models import (
    BackgroundMode,
    CampaignContent,
    ExportBlockedError,
    PhotoDecodeError,
    PosterSize,
    PosterState,
    TemplateName,
)
from services.layout_constants import DEFAULT_LAYOUT
from services.poster_controller import (
    CAMPAIGN_GATE_REASON,
    STORY_GATE_REASON,
    PosterController,
    slugify,
)


@pytest.fixture
def controller(loader, compositor):
    ctl = PosterController(DEFAULT_LAYOUT, loader, compositor)
    yield ctl
    ctl.close()


class TestExportGate:
    def test_empty_name_with_photo_is_blocked(self, controller, photo_bytes):
        controller.select_photo(photo_bytes)
        gate = controller.export_gate()
        assert not gate.enabled
        assert gate.reason == STORY_GATE_REASON == "Add your name and a photo to export."

    def test_whitespace_name_is_blocked(self, controller, photo_bytes):
        controller.select_photo(photo_bytes)
        controller.update(name="   ")
        assert not controller.export_gate().enabled

    def test_name_without_photo_is_blocked(self, controller):
        controller.update(name="Asha")
        gate = controller.export_gate()
        assert not gate.enabled
        assert gate.reason == STORY_GATE_REASON

    def test_name_and_photo_enable_export(self, controller, photo_bytes):
        controller.update(name="Asha")
        controller.select_photo(photo_bytes)
        gate = controller.export_gate()
        assert gate.enabled
        assert gate.reason is None

    def test_campaign_needs_title(self, controller):
        controller.set_template(TemplateName.IMPACT)
        gate = controller.export_gate()
        assert not gate.enabled and gate.reason == CAMPAIGN_GATE_REASON
        controller.update(title="Spring drive")
        assert controller.export_gate().enabled

    def test_export_refuses_when_blocked(self, controller):
        with pytest.raises(ExportBlockedError) as excinfo:
            controller.export_now()
        assert excinfo.value.reason == STORY_GATE_REASON


def test_export_is_exact_canonical_size(controller, photo_bytes):
    controller.attach_preview(300, device_pixel_ratio=2)
    controller.set_size(PosterSize.PORTRAIT)
    controller.update(name="Asha")
    controller.select_photo(photo_bytes)

    frame = controller.render_now()
    assert (frame.width, frame.height) == (600, 750)

    artifact = controller.export_now()
    assert (artifact.width, artifact.height) == (1080, 1350)
    assert artifact.media_type == "image/png"
    with Image.open(io.BytesIO(artifact.data)) as img:
        assert img.format == "PNG"
        assert img.size == (1080, 1350)


@pytest.mark.parametrize("display_width,dpr", [(180, 1), (375, 3), (1200, 1.5)])
def test_export_size_ignores_preview_size(controller, photo_bytes, display_width, dpr):
    controller.attach_preview(display_width, device_pixel_ratio=dpr)
    controller.update(name="Asha")
    controller.select_photo(photo_bytes)
    artifact = controller.export_now()
    assert (artifact.width, artifact.height) == (1080, 1920)


def test_export_filename_and_caption(controller, photo_bytes, tmp_path):
    controller.update(name="  Asha K!! ")
    controller.select_photo(photo_bytes)
    artifact = controller.export_now()
    assert artifact.filename == "oneteenonetree-oneteenonetree-story-asha-k.png"
    assert artifact.caption == (
        "OneTeenOneTree OneTeenOneTree Story poster: OneTeenOneTree = One Tree. "
        "Student-led climate action across communities. Join at oneteenonetree.org."
    )
    saved = artifact.save(tmp_path / "out")
    assert saved.read_bytes() == artifact.data


def test_campaign_filename_uses_title(loader, compositor):
    state = PosterState(
        size=PosterSize.SQUARE,
        template=TemplateName.DRIVE,
        content=CampaignContent(title="Planting Drive: March 5th", city="Pune"),
    )
    with PosterController(DEFAULT_LAYOUT, loader, compositor, state=state) as ctl:
        assert ctl.export_filename() == "oneteenonetree-planting-drive-planting-drive-march-5th.png"
        assert "Student-led climate action in Pune." in ctl.share_caption()
        artifact = ctl.export_now()
        assert (artifact.width, artifact.height) == (1080, 1080)


def test_slugify():
    assert slugify("  --Hello,  World!!-- ") == "hello-world"
    assert slugify("Ünïcode & more") == "n-code-more"
    assert slugify("!!!") == ""
    assert len(slugify("a" * 200)) == 80


def test_replacing_photo_releases_previous(controller, photo_bytes):
    first = controller.select_photo(photo_bytes, "one.jpg")
    second = controller.select_photo(photo_bytes, "two.jpg")
    assert first.released
    assert not second.released
    assert controller.photo is second

    controller.clear_photo()
    assert second.released
    assert controller.photo is None


def test_close_releases_photo(loader, compositor, photo_bytes):
    with PosterController(DEFAULT_LAYOUT, loader, compositor) as ctl:
        photo = ctl.select_photo(photo_bytes)
    assert photo.released
    with pytest.raises(RuntimeError):
        ctl.update(name="late")


def test_undecodable_photo_leaves_none_selected(controller, photo_bytes):
    previous = controller.select_photo(photo_bytes)
    with pytest.raises(PhotoDecodeError):
        controller.select_photo(b"not an image", "broken.jpg")
    assert previous.released
    assert controller.photo is None


def test_photo_switches_campaign_background(controller, photo_bytes):
    controller.set_template(TemplateName.VOLUNTEER)
    controller.select_photo(photo_bytes)
    assert controller.state.content.background == BackgroundMode.PHOTO


def test_template_switch_restores_content(controller):
    controller.update(name="Asha")
    controller.set_template(TemplateName.IMPACT)
    assert isinstance(controller.state.content, CampaignContent)
    controller.update(title="Spring drive")
    controller.set_template(TemplateName.ONETREE)
    assert controller.state.name == "Asha"
    controller.set_template(TemplateName.THANKYOU)
    assert controller.state.content.title == "Spring drive"


def test_update_rejects_fields_of_other_variant(controller):
    with pytest.raises(TypeError):
        controller.update(title="nope")


def test_unknown_size_fails_fast(controller):
    with pytest.raises(KeyError):
        controller.set_size("banner")


def test_render_without_preview_is_a_no_op(controller):
    assert controller.render_now() is None
    assert controller.dirty
    controller.attach_preview(270)
    frame = controller.render_now()
    assert frame is not None
    assert (frame.width, frame.height) == (270, 480)
    assert not controller.dirty
    assert controller.render_now() is frame


def test_every_change_bumps_generation(controller, photo_bytes):
    start = controller.generation
    controller.update(name="A")
    controller.set_size(PosterSize.SQUARE)
    controller.select_photo(photo_bytes)
    controller.clear_photo()
    assert controller.generation == start + 4


def test_stale_passes_are_dropped(controller, compositor, monkeypatch):
    rendered = []
    original = compositor.render

    def counting_render(surface, state, assets=None, scale=None):
        rendered.append(state.name)
        return original(surface, state, assets, scale)

    monkeypatch.setattr(compositor, "render", counting_render)

    async def scenario():
        controller.attach_preview(108)
        controller.update(name="A")
        controller.update(name="B")
        controller.update(name="C")
        return await controller.wait_idle()

    frame = asyncio.run(scenario())

    assert rendered == ["C"]
    assert frame.generation == controller.generation
    assert not controller.dirty


def test_update_rejects_overlong_name(controller):
    controller.update(name="x" * 80)
    generation = controller.generation
    with pytest.raises(ValueError):
        controller.update(name="x" * 81)
    assert controller.state.name == "x" * 80
    assert controller.generation == generation


def test_async_photo_selection_keeps_loop_responsive(controller):
    big = png_bytes((3000, 3000), (20, 160, 60, 255))

    async def scenario():
        ticks = 0
        selecting = True

        async def heartbeat():
            nonlocal ticks
            while selecting:
                ticks += 1
                await asyncio.sleep(0)

        beat = asyncio.create_task(heartbeat())
        await asyncio.sleep(0)
        photo = await controller.select_photo_async(big, "big.png")
        selecting = False
        await beat
        return photo, ticks

    photo, ticks = asyncio.run(scenario())
    assert controller.photo is photo
    assert photo.image().size == (3000, 3000)
    # A decode on the loop thread would leave the heartbeat at its first tick.
    assert ticks > 3


def test_async_photo_selection_releases_previous(controller, photo_bytes):
    first = controller.select_photo(photo_bytes, "one.jpg")
    with pytest.raises(PhotoDecodeError):
        asyncio.run(controller.select_photo_async(b"not an image", "broken.jpg"))
    assert first.released
    assert controller.photo is None


def test_pass_with_replaced_photo_is_dropped(controller, loader, compositor, photo_bytes, monkeypatch, caplog):
    caplog.set_level(logging.DEBUG, logger="services.poster_controller")
    controller.attach_preview(108)
    controller.update(name="Asha")
    controller.select_photo(photo_bytes, "one.jpg")
    second_bytes = png_bytes((300, 400), (20, 160, 60, 255))

    requested = []
    original_load = loader.load

    async def swapping_load(photo=None):
        requested.append(photo)
        if len(requested) == 1:
            controller.select_photo(second_bytes, "two.png")
        return await original_load(photo)

    rendered = []
    original_render = compositor.render

    def counting_render(surface, state, assets=None, scale=None):
        rendered.append(assets.photo.size)
        return original_render(surface, state, assets, scale)

    monkeypatch.setattr(loader, "load", swapping_load)
    monkeypatch.setattr(compositor, "render", counting_render)

    async def scenario():
        controller.update(name="Bea")
        return await controller.wait_idle()

    frame = asyncio.run(scenario())

    assert requested[0].released
    assert requested[1] is controller.photo
    assert rendered == [(300, 400)]
    assert frame.generation == controller.generation
    assert "photo replaced mid-load" in caplog.text


def test_export_retries_when_state_changes_mid_load(controller, loader, photo_bytes, monkeypatch):
    controller.update(name="Asha")
    controller.select_photo(photo_bytes)

    calls = []
    original_load = loader.load

    async def editing_load(photo=None):
        calls.append(photo)
        if len(calls) == 1:
            controller.update(name="Bea")
        return await original_load(photo)

    monkeypatch.setattr(loader, "load", editing_load)
    artifact = controller.export_now()

    assert len(calls) == 2
    assert artifact.filename == "oneteenonetree-oneteenonetree-story-bea.png"


def test_export_retries_when_photo_replaced_mid_load(controller, loader, photo_bytes, monkeypatch):
    controller.update(name="Asha")
    first = controller.select_photo(photo_bytes, "one.jpg")
    green = png_bytes((400, 300), (20, 160, 60, 255), fmt="JPEG")

    calls = []
    original_load = loader.load

    async def swapping_load(photo=None):
        calls.append(photo)
        if len(calls) == 1:
            controller.select_photo(green, "two.jpg")
        return await original_load(photo)

    monkeypatch.setattr(loader, "load", swapping_load)
    artifact = controller.export_now()

    assert calls[0] is first and first.released
    assert calls[1] is controller.photo
    with Image.open(io.BytesIO(artifact.data)) as img:
        r, g, b, a = img.convert("RGBA").getpixel((8, 960))
    assert g > r + 40


def test_failed_preview_pass_is_logged(controller, compositor, monkeypatch, caplog):
    def broken_render(surface, state, assets=None, scale=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(compositor, "render", broken_render)

    async def scenario():
        controller.attach_preview(108)
        while controller._tasks:
            await asyncio.sleep(0)

    with caplog.at_level(logging.ERROR, logger="services.poster_controller"):
        asyncio.run(scenario())

    assert "[render] preview pass failed" in caplog.text
    assert "boom" in caplog.text
    assert controller.dirty

import pytest
from PIL import Image

from scripts import render_story_card


def test_cli_writes_export(tmp_path, static_root):
    photo = tmp_path / "me.png"
    Image.new("RGB", (640, 480), (30, 120, 60)).save(photo)
    out_dir = tmp_path / "out"

    code = render_story_card.main(
        [
            "--name", "Asha",
            "--photo", str(photo),
            "--size", "square",
            "--static-root", str(static_root),
            "--out-dir", str(out_dir),
            "--preview",
            "--preview-width", "216",
        ]
    )

    assert code == 0
    export = out_dir / "oneteenonetree-oneteenonetree-story-asha.png"
    with Image.open(export) as img:
        assert img.size == (1080, 1080)
    with Image.open(out_dir / f"preview-{export.name}") as img:
        assert img.size == (216, 216)


def test_cli_reports_blocked_export(tmp_path, static_root):
    code = render_story_card.main(["--static-root", str(static_root), "--out-dir", str(tmp_path)])
    assert code == 1
    assert not list(tmp_path.glob("*.png"))


def test_cli_rejects_invalid_input(tmp_path, static_root):
    code = render_story_card.main(["--date", "2025-13-01", "--static-root", str(static_root), "--out-dir", str(tmp_path)])
    assert code == 2


def test_cli_solid_campaign_background(tmp_path, static_root):
    code = render_story_card.main(
        [
            "--template", "drive",
            "--size", "square",
            "--title", "Saturday drive",
            "--background", "solid",
            "--static-root", str(static_root),
            "--out-dir", str(tmp_path),
        ]
    )
    assert code == 0
    with Image.open(tmp_path / "oneteenonetree-planting-drive-saturday-drive.png") as img:
        assert img.size == (1080, 1080)


def test_cli_rejects_unknown_background(tmp_path, static_root):
    with pytest.raises(SystemExit) as excinfo:
        render_story_card.main(["--background", "neon", "--static-root", str(static_root), "--out-dir", str(tmp_path)])
    assert excinfo.value.code == 2

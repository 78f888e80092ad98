import io
import sys
from pathlib import Path

import pytest

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from PIL import Image  # noqa: E402

from services.asset_loader import AssetLoader  # noqa: E402
from services.compositor import Compositor  # noqa: E402
from services.fonts import FontBook  # noqa: E402
from services.layout_constants import DEFAULT_LAYOUT, SDG_GOALS  # noqa: E402
from storage.static_assets import StaticAssetStore  # noqa: E402

MAGENTA = (255, 0, 255, 255)


def png_bytes(size=(64, 64), color=MAGENTA, fmt="PNG") -> bytes:
    img = Image.new("RGBA" if fmt == "PNG" else "RGB", size, color if fmt == "PNG" else color[:3])
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def static_root(tmp_path):
    """Static tree with every brand asset present; SDG icons are solid magenta."""
    root = tmp_path / "static"
    sdg = root / "brand" / "sdg"
    sdg.mkdir(parents=True)
    (root / "brand" / "logo.png").write_bytes(png_bytes((120, 80), (255, 255, 255, 255)))
    (root / "brand" / "un-logo.png").write_bytes(png_bytes((48, 48), (0, 120, 255, 255)))
    for goal in SDG_GOALS:
        (sdg / f"sdg-{goal}.png").write_bytes(png_bytes())
    return root


@pytest.fixture
def store(static_root):
    return StaticAssetStore(static_root=static_root, base_url="")


@pytest.fixture
def loader(store):
    return AssetLoader(store, DEFAULT_LAYOUT)


@pytest.fixture(scope="session")
def fonts():
    return FontBook()


@pytest.fixture
def compositor(fonts):
    return Compositor(DEFAULT_LAYOUT, fonts)


@pytest.fixture
def photo_bytes():
    return png_bytes((400, 300), (200, 30, 30, 255), fmt="JPEG")

"""
Raster helpers shared by the compositor.

Everything here draws onto RGBA layers and blends them into the target with
alpha compositing, so translucent elements stack the same way regardless of
what is underneath. Shapes are supersampled and downsized with Lanczos to
get smooth edges without relying on antialiased primitives.
"""
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageFont

from domain.models import Color, RGBA

SUPERSAMPLE = 3

GradientStop = Tuple[float, RGBA]


def rgba(color: Color, alpha: float = 1.0) -> RGBA:
    return (color[0], color[1], color[2], int(round(255 * alpha)))


@dataclass(frozen=True)
class CoverFit:
    """Cover-fit transform of a source image into a destination rectangle."""
    scale: float
    dx: float
    dy: float
    draw_width: float
    draw_height: float
    dst_width: int
    dst_height: int

    def source_box(self) -> Tuple[float, float, float, float]:
        """Visible region in source pixel coordinates (what survives the crop)."""
        left = -self.dx / self.scale
        top = -self.dy / self.scale
        return (left, top, left + self.dst_width / self.scale, top + self.dst_height / self.scale)


def cover_fit(
    src_width: int,
    src_height: int,
    dst_width: int,
    dst_height: int,
    focus: Tuple[float, float] = (0.5, 0.5),
) -> CoverFit:
    """
    Scale uniformly so the source fully covers the destination.

    scale = max(dst_w / src_w, dst_h / src_h). The focus point is placed at
    the destination center and the offset is clamped so no edge is exposed;
    with the default focus the overflow is cropped equally on both sides.
    """
    scale = max(dst_width / src_width, dst_height / src_height)
    draw_w = src_width * scale
    draw_h = src_height * scale
    dx = dst_width / 2 - draw_w * focus[0]
    dy = dst_height / 2 - draw_h * focus[1]
    dx = min(0.0, max(dx, dst_width - draw_w))
    dy = min(0.0, max(dy, dst_height - draw_h))
    return CoverFit(
        scale=scale,
        dx=dx,
        dy=dy,
        draw_width=draw_w,
        draw_height=draw_h,
        dst_width=dst_width,
        dst_height=dst_height,
    )


def draw_cover(surface: Image.Image, photo: Image.Image, focus: Tuple[float, float] = (0.5, 0.5)) -> CoverFit:
    fit = cover_fit(photo.width, photo.height, surface.width, surface.height, focus)
    covered = photo.resize(surface.size, resample=Image.Resampling.LANCZOS, box=fit.source_box())
    surface.paste(covered.convert("RGBA"), (0, 0))
    return fit


def contain(img: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """Resize to fit inside the box, keeping aspect ratio."""
    scale = min(max_width / img.width, max_height / img.height)
    size = (max(1, int(round(img.width * scale))), max(1, int(round(img.height * scale))))
    if size == img.size:
        return img.convert("RGBA")
    return img.convert("RGBA").resize(size, resample=Image.Resampling.LANCZOS)


def composite_clipped(surface: Image.Image, layer: Image.Image, x: float, y: float) -> None:
    """Alpha-composite layer at (x, y), clipping whatever falls outside the surface."""
    x, y = int(round(x)), int(round(y))
    left, top = max(0, x), max(0, y)
    right = min(surface.width, x + layer.width)
    bottom = min(surface.height, y + layer.height)
    if right <= left or bottom <= top:
        return
    src = (left - x, top - y, right - x, bottom - y)
    surface.alpha_composite(layer, dest=(left, top), source=src)


def _interp_stops(t: np.ndarray, stops: Sequence[GradientStop]) -> np.ndarray:
    offsets = [s[0] for s in stops]
    channels = [np.interp(t, offsets, [s[1][c] for s in stops]) for c in range(4)]
    return np.clip(np.rint(np.stack(channels, axis=-1)), 0, 255).astype(np.uint8)


def linear_gradient(
    size: Tuple[int, int],
    start: Tuple[float, float],
    end: Tuple[float, float],
    stops: Sequence[GradientStop],
) -> Image.Image:
    """RGBA gradient along start -> end, each pixel projected onto that axis."""
    width, height = size
    vx, vy = end[0] - start[0], end[1] - start[1]
    length_sq = vx * vx + vy * vy or 1.0
    xs = (np.arange(width, dtype=np.float64) + 0.5 - start[0]) * vx
    ys = (np.arange(height, dtype=np.float64) + 0.5 - start[1]) * vy
    if vx == 0:
        # Vertical: one column, broadcast across the width.
        column = _interp_stops(np.clip(ys / length_sq, 0.0, 1.0), stops)
        data = np.broadcast_to(column[:, None, :], (height, width, 4))
    else:
        t = np.clip(np.add.outer(ys, xs) / length_sq, 0.0, 1.0)
        data = _interp_stops(t, stops)
    return Image.fromarray(np.ascontiguousarray(data), "RGBA")


def radial_glow(radius: int, color: Color, max_alpha: float) -> Image.Image:
    """Soft round blob, opaque-ish at the center and fading to nothing at radius."""
    radius = max(1, int(radius))
    axis = np.arange(2 * radius, dtype=np.float64) + 0.5 - radius
    dist = np.sqrt(np.add.outer(axis * axis, axis * axis)) / radius
    falloff = np.clip(1.0 - dist, 0.0, 1.0) ** 2
    data = np.empty((2 * radius, 2 * radius, 4), dtype=np.uint8)
    data[..., 0], data[..., 1], data[..., 2] = color
    data[..., 3] = np.rint(falloff * max_alpha * 255).astype(np.uint8)
    return Image.fromarray(data, "RGBA")


def rounded_rect(size: Tuple[float, float], radius: float, fill: RGBA) -> Image.Image:
    """Supersampled rounded rectangle on a transparent layer."""
    w, h = max(1, int(round(size[0]))), max(1, int(round(size[1])))
    big = Image.new("RGBA", (w * SUPERSAMPLE, h * SUPERSAMPLE), (0, 0, 0, 0))
    r = min(radius, w / 2, h / 2) * SUPERSAMPLE
    ImageDraw.Draw(big).rounded_rectangle((0, 0, big.width - 1, big.height - 1), radius=r, fill=fill)
    return big.resize((w, h), resample=Image.Resampling.LANCZOS)


def _quad_bezier(p0, p1, p2, steps: int = 16):
    pts = []
    for i in range(steps + 1):
        t = i / steps
        a, b, c = (1 - t) ** 2, 2 * (1 - t) * t, t * t
        pts.append((a * p0[0] + b * p1[0] + c * p2[0], a * p0[1] + b * p1[1] + c * p2[1]))
    return pts


def leaf_glyph(size: float, fill: RGBA, stroke: RGBA, stroke_width: float) -> Image.Image:
    """Small leaf: two quadratic curves with a midrib."""
    s = max(1.0, size) * SUPERSAMPLE
    dim = int(round(s)) + 2
    big = Image.new("RGBA", (dim, dim), (0, 0, 0, 0))
    draw = ImageDraw.Draw(big)
    outline = _quad_bezier((0, s * 0.6), (s * 0.6, s * 0.2), (s, s * 0.6))
    outline += _quad_bezier((s, s * 0.6), (s * 0.6, s), (0, s * 0.6))[1:]
    draw.polygon(outline, fill=fill)
    draw.line([(s * 0.5, s * 0.2), (s * 0.5, s * 0.95)], fill=stroke, width=max(1, int(round(stroke_width * SUPERSAMPLE))))
    out = max(1, int(round(dim / SUPERSAMPLE)))
    return big.resize((out, out), resample=Image.Resampling.LANCZOS)


@dataclass(frozen=True)
class Shadow:
    blur: float
    offset_y: float
    alpha: int


def draw_text(
    surface: Image.Image,
    xy: Tuple[float, float],
    text: str,
    font: ImageFont.FreeTypeFont,
    fill: RGBA,
    anchor: str = "la",
    shadow: Optional[Shadow] = None,
) -> Tuple[int, int, int, int]:
    """
    Draw text with an optional soft drop shadow. Returns the text bbox on the surface.

    The shadow comes from the text's own alpha, blurred and darkened, so it
    follows the glyph shapes.
    """
    x, y = xy
    probe = ImageDraw.Draw(Image.new("L", (1, 1)))
    bbox = probe.textbbox((x, y), text, font=font, anchor=anchor)
    pad = int(shadow.blur * 3 + abs(shadow.offset_y)) + 2 if shadow else 2
    left, top = int(bbox[0]) - pad, int(bbox[1]) - pad
    layer = Image.new("RGBA", (int(bbox[2]) - left + pad + 1, int(bbox[3]) - top + pad + 1), (0, 0, 0, 0))
    ImageDraw.Draw(layer).text((x - left, y - top), text, font=font, fill=fill, anchor=anchor)
    if shadow:
        alpha = layer.getchannel("A").filter(ImageFilter.GaussianBlur(radius=max(0.1, shadow.blur / 2)))
        alpha = alpha.point(lambda p: p * shadow.alpha // 255)
        shadow_layer = Image.new("RGBA", layer.size, (0, 0, 0, 0))
        shadow_layer.putalpha(alpha)
        composite_clipped(surface, shadow_layer, left, top + shadow.offset_y)
    composite_clipped(surface, layer, left, top)
    return tuple(int(round(v)) for v in bbox)

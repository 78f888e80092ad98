from PIL import Image

from services.drawing import (
    composite_clipped,
    cover_fit,
    draw_cover,
    linear_gradient,
    rounded_rect,
)


def test_cover_fit_landscape_into_square():
    fit = cover_fit(400, 300, 1080, 1080)
    assert fit.scale == max(1080 / 400, 1080 / 300) == 3.6
    assert round(fit.draw_width) == 1440
    assert round(fit.draw_height) == 1080
    # 360px of overflow on the wide axis, cropped equally.
    assert round(fit.dx) == -180
    assert fit.dy == 0
    left, top, right, bottom = fit.source_box()
    assert round(left) == 50 and round(right) == 350
    assert top == 0 and round(bottom) == 300


def test_cover_fit_portrait_into_story_crops_height():
    fit = cover_fit(1000, 2000, 1080, 1920)
    assert fit.scale == 1.08
    assert fit.dx == 0
    assert round(fit.dy) == round((1920 - 2160) / 2)


def test_draw_cover_fills_surface_and_crops_sides():
    photo = Image.new("RGB", (400, 300), (255, 0, 0))
    photo.paste((0, 0, 255), (200, 0, 400, 300))
    surface = Image.new("RGBA", (1080, 1080), (0, 0, 0, 0))

    draw_cover(surface, photo)

    assert surface.getchannel("A").getextrema() == (255, 255)
    r, g, b, _ = surface.getpixel((100, 540))
    assert r > 200 and b < 50
    r, g, b, _ = surface.getpixel((1000, 540))
    assert b > 200 and r < 50
    # The red/blue seam sits at source x=200, the center of the crop box.
    assert surface.getpixel((520, 540))[0] > 200
    assert surface.getpixel((560, 540))[2] > 200


def test_composite_clipped_accepts_offscreen_positions():
    surface = Image.new("RGBA", (20, 20), (0, 0, 0, 255))
    layer = Image.new("RGBA", (10, 10), (255, 255, 255, 255))
    composite_clipped(surface, layer, -5, -5)
    composite_clipped(surface, layer, 100, 100)
    assert surface.getpixel((0, 0)) == (255, 255, 255, 255)
    assert surface.getpixel((4, 4)) == (255, 255, 255, 255)
    assert surface.getpixel((5, 5)) == (0, 0, 0, 255)


def test_linear_gradient_endpoints():
    grad = linear_gradient((4, 100), (0, 0), (0, 100), [(0.0, (0, 0, 0, 255)), (1.0, (200, 100, 50, 255))])
    assert grad.size == (4, 100)
    top = grad.getpixel((0, 0))
    bottom = grad.getpixel((3, 99))
    assert top[0] < 5
    assert bottom[0] > 195 and bottom[1] > 95


def test_rounded_rect_has_transparent_corners():
    chip = rounded_rect((120, 48), 24, (255, 255, 255, 255))
    assert chip.size == (120, 48)
    assert chip.getpixel((0, 0))[3] == 0
    assert chip.getpixel((60, 24))[3] == 255

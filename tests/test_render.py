import io
import math
import random
from dataclasses import replace

import numpy as np
import pytest
from PIL import Image

from synthesizer import render
from synthesizer.modes import ChromaticShift, CloakingMode, GeometricJitter, StandardMode
from synthesizer.render import AffineJitter, ColorShift

from .conftest import gradient_image


def test_target_size_floors_fractional_dimensions():
    assert render.target_size((801, 601), 1.5) == (1201, 901)
    assert render.target_size((800, 600), 2) == (1600, 1200)
    assert render.target_size((800, 600), 1) == (800, 600)


def test_target_size_rejects_downscaling():
    with pytest.raises(ValueError):
        render.target_size((800, 600), 0.5)


def test_size_canvas_upscales_to_rgba():
    canvas = render.size_canvas(gradient_image(40, 30).convert("RGB"), 2)
    assert canvas.size == (80, 60)
    assert canvas.mode == "RGBA"


def test_sample_affine_stays_within_bounds():
    rng = random.Random(3)
    jitter = GeometricJitter()
    for _ in range(200):
        params = render.sample_affine(jitter, rng)
        assert 1.0 <= params.zoom <= 1.03
        assert -0.01 <= params.dx <= 0.01
        assert -0.01 <= params.dy <= 0.01
        assert -0.0025 <= params.angle <= 0.0025


def test_identity_affine_keeps_pixels():
    canvas = gradient_image(40, 30)
    out = render.apply_affine(canvas, AffineJitter(zoom=1.0, dx=0.0, dy=0.0, angle=0.0))
    diff = np.abs(np.asarray(out, dtype=np.int16) - np.asarray(canvas, dtype=np.int16))
    assert out.size == canvas.size
    assert diff.max() <= 1


def test_affine_shift_moves_content():
    canvas = gradient_image(100, 50)
    out = render.apply_affine(canvas, AffineJitter(zoom=1.0, dx=0.01, dy=0.0, angle=0.0))
    assert out.size == canvas.size
    assert np.asarray(out).tobytes() != np.asarray(canvas).tobytes()


def test_sample_color_shift_stays_within_bounds():
    rng = random.Random(5)
    for _ in range(200):
        params = render.sample_color_shift(ChromaticShift(), rng)
        assert -2.0 <= params.hue_degrees <= 2.0
        assert 0.98 <= params.brightness <= 1.02
        assert 0.98 <= params.contrast <= 1.02


def test_neutral_color_matrix_is_identity():
    matrix = render.color_matrix(ColorShift(hue_degrees=0.0, brightness=1.0, contrast=1.0))
    expected = (1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0)
    assert matrix == pytest.approx(expected, abs=1e-9)


def test_color_matrix_folds_brightness_and_contrast():
    matrix = render.color_matrix(ColorShift(hue_degrees=0.0, brightness=1.02, contrast=0.98))
    assert matrix[0] == pytest.approx(0.98 * 1.02)
    assert matrix[3] == pytest.approx(127.5 * 0.02)


def test_apply_color_shift_preserves_alpha_and_size():
    canvas = gradient_image(20, 10)
    canvas.putalpha(200)
    out = render.apply_color_shift(canvas, ColorShift(hue_degrees=1.5, brightness=1.01, contrast=0.99))
    assert out.size == canvas.size
    assert out.mode == "RGBA"
    assert set(out.getchannel("A").getdata()) == {200}


def test_zero_texture_is_a_no_op():
    canvas = gradient_image(30, 20)
    out = render.inject_noise(canvas, 0, 15.0, random.Random(1), alpha_stride=100)
    assert out is canvas


def test_noise_is_bounded_by_intensity_times_scale():
    canvas = Image.new("RGBA", (50, 40), (128, 128, 128, 255))
    out = render.inject_noise(canvas, 0.2, 10.0, random.Random(2))
    pixels = np.asarray(out, dtype=np.int16)
    diff = np.abs(pixels[..., :3] - 128)
    assert diff.max() <= 2
    assert diff.max() > 0
    assert (pixels[..., 3] == 255).all()


def test_noise_clamps_to_byte_range():
    canvas = Image.new("RGBA", (20, 20), (0, 255, 3, 255))
    out = render.inject_noise(canvas, 1.0, 15.0, random.Random(4))
    pixels = np.asarray(out, dtype=np.int16)
    assert pixels.min() >= 0
    assert pixels.max() <= 255


def test_alpha_fingerprint_touches_every_hundredth_pixel():
    canvas = Image.new("RGBA", (50, 40), (10, 20, 30, 255))
    out = render.inject_noise(canvas, 0.05, 15.0, random.Random(9), alpha_stride=100)
    alpha = np.asarray(out)[..., 3].reshape(-1)
    assert set(np.unique(alpha[::100]).tolist()) <= {254, 255}
    untouched = np.delete(alpha, np.arange(0, alpha.size, 100))
    assert (untouched == 255).all()


def test_resolve_overlay_respects_margins_and_scale():
    rng = random.Random(11)
    for _ in range(100):
        config = render.resolve_overlay(
            "Cotton Kurta",
            (200, 100),
            rng,
            opacity=0.04,
            upscale_factor=2,
            batch_number="B-1",
            show_date=False,
            texture_intensity=0.05,
            export_format="png",
        )
        assert 20 <= config.x <= 380
        assert 20 <= config.y <= 180
        assert 0 <= config.rotation < 2 * math.pi
        assert config.font_family in render.FONTS
        assert config.color in render.COLORS
        assert render.BASE_FONT_SIZE <= config.font_size <= 2 * render.BASE_FONT_SIZE
        assert config.opacity == 0.04
        assert config.batch_number == "B-1"
        assert config.show_date is False
        assert config.upscale_factor == 2


def test_draw_overlay_with_zero_opacity_leaves_canvas_unchanged():
    canvas = gradient_image(60, 40)
    config = render.resolve_overlay(
        "Label",
        canvas.size,
        random.Random(0),
        opacity=0.0,
        upscale_factor=1,
        batch_number=None,
        show_date=True,
        texture_intensity=0,
        export_format="png",
    )
    out = render.draw_overlay(canvas, config)
    assert out.tobytes() == canvas.tobytes()


def test_draw_overlay_marks_pixels_when_opaque():
    canvas = Image.new("RGBA", (120, 80), (255, 255, 255, 255))
    config = render.resolve_overlay(
        "WATERMARK",
        canvas.size,
        random.Random(0),
        opacity=1.0,
        upscale_factor=1,
        batch_number=None,
        show_date=True,
        texture_intensity=0,
        export_format="png",
    )
    config = replace(config, color="#000000", x=60.0, y=40.0)
    out = render.draw_overlay(canvas, config)
    assert out.size == canvas.size
    assert out.tobytes() != canvas.tobytes()


@pytest.mark.parametrize(
    "export_format, mime, pil_format",
    [("jpeg", "image/jpeg", "JPEG"), ("png", "image/png", "PNG")],
)
def test_encode_formats(export_format, mime, pil_format):
    canvas = gradient_image(32, 24)
    data = render.encode(canvas, export_format, CloakingMode(), random.Random(1))
    assert data.mime_type == mime
    decoded = Image.open(io.BytesIO(data.data))
    assert decoded.format == pil_format
    assert decoded.size == (32, 24)


def test_standard_mode_uses_fixed_quality():
    canvas = gradient_image(32, 24)
    first = render.encode(canvas, "jpeg", StandardMode(), random.Random(1))
    second = render.encode(canvas, "jpeg", StandardMode(), random.Random(2))
    assert first.data == second.data


def test_cloaking_jpeg_quality_is_drawn_from_its_range(monkeypatch):
    qualities = []
    real_save = Image.Image.save

    def recording_save(self, fp, format=None, **params):
        if format == "JPEG":
            qualities.append(params["quality"])
        return real_save(self, fp, format=format, **params)

    monkeypatch.setattr(Image.Image, "save", recording_save)
    canvas = gradient_image(16, 12)
    for seed in range(40):
        render.encode(canvas, "jpeg", CloakingMode(), random.Random(seed))
        render.encode(canvas, "jpeg", StandardMode(), random.Random(seed))

    cloaked, standard = qualities[0::2], qualities[1::2]
    assert all(isinstance(q, int) and 88 <= q <= 93 for q in cloaked)
    assert len(set(cloaked)) > 1
    assert set(standard) == {90}


def test_parse_color_falls_back_on_garbage():
    assert render._parse_color("#F43397") == (0xF4, 0x33, 0x97)
    assert render._parse_color("not-a-color") == (59, 130, 246)

import io
import logging
import math
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont, ImageStat

from .modes import ChromaticShift, GeometricJitter, SynthesisMode
from .models import ImageData, MIME_TYPES, OverlayConfig


logger = logging.getLogger(__name__)

Size = Tuple[int, int]

# Candidate font files per family; the first one that loads wins.
FONTS: Dict[str, List[str]] = {
    "DejaVu Sans": [
        "DejaVuSans.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    ],
    "DejaVu Serif": [
        "DejaVuSerif.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf",
    ],
    "Liberation Sans": [
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    ],
    "Helvetica": [
        "/System/Library/Fonts/HelveticaNeue.ttc",
        "/System/Library/Fonts/Helvetica.ttc",
    ],
    "Arial": [
        "arial.ttf",
        "/System/Library/Fonts/Supplemental/Arial.ttf",
        "/Library/Fonts/Arial.ttf",
        "C:/Windows/Fonts/arial.ttf",
    ],
    "Georgia": [
        "georgia.ttf",
        "/System/Library/Fonts/Supplemental/Georgia.ttf",
        "C:/Windows/Fonts/georgia.ttf",
    ],
}

COLORS: List[str] = [
    "#FFFFFF",
    "#000000",
    "#F43397",
    "#9F2089",
    "#1F2937",
    "#F97316",
    "#10B981",
    "#3B82F6",
]

# Font size at upscale factor 1, before the random 0.5-1.0 factor.
BASE_FONT_SIZE = 24
# Overlay anchor keeps this far (in source pixels) from every edge.
OVERLAY_MARGIN = 10


@dataclass(frozen=True)
class AffineJitter:
    zoom: float
    dx: float
    dy: float
    angle: float


@dataclass(frozen=True)
class ColorShift:
    hue_degrees: float
    brightness: float
    contrast: float


def target_size(size: Size, upscale_factor: float) -> Size:
    """
    Output raster size: source dimensions times the upscale factor, floored.
    """
    if upscale_factor < 1:
        raise ValueError("upscale_factor must be >= 1")
    width, height = size
    return (
        max(1, int(math.floor(width * upscale_factor))),
        max(1, int(math.floor(height * upscale_factor))),
    )


def size_canvas(source: Image.Image, upscale_factor: float) -> Image.Image:
    """
    Draw the source onto an RGBA canvas of the target size, resampling with
    Lanczos when the size changes.
    """
    canvas = source.convert("RGBA")
    size = target_size(canvas.size, upscale_factor)
    if size != canvas.size:
        canvas = canvas.resize(size, Image.LANCZOS)
    return canvas


def sample_affine(jitter: GeometricJitter, rng: random.Random) -> AffineJitter:
    return AffineJitter(
        zoom=rng.uniform(*jitter.zoom),
        dx=rng.uniform(-jitter.shift, jitter.shift),
        dy=rng.uniform(-jitter.shift, jitter.shift),
        angle=rng.uniform(-jitter.rotation, jitter.rotation),
    )


def apply_affine(canvas: Image.Image, params: AffineJitter) -> Image.Image:
    """
    Zoom, shift and rotate the canvas about its centre as a single affine
    transform. `dx`/`dy` are fractions of the canvas width/height.
    """
    w, h = canvas.size
    cx, cy = w / 2.0, h / 2.0
    tx, ty = params.dx * w, params.dy * h

    # PIL wants the inverse mapping: output pixel -> input pixel.
    cos_a = math.cos(params.angle) / params.zoom
    sin_a = math.sin(params.angle) / params.zoom
    a, b = cos_a, sin_a
    d, e = -sin_a, cos_a
    ox, oy = cx + tx, cy + ty
    c = cx - a * ox - b * oy
    f = cy - d * ox - e * oy

    return canvas.transform(
        canvas.size,
        Image.Transform.AFFINE,
        (a, b, c, d, e, f),
        resample=Image.BICUBIC,
        fillcolor=_mean_color(canvas),
    )


def sample_color_shift(shift: ChromaticShift, rng: random.Random) -> ColorShift:
    return ColorShift(
        hue_degrees=rng.uniform(-shift.hue_degrees, shift.hue_degrees),
        brightness=rng.uniform(*shift.brightness),
        contrast=rng.uniform(*shift.contrast),
    )


def color_matrix(params: ColorShift) -> Tuple[float, ...]:
    """
    Compose hue rotation, brightness and contrast into one 3x4 RGB matrix
    (12-tuple, row-major with the offset as the fourth column).
    """
    rad = math.radians(params.hue_degrees)
    c, s = math.cos(rad), math.sin(rad)
    hue = [
        [0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928],
        [0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283],
        [0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072],
    ]
    gain = params.contrast * params.brightness
    offset = 127.5 * (1.0 - params.contrast)

    matrix: List[float] = []
    for row in hue:
        matrix.extend(value * gain for value in row)
        matrix.append(offset)
    return tuple(matrix)


def apply_color_shift(canvas: Image.Image, params: ColorShift) -> Image.Image:
    alpha = canvas.getchannel("A")
    shifted = canvas.convert("RGB").convert("RGB", color_matrix(params))
    shifted.putalpha(alpha)
    return shifted


def inject_noise(
    canvas: Image.Image,
    intensity: float,
    scale: float,
    rng: random.Random,
    alpha_stride: Optional[int] = None,
) -> Image.Image:
    """
    Add independent uniform noise in +/-(intensity * scale) to every RGB
    channel, clamped to [0, 255]. With `alpha_stride`, every Nth pixel also
    gets its alpha set to 254 or 255. Zero intensity returns the canvas as is.
    """
    if intensity <= 0:
        return canvas

    np_rng = np.random.default_rng(rng.getrandbits(64))
    pixels = np.asarray(canvas.convert("RGBA"), dtype=np.int16).copy()

    amplitude = intensity * scale
    noise = np_rng.uniform(-amplitude, amplitude, size=pixels.shape[:2] + (3,))
    pixels[..., :3] = np.clip(np.rint(pixels[..., :3] + noise), 0, 255)

    if alpha_stride:
        alpha = pixels.reshape(-1, 4)[:, 3]
        picked = alpha[::alpha_stride]
        alpha[::alpha_stride] = 255 - np_rng.integers(0, 2, size=picked.shape)

    return Image.fromarray(pixels.astype(np.uint8))


def resolve_overlay(
    label: str,
    source_size: Size,
    rng: random.Random,
    *,
    opacity: float,
    upscale_factor: float,
    batch_number: Optional[str],
    show_date: bool,
    texture_intensity: float,
    export_format: str,
) -> OverlayConfig:
    width, height = source_size
    return OverlayConfig(
        text=label,
        font_family=rng.choice(list(FONTS)),
        font_size=round((rng.random() * 0.5 + 0.5) * BASE_FONT_SIZE * upscale_factor, 2),
        color=rng.choice(COLORS),
        x=_interior(rng, width) * upscale_factor,
        y=_interior(rng, height) * upscale_factor,
        rotation=rng.random() * math.pi * 2,
        opacity=opacity,
        batch_number=batch_number,
        show_date=show_date,
        texture_intensity=texture_intensity,
        export_format=export_format,
        upscale_factor=upscale_factor,
    )


def draw_overlay(canvas: Image.Image, config: OverlayConfig) -> Image.Image:
    """
    Composite the label centred on (x, y), rotated by `config.rotation`
    (radians, clockwise on screen) at `config.opacity`.
    """
    font = _load_font(config.font_family, size=max(1, int(round(config.font_size))))
    left, top, right, bottom = font.getbbox(config.text)
    text_layer = Image.new(
        "RGBA", (max(1, int(right - left)), max(1, int(bottom - top))), (0, 0, 0, 0)
    )
    r, g, b = _parse_color(config.color)
    ImageDraw.Draw(text_layer).text(
        (-left, -top),
        config.text,
        font=font,
        fill=(r, g, b, int(round(255 * config.opacity))),
    )

    rotated = text_layer.rotate(
        -math.degrees(config.rotation), resample=Image.BICUBIC, expand=True
    )
    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    overlay.paste(
        rotated,
        (
            int(round(config.x - rotated.width / 2)),
            int(round(config.y - rotated.height / 2)),
        ),
    )
    return Image.alpha_composite(canvas.convert("RGBA"), overlay)


def encode(
    canvas: Image.Image,
    export_format: str,
    mode: SynthesisMode,
    rng: random.Random,
) -> ImageData:
    buf = io.BytesIO()
    if export_format == "png":
        canvas.save(buf, format="PNG")
    else:
        low, high = mode.jpeg_quality
        quality = rng.randint(low, high) if high > low else low
        canvas.convert("RGB").save(buf, format="JPEG", quality=quality)
    return ImageData(data=buf.getvalue(), mime_type=MIME_TYPES[export_format])


def _interior(rng: random.Random, extent: int) -> float:
    span = extent - 2 * OVERLAY_MARGIN
    if span <= 0:
        return extent / 2.0
    return rng.random() * span + OVERLAY_MARGIN


def _mean_color(canvas: Image.Image) -> Tuple[int, int, int, int]:
    mean = ImageStat.Stat(canvas.convert("RGB")).mean
    return (int(mean[0]), int(mean[1]), int(mean[2]), 255)


def _parse_color(color_str: str) -> Tuple[int, int, int]:
    """
    Parse hex color strings like '#FF0000' or 'FF0000' into RGB tuple.
    Fallbacks to a safe default if parsing fails.
    """
    s = color_str.strip().lstrip("#")
    if len(s) == 6:
        try:
            return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
        except ValueError:
            pass
    return (59, 130, 246)  # blue-500


def _load_font(family: str, size: int) -> ImageFont.ImageFont:
    """
    Load a TrueType font for the family, then any font in the project fonts/
    folder, then Pillow's bundled default at the requested size.
    """
    candidates: List[str] = list(FONTS.get(family, []))

    fonts_dir = Path(__file__).parent.parent / "fonts"
    if fonts_dir.exists():
        candidates.extend(str(p) for p in sorted(fonts_dir.glob("*.ttf")))
        candidates.extend(str(p) for p in sorted(fonts_dir.glob("*.otf")))

    for font_file in candidates:
        try:
            return ImageFont.truetype(font_file, size=size)
        except OSError:
            continue

    logger.debug("No TrueType font for %r, using Pillow default", family)
    return ImageFont.load_default(size=size)

import io

import numpy as np
import pytest
from PIL import Image

from synthesizer.models import ImageData, OverlayConfig, Variant


def gradient_image(width: int, height: int) -> Image.Image:
    xs = np.linspace(0, 255, width, dtype=np.float32)
    ys = np.linspace(0, 255, height, dtype=np.float32)
    r = np.tile(xs, (height, 1))
    g = np.tile(ys[:, None], (1, width))
    b = np.full((height, width), 96, dtype=np.float32)
    rgb = np.stack([r, g, b], axis=-1).astype(np.uint8)
    return Image.fromarray(rgb).convert("RGBA")


def decode(variant: Variant) -> Image.Image:
    return Image.open(io.BytesIO(variant.image_data.data))


@pytest.fixture
def source_image() -> Image.Image:
    return gradient_image(80, 60)


@pytest.fixture
def make_variant():
    def _make(
        variant_id: str = "cloaked-1700000000000-0",
        timestamp: int = 1700000000000,
        export_format: str = "jpeg",
        data: bytes = b"\xff\xd8fake-jpeg",
        tags=None,
        batch_number="B-1234",
    ) -> Variant:
        mime = "image/png" if export_format == "png" else "image/jpeg"
        return Variant(
            id=variant_id,
            image_data=ImageData(data=data, mime_type=mime),
            config=OverlayConfig(
                text="Cotton Kurta",
                font_family="DejaVu Sans",
                font_size=18.5,
                color="#F43397",
                x=40.0,
                y=30.0,
                rotation=1.2,
                opacity=0.04,
                batch_number=batch_number,
                show_date=True,
                texture_intensity=0.08,
                export_format=export_format,
                upscale_factor=1,
            ),
            timestamp=timestamp,
            tags=tags,
        )

    return _make

import io
from pathlib import Path
from typing import List, Union

from PIL import Image, UnidentifiedImageError

from .errors import SynthesisError

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}


def load_source_image(source: Union[Path, str, bytes]) -> Image.Image:
    """
    Decode a product photo from a path or raw bytes into an RGBA image.

    Anything that cannot be decoded is a precondition failure for the
    pipeline, so it surfaces as `SynthesisError`.
    """
    try:
        if isinstance(source, bytes):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(Path(source))
        img.load()
    except (OSError, UnidentifiedImageError) as e:
        raise SynthesisError(f"Could not decode source image: {e}") from e
    return img.convert("RGBA")


def image_to_bytes(img: Image.Image, format: str = "JPEG") -> bytes:
    """Encode an image for the external collaborators (tagging, backgrounds)."""
    buf = io.BytesIO()
    if format.upper() == "JPEG":
        img = img.convert("RGB")
    img.save(buf, format=format)
    return buf.getvalue()


def find_images(folder: Path) -> List[Path]:
    """
    List product photos in a folder (recursively), sorted by path.
    """
    if not folder.exists():
        return []
    return sorted(
        path
        for path in folder.rglob("*")
        if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS
    )

import io
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .config import DEFAULT_BACKGROUND_MODEL


logger = logging.getLogger(__name__)

BACKGROUND_PRESETS: Dict[str, str] = {
    "studio": "Studio White",
    "marble": "Luxury Marble",
    "wood": "Natural Wood",
    "outdoor": "Garden / Outdoor",
    "urban": "Urban Lifestyle",
    "pastel": "Minimal Pastel",
}

CLOAKING_THEME_SUFFIX = "with asymmetrical commercial lighting and unique depth of field"


@dataclass
class BackgroundGenerator:
    """
    Replaces the background of a product photo through a Replicate image
    editing model. A missing token or any API failure is reported as None
    ("no change") rather than raised.
    """

    api_token: Optional[str] = None
    model: str = DEFAULT_BACKGROUND_MODEL
    # Defaults to `replicate.run`; injectable for tests.
    runner: Optional[Callable[..., Any]] = None

    def regenerate_background(
        self,
        image_bytes: bytes,
        theme: str,
        cloaking: bool = False,
    ) -> Optional[bytes]:
        theme = BACKGROUND_PRESETS.get(theme, theme).strip()
        if not theme:
            logger.warning("Empty background theme; leaving image unchanged.")
            return None
        if cloaking:
            theme = f"{theme} {CLOAKING_THEME_SUFFIX}"

        try:
            return self._real_generate(image_bytes, theme)
        except Exception as e:
            logger.warning("Background generation failed: %s", e)
            return None

    def _real_generate(self, image_bytes: bytes, theme: str) -> Optional[bytes]:
        """
        Call Replicate with the source photo and an instruction prompt.

        Requires REPLICATE_API_TOKEN (or `api_token`) unless a custom runner
        is injected.
        """
        runner = self.runner
        if runner is None:
            token = self.api_token or os.environ.get("REPLICATE_API_TOKEN")
            if not token:
                raise RuntimeError(
                    "REPLICATE_API_TOKEN is not set. A valid API token is required for background generation."
                )
            import replicate

            runner = replicate.Client(api_token=token).run

        prompt = (
            "Keep the product in the foreground exactly as it is, but replace the "
            f"background with a {theme} setting. Ensure professional e-commerce "
            "lighting, high-resolution textures, and a clean commercial aesthetic."
        )
        logger.info("Requesting background: %s", theme)

        output = runner(
            self.model,
            input={
                "prompt": prompt,
                "input_image": io.BytesIO(image_bytes),
                "output_format": "png",
            },
        )
        if isinstance(output, (list, tuple)):
            output = output[0] if output else None
        if output is None:
            return None
        data = output.read() if hasattr(output, "read") else output
        return data or None

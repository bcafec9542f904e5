import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_STORE_DIR = Path(".variant_store")
DEFAULT_VISION_MODEL = "gpt-4o-mini"
DEFAULT_BACKGROUND_MODEL = "black-forest-labs/flux-kontext-pro"


@dataclass
class Settings:
    store_dir: Path = DEFAULT_STORE_DIR
    openai_api_key: Optional[str] = None
    vision_model: str = DEFAULT_VISION_MODEL
    replicate_api_token: Optional[str] = None
    background_model: str = DEFAULT_BACKGROUND_MODEL
    # Pauses between loop iterations, in seconds.
    generation_delay: float = 0.01
    export_delay: float = 0.6
    validation_delay: float = 0.6
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables. Call `load_dotenv()` first
        if values should come from a local .env file.
        """
        return cls(
            store_dir=Path(os.getenv("VARIANT_STORE_DIR", str(DEFAULT_STORE_DIR))),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            vision_model=os.getenv("OPENAI_VISION_MODEL", DEFAULT_VISION_MODEL),
            replicate_api_token=os.getenv("REPLICATE_API_TOKEN") or None,
            background_model=os.getenv("REPLICATE_BACKGROUND_MODEL", DEFAULT_BACKGROUND_MODEL),
            generation_delay=_env_float("GENERATION_DELAY", 0.01),
            export_delay=_env_float("EXPORT_DELAY", 0.6),
            validation_delay=_env_float("VALIDATION_DELAY", 0.6),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default

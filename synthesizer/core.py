import logging
import random
import time
from dataclasses import replace
from typing import Callable, List, Optional

from PIL import Image

from .assets import image_to_bytes
from .errors import StoreUnavailableError, SynthesisError
from .models import GenerationOptions, Variant
from .pacing import GENERATION_THROTTLE, CancellationToken, ThrottlePolicy
from .render import (
    apply_affine,
    apply_color_shift,
    draw_overlay,
    encode,
    inject_noise,
    resolve_overlay,
    sample_affine,
    sample_color_shift,
    size_canvas,
)
from .store import VariantStore
from .tagging import FALLBACK_TAGS


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
Tagger = Callable[[bytes], List[str]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class VariantSynthesizer:
    """
    Runs the transform pipeline for a single variant:
    - size the canvas (upscale)
    - geometric jitter and colour shift (cloaking mode only)
    - per-pixel noise
    - near-invisible text overlay
    - encode, then persist to the store
    """

    def __init__(
        self,
        store: VariantStore,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.rng = rng or random.SystemRandom()
        self.clock = clock

    def synthesize(
        self,
        source: Image.Image,
        label: str,
        variant_id: str,
        options: Optional[GenerationOptions] = None,
    ) -> Variant:
        options = options or GenerationOptions()
        if source is None:
            raise SynthesisError("A source image is required.")
        if not label or not label.strip():
            raise SynthesisError("A product label is required.")
        if not variant_id:
            raise SynthesisError("A variant id is required.")

        mode = options.mode
        rng = self.rng

        try:
            canvas = size_canvas(source, options.upscale_factor)
        except (OSError, ValueError) as e:
            raise SynthesisError(f"Could not prepare a canvas: {e}") from e

        if mode.geometry is not None:
            affine = sample_affine(mode.geometry, rng)
            logger.debug("%s affine: %s", variant_id, affine)
            canvas = apply_affine(canvas, affine)

        if mode.chroma is not None:
            shift = sample_color_shift(mode.chroma, rng)
            logger.debug("%s colour shift: %s", variant_id, shift)
            canvas = apply_color_shift(canvas, shift)

        canvas = inject_noise(
            canvas,
            options.texture_intensity,
            mode.noise_scale,
            rng,
            alpha_stride=mode.alpha_stride,
        )

        config = resolve_overlay(
            label,
            source.size,
            rng,
            opacity=options.opacity,
            upscale_factor=options.upscale_factor,
            batch_number=options.batch_number,
            show_date=options.show_date,
            texture_intensity=options.texture_intensity,
            export_format=options.export_format,
        )
        canvas = draw_overlay(canvas, config)

        variant = Variant(
            id=variant_id,
            image_data=encode(canvas, options.export_format, mode, rng),
            config=config,
            timestamp=self.clock(),
            tags=list(options.tags) if options.tags is not None else None,
        )

        try:
            self.store.put(variant)
        except StoreUnavailableError as e:
            logger.warning("Persistence unavailable, keeping %s in memory only: %s", variant_id, e)

        return variant


class BatchOrchestrator:
    """
    Produces a counted batch by calling the synthesizer strictly one variant
    at a time. A failing item aborts the rest of the batch; items already
    produced stay persisted.
    """

    def __init__(
        self,
        synthesizer: VariantSynthesizer,
        tagger: Optional[Tagger] = None,
        throttle: ThrottlePolicy = GENERATION_THROTTLE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.synthesizer = synthesizer
        self.tagger = tagger
        self.throttle = throttle
        self.sleep = sleep

    def generate_batch(
        self,
        source: Image.Image,
        label: str,
        count: int,
        options: Optional[GenerationOptions] = None,
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Variant]:
        if count < 1:
            raise ValueError("count must be >= 1")
        options = options or GenerationOptions()

        if options.tags is None and self.tagger is not None:
            options = replace(options, tags=self._resolve_tags(source))

        run_stamp = self.synthesizer.clock()
        id_tag = options.mode.id_tag
        batch: List[Variant] = []

        logger.info("Generating %d %s variant(s) for '%s'", count, id_tag, label)
        for i in range(count):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Batch cancelled after %d of %d variant(s)", len(batch), count)
                break

            variant = self.synthesizer.synthesize(
                source,
                label,
                f"{id_tag}-{run_stamp}-{i}",
                options,
            )
            batch.append(variant)

            if progress is not None:
                progress((i + 1) / count)
            if i < count - 1 and self.throttle.delay > 0:
                self.sleep(self.throttle.delay)

        return batch

    def _resolve_tags(self, source: Image.Image) -> List[str]:
        try:
            tags = self.tagger(image_to_bytes(source))
        except Exception as e:
            logger.warning("Tagging failed, using fallback tags: %s", e)
            return list(FALLBACK_TAGS)
        return list(tags)

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


FloatRange = Tuple[float, float]


@dataclass(frozen=True)
class GeometricJitter:
    """Bounds for the zoom / shift / micro-rotation affine applied to the source."""

    zoom: FloatRange = (1.0, 1.03)
    # Fraction of canvas width/height, applied as +/- shift.
    shift: float = 0.01
    # Radians, applied as +/- rotation.
    rotation: float = 0.0025


@dataclass(frozen=True)
class ChromaticShift:
    """Bounds for the composed hue / brightness / contrast colour filter."""

    hue_degrees: float = 2.0
    brightness: FloatRange = (0.98, 1.02)
    contrast: FloatRange = (0.98, 1.02)


@dataclass(frozen=True)
class StandardMode:
    """
    Plain variant generation: upscale, light noise and the text overlay.
    """

    id_tag: str = "variant"
    noise_scale: float = 10.0
    jpeg_quality: Tuple[int, int] = (90, 90)
    geometry: Optional[GeometricJitter] = None
    chroma: Optional[ChromaticShift] = None
    alpha_stride: Optional[int] = None


@dataclass(frozen=True)
class CloakingMode:
    """
    Aggressive randomization: geometric jitter, colour shift, a stronger noise
    budget, alpha fingerprint perturbation and per-output JPEG quality.
    """

    id_tag: str = "cloaked"
    noise_scale: float = 15.0
    jpeg_quality: Tuple[int, int] = (88, 93)
    geometry: Optional[GeometricJitter] = field(default_factory=GeometricJitter)
    chroma: Optional[ChromaticShift] = field(default_factory=ChromaticShift)
    # Every Nth pixel gets its alpha set to 254 or 255.
    alpha_stride: Optional[int] = 100


SynthesisMode = Union[StandardMode, CloakingMode]


def mode_from_flag(cloaking: bool) -> SynthesisMode:
    return CloakingMode() if cloaking else StandardMode()

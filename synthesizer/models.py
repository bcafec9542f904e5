from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

from .modes import CloakingMode, SynthesisMode


ExportFormat = Literal["jpeg", "png"]
VariantStatus = Literal["pending", "processing", "completed", "failed"]

MIME_TYPES: Dict[str, str] = {
    "jpeg": "image/jpeg",
    "png": "image/png",
}

FILE_EXTENSIONS: Dict[str, str] = {
    "jpeg": "jpg",
    "png": "png",
}

_EXTENSION_BY_MIME: Dict[str, str] = {
    mime: FILE_EXTENSIONS[fmt] for fmt, mime in MIME_TYPES.items()
}


@dataclass(frozen=True)
class ImageData:
    data: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        return _EXTENSION_BY_MIME.get(self.mime_type, FILE_EXTENSIONS["jpeg"])


@dataclass(frozen=True)
class OverlayConfig:
    """
    Resolved per-variant parameters. Fixed at generation time and kept as the
    provenance record of the variant's visual treatment.
    """

    text: str
    font_family: str
    font_size: float
    color: str
    x: float
    y: float
    rotation: float
    opacity: float
    batch_number: Optional[str] = None
    show_date: bool = True
    texture_intensity: float = 0.0
    export_format: ExportFormat = "jpeg"
    upscale_factor: float = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OverlayConfig":
        return cls(
            text=data["text"],
            font_family=data["font_family"],
            font_size=float(data["font_size"]),
            color=data["color"],
            x=float(data["x"]),
            y=float(data["y"]),
            rotation=float(data["rotation"]),
            opacity=float(data["opacity"]),
            batch_number=data.get("batch_number"),
            show_date=bool(data.get("show_date", True)),
            texture_intensity=float(data.get("texture_intensity", 0.0)),
            export_format=data.get("export_format", "jpeg"),
            upscale_factor=data.get("upscale_factor", 1),
        )


@dataclass
class Variant:
    """
    One generated derivative. `status`, `detected_price`, `detected_shipping`
    and `error_message` belong to the validation step; everything else is
    fixed when the pipeline produces the variant.
    """

    id: str
    image_data: ImageData
    config: OverlayConfig
    timestamp: int
    status: VariantStatus = "pending"
    detected_price: Optional[float] = None
    detected_shipping: Optional[float] = None
    error_message: Optional[str] = None
    tags: Optional[List[str]] = None

    @property
    def short_id(self) -> str:
        return self.id.split("-")[-1]

    def to_record(self) -> Dict[str, Any]:
        """Serializable record without the image bytes."""
        return {
            "id": self.id,
            "mime_type": self.image_data.mime_type,
            "config": self.config.to_dict(),
            "timestamp": self.timestamp,
            "status": self.status,
            "detected_price": self.detected_price,
            "detected_shipping": self.detected_shipping,
            "error_message": self.error_message,
            "tags": list(self.tags) if self.tags is not None else None,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], data: bytes) -> "Variant":
        tags = record.get("tags")
        return cls(
            id=record["id"],
            image_data=ImageData(data=data, mime_type=record["mime_type"]),
            config=OverlayConfig.from_dict(record["config"]),
            timestamp=int(record["timestamp"]),
            status=record.get("status", "pending"),
            detected_price=record.get("detected_price"),
            detected_shipping=record.get("detected_shipping"),
            error_message=record.get("error_message"),
            tags=list(tags) if tags is not None else None,
        )


@dataclass
class GenerationOptions:
    batch_number: Optional[str] = None
    show_date: bool = True
    texture_intensity: float = 0.08
    # Near-invisible watermark by default.
    opacity: float = 0.04
    export_format: ExportFormat = "jpeg"
    upscale_factor: float = 1
    tags: Optional[List[str]] = None
    mode: SynthesisMode = field(default_factory=CloakingMode)

    def __post_init__(self) -> None:
        if self.upscale_factor < 1:
            raise ValueError("upscale_factor must be >= 1")
        if not 0 <= self.opacity <= 1:
            raise ValueError("opacity must be within [0, 1]")
        if self.texture_intensity < 0:
            raise ValueError("texture_intensity must be >= 0")
        if self.export_format not in MIME_TYPES:
            raise ValueError(f"unsupported export format: {self.export_format!r}")


@dataclass
class ValidationFailure:
    variant_id: str
    error: str


@dataclass
class ValidationSummary:
    total: int
    success: int
    failed: int
    errors: List[ValidationFailure] = field(default_factory=list)


@dataclass
class OptimizationResult:
    cluster_id: str
    average_shipping: float
    variant_count: int
    best_variant_id: str

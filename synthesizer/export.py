import csv
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from .models import FILE_EXTENSIONS, Variant
from .pacing import EXPORT_THROTTLE, CancellationToken, ThrottlePolicy
from .session import VariantSession


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

BULK_PREFIX = "cloaked-asset"
LISTING_PREFIX = "img_opt"

CSV_HEADERS = [
    "Amazon Link Ref",
    "Flipkart Link Ref",
    "Meesho Link Ref",
    "Local Filename",
    "Product Title",
    "Batch Code",
    "Optimized Price",
    "Shipping Fee",
    "Keywords",
    "Variant UUID",
]


def variant_filename(variant: Variant, prefix: str = LISTING_PREFIX) -> str:
    """`<prefix>_<last id segment>.<jpg|png>`, following the variant's export format."""
    ext = FILE_EXTENSIONS.get(variant.config.export_format, "jpg")
    return f"{prefix}_{variant.short_id}.{ext}"


def unique_path(out_dir: Path, name: str, taken: Optional[Set[str]] = None) -> Path:
    """
    `out_dir / name`, or `stem(1).ext`, `stem(2).ext`, ... when that name is
    already on disk or in `taken`.
    """
    taken = taken if taken is not None else set()
    path = out_dir / name
    n = 0
    while path.name in taken or path.exists():
        n += 1
        path = out_dir / f"{Path(name).stem}({n}){Path(name).suffix}"
    return path


def bulk_export(
    variants: Sequence[Variant],
    out_dir: Path,
    policy: ThrottlePolicy = EXPORT_THROTTLE,
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Callable[[float], None] = time.sleep,
    prefix: str = BULK_PREFIX,
) -> List[Path]:
    """
    Save each variant to `out_dir` in order, one file at a time, pausing
    `policy.delay` seconds between files.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    taken: Set[str] = set()
    total = len(variants)

    for i, variant in enumerate(variants):
        if cancel_token is not None and cancel_token.cancelled:
            logger.info("Export cancelled after %d of %d file(s)", len(written), total)
            break

        path = unique_path(out_dir, variant_filename(variant, prefix), taken)
        taken.add(path.name)
        path.write_bytes(variant.image_data.data)
        written.append(path)
        logger.info("Exported %s", path.name)

        if progress is not None:
            progress((i + 1) / total)
        if i < total - 1 and policy.delay > 0:
            sleep(policy.delay)

    return written


def export_batch(
    session: VariantSession,
    out_dir: Path,
    variants: Optional[Sequence[Variant]] = None,
    clear_after: bool = False,
    confirm: Optional[Callable[[], bool]] = None,
    **kwargs: Any,
) -> List[Path]:
    """
    Bulk-export a batch (the whole session by default), then purge the store
    and session when `clear_after` is set and `confirm()` agrees.
    `PurgeError` propagates so the caller can report it.
    """
    batch = list(session.variants if variants is None else variants)
    written = bulk_export(batch, out_dir, **kwargs)

    saved = {path for path in written if path.exists()}
    if clear_after and len(saved) < len(batch):
        logger.warning(
            "Only %d of %d variant(s) reached disk; keeping history.", len(saved), len(batch)
        )
    elif clear_after:
        if confirm is not None and confirm():
            session.purge()
        else:
            logger.info("Purge after export not confirmed; keeping history.")
    return written


def write_listings_csv(variants: Sequence[Variant], path: Path) -> Path:
    """One listing row per variant, every cell quoted."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_HEADERS)
        for variant in variants:
            writer.writerow(listing_row(variant))
    logger.info("Wrote %d listing row(s) to %s", len(variants), path)
    return path


def listing_row(variant: Variant) -> List[Any]:
    filename = variant_filename(variant)
    ref = f"cdn://{filename}"
    return [
        ref,
        ref,
        ref,
        filename,
        variant.config.text,
        variant.config.batch_number or "N/A",
        variant.detected_price if variant.detected_price is not None else "N/A",
        variant.detected_shipping if variant.detected_shipping is not None else "N/A",
        "; ".join(variant.tags) if variant.tags else "",
        variant.id,
    ]


def variant_metadata(variant: Variant) -> Dict[str, Any]:
    return {
        "variantId": variant.id,
        "timestamp": variant.timestamp,
        "optimizationResults": {
            "detectedPrice": variant.detected_price,
            "detectedShipping": variant.detected_shipping,
        },
        "configuration": variant.config.to_dict(),
        "tags": variant.tags,
    }


def write_metadata(variant: Variant, out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    path = unique_path(out_dir, f"metadata-variant-{variant.short_id}.json")
    with path.open("w", encoding="utf-8") as f:
        json.dump(variant_metadata(variant), f, indent=2, ensure_ascii=False)
    return path

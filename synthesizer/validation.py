"""
Simulated marketplace validation and the shipping-cluster report built on it.

Neither touches the transform pipeline: the validator only annotates
existing variants with a status, a detected price and a detected shipping
fee, and the report only reads those annotations.
"""

import logging
import random
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence

from .models import OptimizationResult, ValidationFailure, ValidationSummary, Variant
from .pacing import CancellationToken, ThrottlePolicy


logger = logging.getLogger(__name__)

MOCK_PRICES: List[float] = [199, 249, 299, 349, 399, 449, 499]
MOCK_SHIPPING: List[float] = [0, 45, 59, 65, 72, 89]

ERROR_TYPES: List[str] = [
    "Incorrect Coordinate Mapping: [450, 320] invalid target",
    "UI Element Not Found: 'Upload' button obstructed",
    "Unexpected Page Load: Seller session expired",
    "Network Timeout: Algorithmic wait state exceeded",
    "OCR Failure: Price field unreadable",
]


class MarketValidator:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        error_rate: float = 0.05,
        prices: Sequence[float] = MOCK_PRICES,
        shipping: Sequence[float] = MOCK_SHIPPING,
        throttle: ThrottlePolicy = ThrottlePolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not 0 <= error_rate <= 1:
            raise ValueError("error_rate must be within [0, 1]")
        self.rng = rng or random.Random()
        self.error_rate = error_rate
        self.prices = list(prices)
        self.shipping = list(shipping)
        self.throttle = throttle
        self.sleep = sleep

    def validate(
        self,
        variants: Sequence[Variant],
        progress: Optional[Callable[[float], None]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ValidationSummary:
        """
        Mark each variant completed (with a mock price and shipping fee) or
        failed (with a mock RPA error). Variants are updated in place.
        """
        errors: List[ValidationFailure] = []
        checked = 0
        total = len(variants)

        for i, variant in enumerate(variants):
            if cancel_token is not None and cancel_token.cancelled:
                break
            variant.status = "processing"
            logger.info("Testing cluster %s", variant.short_id)
            if self.throttle.delay > 0:
                self.sleep(self.throttle.delay)

            if self.rng.random() < self.error_rate:
                message = self.rng.choice(ERROR_TYPES)
                variant.status = "failed"
                variant.error_message = message
                errors.append(ValidationFailure(variant_id=variant.id, error=message))
                logger.warning("%s: %s", variant.short_id, message)
            else:
                variant.status = "completed"
                variant.error_message = None
                variant.detected_price = self.rng.choice(self.prices)
                variant.detected_shipping = self.rng.choice(self.shipping)
                logger.info(
                    "Stability pass: price %s / shipping %s",
                    variant.detected_price,
                    variant.detected_shipping,
                )
            checked += 1
            if progress is not None:
                progress((i + 1) / total)

        return ValidationSummary(
            total=checked,
            success=checked - len(errors),
            failed=len(errors),
            errors=errors,
        )


def shipping_clusters(variants: Sequence[Variant]) -> List[OptimizationResult]:
    """
    Group completed variants by detected shipping fee, cheapest first.
    A missing fee counts as 0; a zero fee is its own cluster.
    """
    groups: Dict[float, List[Variant]] = defaultdict(list)
    for variant in variants:
        if variant.status != "completed":
            continue
        fee = variant.detected_shipping if variant.detected_shipping is not None else 0
        groups[fee].append(variant)

    results = []
    for fee in sorted(groups):
        members = groups[fee]
        results.append(
            OptimizationResult(
                cluster_id=_format_fee(fee),
                average_shipping=float(fee),
                variant_count=len(members),
                best_variant_id=_cheapest(members).id,
            )
        )
    return results


def best_variant(variants: Sequence[Variant]) -> Optional[Variant]:
    """Completed variant with the lowest known shipping fee."""
    completed = [v for v in variants if v.status == "completed"]
    if not completed:
        return None
    return _cheapest(completed)


def _cheapest(variants: Sequence[Variant]) -> Variant:
    # Unknown fees rank last; ties keep the first variant seen.
    return min(
        variants,
        key=lambda v: (v.detected_shipping is None, v.detected_shipping or 0, v.detected_price or 0),
    )


def _format_fee(fee: float) -> str:
    return f"ship-{int(fee)}" if float(fee).is_integer() else f"ship-{fee}"

import logging
from typing import Dict, Iterable, List

from .errors import PurgeError, StoreUnavailableError
from .models import Variant
from .store import VariantStore


logger = logging.getLogger(__name__)


def newest_first(variants: Iterable[Variant]) -> List[Variant]:
    return sorted(variants, key=lambda v: v.timestamp, reverse=True)


class VariantSession:
    """
    In-memory, newest-first list of variants backed by a store.

    The list stays usable when the store is unavailable: history recovery
    and persistence of updates degrade to memory-only with a warning. Purge
    is the exception and raises `PurgeError`.
    """

    def __init__(self, store: VariantStore) -> None:
        self.store = store
        self.variants: List[Variant] = []
        self.persistent = True

    def load_history(self) -> List[Variant]:
        try:
            history = self.store.get_all()
        except StoreUnavailableError as e:
            logger.error("Failed to recover session history: %s", e)
            self.persistent = False
            return self.variants
        self.variants = newest_first(history)
        logger.info("Recovered %d variant(s) from the store", len(self.variants))
        return self.variants

    def add_batch(self, batch: List[Variant]) -> None:
        """Newly generated variants go to the front, in creation order."""
        self.variants = list(batch) + self.variants

    def merge(self, updated: Iterable[Variant]) -> None:
        """
        Replace variants by id (e.g. after validation) and write the new
        state back to the store.
        """
        by_id: Dict[str, Variant] = {v.id: v for v in self.variants}
        for variant in updated:
            by_id[variant.id] = variant
            self._persist(variant)
        self.variants = newest_first(by_id.values())

    def get(self, variant_id: str) -> Variant:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        raise KeyError(variant_id)

    def purge(self) -> None:
        try:
            self.store.clear()
        except StoreUnavailableError as e:
            raise PurgeError(
                f"Persistent storage was not cleared: {e.message}. "
                "Check the store directory permissions and retry."
            ) from e
        self.variants = []
        logger.info("Purged all variants")

    def _persist(self, variant: Variant) -> None:
        try:
            self.store.put(variant)
        except StoreUnavailableError as e:
            logger.warning("Could not persist %s: %s", variant.id, e)
            self.persistent = False

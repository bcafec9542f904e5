import hashlib
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Protocol

from .errors import StoreUnavailableError
from .models import Variant


logger = logging.getLogger(__name__)

INDEX_FILE = "variants.json"
BLOBS_DIR = "blobs"


class VariantStore(Protocol):
    """
    Upsert-by-id persistent map of variants. Each call is self-contained;
    failures raise `StoreUnavailableError`.
    """

    def put(self, variant: Variant) -> None:
        ...

    def get_all(self) -> List[Variant]:
        ...

    def clear(self) -> None:
        ...


class InMemoryVariantStore:
    def __init__(self) -> None:
        self._variants: Dict[str, Variant] = {}

    def put(self, variant: Variant) -> None:
        self._variants[variant.id] = variant

    def get_all(self) -> List[Variant]:
        return list(self._variants.values())

    def clear(self) -> None:
        self._variants.clear()


class JsonVariantStore:
    """
    File-backed store:

        <root>/variants.json        id -> record (config, status, tags, ...)
        <root>/blobs/<sha256>.<ext> encoded image bytes, content-addressed

    The directory is created on first use and nothing is held open between
    calls. The index is rewritten atomically on every put.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILE

    @property
    def blobs_dir(self) -> Path:
        return self.root / BLOBS_DIR

    def put(self, variant: Variant) -> None:
        try:
            self._open()
            digest = hashlib.sha256(variant.image_data.data).hexdigest()
            blob_name = f"{digest}.{variant.image_data.extension}"
            blob_path = self.blobs_dir / blob_name
            if not blob_path.exists():
                _atomic_write(blob_path, variant.image_data.data)

            index = self._read_index()
            record = variant.to_record()
            record["blob"] = blob_name
            index[variant.id] = record
            self._write_index(index)
        except (OSError, ValueError) as e:
            raise StoreUnavailableError(f"Could not save variant {variant.id}: {e}") from e

    def get_all(self) -> List[Variant]:
        if not self.index_path.exists():
            return []
        try:
            index = self._read_index()
            variants = []
            for record in index.values():
                data = (self.blobs_dir / record["blob"]).read_bytes()
                variants.append(Variant.from_record(record, data))
            return variants
        except OSError as e:
            raise StoreUnavailableError(f"Could not read variant store: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise StoreUnavailableError(f"Variant store index is corrupt: {e}") from e

    def clear(self) -> None:
        # Remove the index before the blobs; it must never reference a deleted blob.
        try:
            if self.index_path.exists():
                self.index_path.unlink()
            if self.blobs_dir.exists():
                shutil.rmtree(self.blobs_dir)
        except OSError as e:
            raise StoreUnavailableError(f"Could not clear variant store: {e}") from e
        logger.info("Cleared variant store at %s", self.root)

    def _open(self) -> None:
        self.blobs_dir.mkdir(parents=True, exist_ok=True)

    def _read_index(self) -> Dict[str, dict]:
        if not self.index_path.exists():
            return {}
        content = self.index_path.read_text(encoding="utf-8")
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("index root must be an object")
        return data

    def _write_index(self, index: Dict[str, dict]) -> None:
        payload = json.dumps(index, indent=2, ensure_ascii=False).encode("utf-8")
        _atomic_write(self.index_path, payload)


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from photo_to_profit.config import settings
from photo_to_profit.errors import NotFound, PersistenceCorrupt, PersistenceError
from photo_to_profit.models import SavedProduct

logger = logging.getLogger(__name__)


class PersistenceBackend(Protocol):
    """A single named durable record holding the serialized gallery."""

    def read(self) -> bytes | None: ...

    def write(self, payload: bytes) -> None: ...


class FileBackend:
    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path or Path(settings.data_dir) / f"{settings.gallery_record}.json").resolve()

    def read(self) -> bytes | None:
        if not self.path.exists():
            return None
        return self.path.read_bytes()

    def write(self, payload: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(payload)


class MemoryBackend:
    def __init__(self, payload: bytes | None = None) -> None:
        self.payload = payload
        self.writes = 0

    def read(self) -> bytes | None:
        return self.payload

    def write(self, payload: bytes) -> None:
        self.payload = payload
        self.writes += 1


def encode_snapshot(products: list[SavedProduct]) -> bytes:
    return json.dumps([p.to_dict() for p in products]).encode("utf-8")


def decode_snapshot(payload: bytes) -> list[SavedProduct]:
    try:
        data = json.loads(payload.decode("utf-8"))
        if not isinstance(data, list):
            raise TypeError("gallery payload is not a list")
        return [SavedProduct.from_dict(item) for item in data]
    except (ValueError, KeyError, TypeError, AttributeError, RecursionError) as exc:
        raise PersistenceCorrupt(str(exc)) from exc


class GalleryStore:
    """
    Ordered, id-keyed collection of saved products.

    Every mutation rewrites the whole snapshot through the backend; the last
    writer wins.
    """

    def __init__(self, backend: PersistenceBackend | None = None) -> None:
        self._backend = backend or FileBackend()
        self._products: list[SavedProduct] = []

    def __len__(self) -> int:
        return len(self._products)

    @property
    def products(self) -> tuple[SavedProduct, ...]:
        return tuple(self._products)

    def load_all(self) -> list[SavedProduct]:
        """Load the persisted snapshot. Missing or unreadable data yields an empty gallery."""
        try:
            payload = self._backend.read()
        except OSError:
            logger.exception("Failed to read gallery; starting empty")
            payload = None

        products: list[SavedProduct] = []
        if payload:
            try:
                products = decode_snapshot(payload)
            except PersistenceCorrupt as exc:
                logger.warning("Stored gallery is corrupt; starting empty (%s)", exc)
        self._products = products
        return list(products)

    def upsert(self, product: SavedProduct) -> None:
        products = list(self._products)
        for i, existing in enumerate(products):
            if existing.id == product.id:
                products[i] = product
                break
        else:
            products.append(product)
        self._products = products
        self._persist()

    def remove(self, product_id: str) -> bool:
        remaining = [p for p in self._products if p.id != product_id]
        if len(remaining) == len(self._products):
            return False
        self._products = remaining
        self._persist()
        return True

    def find_by_id(self, product_id: str) -> SavedProduct:
        for product in self._products:
            if product.id == product_id:
                return product
        raise NotFound(f"product {product_id} not found")

    def _persist(self) -> None:
        try:
            self._backend.write(encode_snapshot(self._products))
        except OSError as exc:
            logger.exception("Failed to save gallery")
            raise PersistenceError(f"failed to save gallery: {exc}") from exc

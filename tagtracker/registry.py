"""JSON-file registries for tags, products and locations.

These play the part of the external store: plain CRUD collections the
lifecycle engine reads from and issues a small set of mutations to.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

from tagtracker.models import LifecycleState, Location, Product, Tag
from tagtracker.policy import validate_policy
from tagtracker.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class TagNotFound(LookupError):
    pass


class ProductNotFound(LookupError):
    pass


class LocationNotFound(LookupError):
    pass


class _JsonRegistry:
    """Keyed records persisted as a JSON list.

    The file is re-read whenever another process has written it since
    the last load, so a long-running alert loop sees new tags.
    """

    record_cls = None
    key = ""

    def __init__(self, storage_path: str):
        self._path = Path(storage_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._records: dict = {}
        self._mtime: Optional[tuple] = None
        self._refresh()

    # ---- Persistence ----

    def _refresh(self) -> None:
        if not self._path.exists():
            return
        stat = self._path.stat()
        mtime = (stat.st_mtime_ns, stat.st_size)
        if mtime == self._mtime:
            return
        try:
            data = json.loads(self._path.read_text())
            records = {}
            for item in data:
                record = self.record_cls.from_dict(item)
                records[getattr(record, self.key)] = record
        except (json.JSONDecodeError, KeyError, ValueError) as exc:
            logger.warning("Could not load %s: %s", self._path, exc)
            return
        self._records = records
        self._mtime = mtime

    def _save(self) -> None:
        data = [r.to_dict() for r in self._records.values()]
        self._path.write_text(json.dumps(data, indent=2, default=str))
        stat = self._path.stat()
        self._mtime = (stat.st_mtime_ns, stat.st_size)

    def _values(self) -> list:
        with self._lock:
            self._refresh()
            return list(self._records.values())

    def _get(self, record_id: str):
        with self._lock:
            self._refresh()
            return self._records.get(record_id)

    def _put(self, record):
        with self._lock:
            self._refresh()
            self._records[getattr(record, self.key)] = record
            self._save()
            return record

    def remove(self, record_id: str) -> bool:
        with self._lock:
            self._refresh()
            if record_id not in self._records:
                return False
            del self._records[record_id]
            self._save()
            return True


class TagRegistry(_JsonRegistry):
    """MRD tags. Only lifecycle state and the printed flag ever change."""

    record_cls = Tag
    key = "tag_id"

    MUTABLE_FIELDS = ("lifecycle_state", "printed")

    def create(self, tag: Tag) -> Tag:
        tag.created_at = utcnow()
        tag.updated_at = tag.created_at
        return self._put(tag)

    def get(self, tag_id: str) -> Optional[Tag]:
        return self._get(tag_id)

    def list(
        self,
        location_id: Optional[str] = None,
        state: Optional[LifecycleState] = LifecycleState.ACTIVE,
    ) -> list[Tag]:
        """Tags matching the filter, soonest discard first."""
        tags = [
            t for t in self._values()
            if (state is None or t.lifecycle_state == state)
            and (location_id is None or t.location_id == location_id)
        ]
        return sorted(tags, key=lambda t: as_utc(t.discard_at))

    def update(self, tag_id: str, **fields) -> Tag:
        unknown = set(fields) - set(self.MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Tag fields cannot be changed: {', '.join(sorted(unknown))}")

        with self._lock:
            self._refresh()
            tag = self._records.get(tag_id)
            if not tag:
                raise TagNotFound(tag_id)
            if "lifecycle_state" in fields:
                tag.lifecycle_state = LifecycleState(fields["lifecycle_state"])
            if "printed" in fields:
                tag.printed = bool(fields["printed"])
            tag.updated_at = utcnow()
            self._save()
            return tag


class ProductRegistry(_JsonRegistry):
    """Product catalogue with time policies."""

    record_cls = Product
    key = "product_id"

    def add(self, product: Product) -> Product:
        validate_policy(product.policy)
        product.created_at = utcnow()
        product.updated_at = product.created_at
        return self._put(product)

    def update(self, product_id: str, **fields) -> Product:
        """Update fields on a product; a new policy is validated first."""
        if "policy" in fields:
            validate_policy(fields["policy"])

        with self._lock:
            self._refresh()
            product = self._records.get(product_id)
            if not product:
                raise ProductNotFound(product_id)
            for key, value in fields.items():
                if hasattr(product, key):
                    setattr(product, key, value)
            product.updated_at = utcnow()
            self._save()
            return product

    def get(self, product_id: str) -> Optional[Product]:
        return self._get(product_id)

    def list_all(self, active_only: bool = False) -> list[Product]:
        products = self._values()
        if active_only:
            products = [p for p in products if p.is_active]
        return sorted(products, key=lambda p: p.name.lower())


class LocationRegistry(_JsonRegistry):
    """Kitchens and sites."""

    record_cls = Location
    key = "location_id"

    def add(self, location: Location) -> Location:
        location.created_at = utcnow()
        location.updated_at = location.created_at
        return self._put(location)

    def get(self, location_id: str) -> Optional[Location]:
        return self._get(location_id)

    def update(self, location_id: str, **fields) -> Location:
        with self._lock:
            self._refresh()
            location = self._records.get(location_id)
            if not location:
                raise LocationNotFound(location_id)
            for key, value in fields.items():
                if hasattr(location, key):
                    setattr(location, key, value)
            location.updated_at = utcnow()
            self._save()
            return location

    def list_all(self, active_only: bool = False) -> list[Location]:
        locations = self._values()
        if active_only:
            locations = [loc for loc in locations if loc.is_active]
        return sorted(locations, key=lambda loc: loc.name.lower())

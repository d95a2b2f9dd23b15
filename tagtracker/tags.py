"""Tag creation flow and ad-hoc status queries over stored tags."""

import logging
from datetime import datetime
from typing import Callable, Optional

from tagtracker.models import LifecycleState, Tag
from tagtracker.policy import resolve, resolve_timezone
from tagtracker.registry import (
    LocationNotFound,
    LocationRegistry,
    ProductNotFound,
    ProductRegistry,
    TagRegistry,
)
from tagtracker.status import StatusVerdict, TagStatus, classify
from tagtracker.utils import utcnow

logger = logging.getLogger(__name__)


class TagService:
    """Create tags with frozen time windows and query their live status.

    Usage:
        service = TagService(tags, products, locations)
        tag = service.create_tag("prod_1", "loc_1", created_by="emp_7")
        for tag, verdict in service.list_tags(status=TagStatus.EXPIRED):
            ...
    """

    def __init__(
        self,
        tags: TagRegistry,
        products: ProductRegistry,
        locations: LocationRegistry,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._tags = tags
        self._products = products
        self._locations = locations
        self._clock = clock

    def create_tag(
        self,
        product_id: str,
        location_id: str,
        created_by: str,
        made_at: Optional[datetime] = None,
        quantity: int = 1,
        batch_number: str = "",
        notes: str = "",
    ) -> Tag:
        """Resolve the product's policy and persist a new active tag.

        Raises ``ProductNotFound``, ``LocationNotFound`` or ``InvalidPolicy``;
        nothing is stored in that case.
        """
        product = self._products.get(product_id)
        if not product or not product.is_active:
            raise ProductNotFound(product_id)
        location = self._locations.get(location_id)
        if not location:
            raise LocationNotFound(location_id)

        tz = resolve_timezone(location.timezone)
        made_at = made_at or self._clock()
        if made_at.tzinfo is None:
            made_at = made_at.replace(tzinfo=tz)
        ready_at, discard_at = resolve(product.policy, made_at, tz)

        tag = Tag(
            product_id=product.product_id,
            location_id=location.location_id,
            created_by=created_by,
            made_at=made_at,
            ready_at=ready_at,
            discard_at=discard_at,
            quantity=quantity,
            batch_number=batch_number,
            notes=notes,
            product_name=product.name,
            location_name=location.name,
        )
        self._tags.create(tag)
        logger.info(
            "Created tag %s for %s at %s (ready %s, discard %s)",
            tag.tag_id, product.name, location.name,
            ready_at.isoformat(), discard_at.isoformat(),
        )
        return tag

    def mark_printed(self, tag_id: str) -> Tag:
        return self._tags.update(tag_id, printed=True)

    def discard(self, tag_id: str) -> Tag:
        tag = self._tags.update(tag_id, lifecycle_state=LifecycleState.DISCARDED)
        logger.info("Tag %s discarded", tag_id)
        return tag

    def status(self, tag: Tag) -> StatusVerdict:
        return classify(tag.ready_at, tag.discard_at, self._clock())

    def list_tags(
        self,
        location_id: Optional[str] = None,
        status: Optional[TagStatus] = None,
        query: Optional[str] = None,
    ) -> list[tuple[Tag, StatusVerdict]]:
        """Active tags with their verdicts, soonest discard first."""
        now = self._clock()
        q = (query or "").strip().lower()
        results = []
        for tag in self._tags.list(location_id=location_id):
            verdict = classify(tag.ready_at, tag.discard_at, now)
            if status and verdict.status != status:
                continue
            if q and not any(
                q in (value or "").lower()
                for value in (tag.product_name, tag.location_name, tag.batch_number)
            ):
                continue
            results.append((tag, verdict))
        return results

    def status_counts(self, location_id: Optional[str] = None) -> dict:
        """Totals per derived status for a dashboard."""
        counts = {s.value: 0 for s in TagStatus}
        tags = self.list_tags(location_id=location_id)
        for _, verdict in tags:
            counts[verdict.status.value] += 1
        counts["total"] = len(tags)
        return counts

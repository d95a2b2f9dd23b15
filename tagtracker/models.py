"""Records held by the store: products, locations and MRD tags."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from tagtracker.policy import RelativeMinutes, TimePolicy, policy_from_dict, policy_to_dict
from tagtracker.utils import as_bool, fmt_dt, parse_dt, utcnow


class LifecycleState(str, Enum):
    """Persisted, operator-controlled state of a tag."""

    ACTIVE = "active"
    DISCARDED = "discarded"


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _parse_state(value: Optional[str]) -> LifecycleState:
    # older records also used "used" for tags taken out of service
    if not value:
        return LifecycleState.ACTIVE
    if value == "used":
        return LifecycleState.DISCARDED
    return LifecycleState(value)


@dataclass
class Product:
    """A prepared food item with a time policy."""

    name: str
    category: str = ""
    policy: TimePolicy = field(default_factory=lambda: RelativeMinutes(0, 0))
    storage_requirements: str = ""
    allergens: str = ""
    is_active: bool = True
    product_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        data = {
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category,
            "storage_requirements": self.storage_requirements,
            "allergens": self.allergens,
            "is_active": self.is_active,
            "created_at": fmt_dt(self.created_at),
            "updated_at": fmt_dt(self.updated_at),
        }
        data.update(policy_to_dict(self.policy))
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        return cls(
            product_id=data.get("product_id") or _new_id(),
            name=data["name"],
            category=data.get("category", ""),
            policy=policy_from_dict(data),
            storage_requirements=data.get("storage_requirements", ""),
            allergens=data.get("allergens", ""),
            is_active=as_bool(data.get("is_active", True)),
            created_at=parse_dt(data.get("created_at")) or utcnow(),
            updated_at=parse_dt(data.get("updated_at")) or utcnow(),
        )


@dataclass
class Location:
    """A kitchen or site where tags are made."""

    name: str
    address: str = ""
    phone: str = ""
    timezone: str = ""
    is_active: bool = True
    location_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "timezone": self.timezone,
            "is_active": self.is_active,
            "created_at": fmt_dt(self.created_at),
            "updated_at": fmt_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        return cls(
            location_id=data.get("location_id") or _new_id(),
            name=data["name"],
            address=data.get("address", ""),
            phone=data.get("phone", ""),
            timezone=data.get("timezone", ""),
            is_active=as_bool(data.get("is_active", True)),
            created_at=parse_dt(data.get("created_at")) or utcnow(),
            updated_at=parse_dt(data.get("updated_at")) or utcnow(),
        )


@dataclass
class Tag:
    """One batch of a prepared item.

    ``ready_at`` and ``discard_at`` are resolved once when the tag is made
    and never recomputed, even if the product's policy changes later.
    """

    product_id: str
    location_id: str
    created_by: str
    made_at: datetime
    ready_at: datetime
    discard_at: datetime
    quantity: int = 1
    batch_number: str = ""
    notes: str = ""

    # Joined for display
    product_name: str = ""
    location_name: str = ""

    lifecycle_state: LifecycleState = LifecycleState.ACTIVE
    printed: bool = False
    tag_id: str = field(default_factory=lambda: f"tag_{_new_id()}")
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.lifecycle_state == LifecycleState.ACTIVE

    def to_dict(self) -> dict:
        return {
            "tag_id": self.tag_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "created_by": self.created_by,
            "product_name": self.product_name,
            "location_name": self.location_name,
            "quantity": self.quantity,
            "batch_number": self.batch_number,
            "notes": self.notes,
            "made_at": fmt_dt(self.made_at),
            "ready_at": fmt_dt(self.ready_at),
            "discard_at": fmt_dt(self.discard_at),
            "lifecycle_state": self.lifecycle_state.value,
            "printed": self.printed,
            "created_at": fmt_dt(self.created_at),
            "updated_at": fmt_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Tag":
        return cls(
            tag_id=data.get("tag_id") or f"tag_{_new_id()}",
            product_id=data["product_id"],
            location_id=data["location_id"],
            created_by=data.get("created_by", ""),
            product_name=data.get("product_name", ""),
            location_name=data.get("location_name", ""),
            quantity=int(data.get("quantity") or 1),
            batch_number=data.get("batch_number") or "",
            notes=data.get("notes") or "",
            made_at=parse_dt(data["made_at"]),
            ready_at=parse_dt(data["ready_at"]),
            discard_at=parse_dt(data["discard_at"]),
            lifecycle_state=_parse_state(data.get("lifecycle_state")),
            printed=as_bool(data.get("printed", False)),
            created_at=parse_dt(data.get("created_at")) or utcnow(),
            updated_at=parse_dt(data.get("updated_at")) or utcnow(),
        )

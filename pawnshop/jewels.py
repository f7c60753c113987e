"""
Jewel catalogue and metal rates.

The catalogue lists the kinds of ornaments the counter accepts; item ids
encode the metal and category (``G-RIN-1a2b3c4d``). Metal rates hold one
per-gram rate for gold and one for silver, replaced in place on every update.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .dates import Clock, parse_date, require_date
from .exceptions import NotFoundError, ValidationError
from .interest_rates import MetalType
from .logging_config import get_logger, log_action
from .money import ZERO, round_money, to_decimal
from .storage import StorageInterface, StorageRecord


MAX_NAME_LENGTH = 100


class JewelCategory(Enum):
    RING = "RING"
    EARRINGS = "EARRINGS"
    NECKLACE = "NECKLACE"
    CHAIN = "CHAIN"
    BRACELET = "BRACELET"
    ANKLET = "ANKLET"

    @classmethod
    def parse(cls, value: Any) -> 'JewelCategory':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(f"Invalid jewel category: {value}")


@dataclass
class Jewel(StorageRecord):
    """Catalogue entry; ``id`` is the item id"""
    name: str
    category: JewelCategory
    material: MetalType
    weight: Decimal = ZERO

    @property
    def item_id(self) -> str:
        return self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Jewel':
        data['category'] = JewelCategory(data['category'])
        data['material'] = MetalType(data['material'])
        data['weight'] = to_decimal(data.get('weight'))
        return super().from_dict(data)


@dataclass
class JewelRate(StorageRecord):
    """Per-gram rate of one metal; ``id`` is the metal type"""
    metal_type: MetalType
    rate: Decimal
    date: date

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JewelRate':
        data['metal_type'] = MetalType(data['metal_type'])
        data['rate'] = to_decimal(data['rate'])
        data['date'] = require_date(data['date'])
        return super().from_dict(data)


def new_item_id(material: MetalType, category: JewelCategory) -> str:
    return f"{material.value[0].upper()}-{category.value[:3]}-{uuid.uuid4().hex[:8]}"


class JewelManager:
    """Maintains the jewel catalogue"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail, trash_bin=None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.trash_bin = trash_bin
        self.logger = get_logger("pawnshop.jewels")
        self.jewels_table = "jewels"

    @staticmethod
    def _clean_name(name: Any) -> str:
        text = (name or "").strip()
        if not text:
            raise ValidationError("Item name is required")
        if len(text) > MAX_NAME_LENGTH:
            raise ValidationError(f"Name cannot exceed {MAX_NAME_LENGTH} characters")
        return text

    @staticmethod
    def _weight(value: Any) -> Decimal:
        weight = to_decimal(value, 'weight')
        if weight < 0:
            raise ValidationError("Weight cannot be negative")
        return weight

    def create_jewel(self, name: str, category: Any, material: Any, weight: Any = None,
                     created_by: Optional[str] = None) -> Jewel:
        category = JewelCategory.parse(category)
        material = MetalType.parse(material)
        now = datetime.now(timezone.utc)
        jewel = Jewel(
            id=new_item_id(material, category),
            created_at=now,
            updated_at=now,
            name=self._clean_name(name),
            category=category,
            material=material,
            weight=self._weight(weight),
        )
        self.storage.save(self.jewels_table, jewel.id, jewel.to_dict())
        self.audit_trail.log_event(
            AuditEventType.JEWEL_CHANGED, "jewel", jewel.id,
            {'action': 'created', 'name': jewel.name, 'category': jewel.category.value},
            user_id=created_by
        )
        log_action(self.logger, "info", f"Added jewel {jewel.id}",
                   user_id=created_by, action="jewel_created", resource=jewel.id)
        return jewel

    def get_jewel(self, item_id: str) -> Optional[Jewel]:
        data = self.storage.load(self.jewels_table, item_id)
        if data:
            return Jewel.from_dict(data)
        return None

    def require_jewel(self, item_id: str) -> Jewel:
        jewel = self.get_jewel(item_id)
        if jewel is None:
            raise NotFoundError("Jewel not found")
        return jewel

    def list_jewels(self, category: Optional[str] = None,
                    material: Optional[str] = None) -> List[Jewel]:
        """Newest first"""
        jewels = [Jewel.from_dict(d) for d in self.storage.load_all(self.jewels_table)]
        if category:
            wanted = JewelCategory.parse(category)
            jewels = [j for j in jewels if j.category == wanted]
        if material:
            wanted_material = MetalType.parse(material)
            jewels = [j for j in jewels if j.material == wanted_material]
        jewels.sort(key=lambda j: j.created_at, reverse=True)
        return jewels

    def update_jewel(self, item_id: str, changes: Dict[str, Any],
                     updated_by: Optional[str] = None) -> Jewel:
        """Rename or reweigh an entry; the item id never changes"""
        jewel = self.require_jewel(item_id)
        if changes.get('name') is not None:
            jewel.name = self._clean_name(changes['name'])
        if changes.get('category') is not None:
            jewel.category = JewelCategory.parse(changes['category'])
        if changes.get('material') is not None:
            jewel.material = MetalType.parse(changes['material'])
        if changes.get('weight') is not None:
            jewel.weight = self._weight(changes['weight'])
        jewel.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.jewels_table, jewel.id, jewel.to_dict())
        self.audit_trail.log_event(
            AuditEventType.JEWEL_CHANGED, "jewel", jewel.id,
            {'action': 'updated'}, user_id=updated_by
        )
        return jewel

    def delete_jewel(self, item_id: str, deleted_by: Optional[str] = None) -> None:
        jewel = self.require_jewel(item_id)
        if self.trash_bin is not None:
            self.trash_bin.move_to_trash("jewel", jewel.id, jewel.to_dict(),
                                         deleted_by=deleted_by,
                                         details={'name': jewel.name})
        self.storage.delete(self.jewels_table, jewel.id)
        log_action(self.logger, "info", f"Deleted jewel {jewel.id}",
                   user_id=deleted_by, action="jewel_deleted", resource=jewel.id)

    def restore(self, data: Dict[str, Any]) -> Jewel:
        """Trash bin restorer"""
        jewel = Jewel.from_dict(dict(data))
        if self.get_jewel(jewel.id) is not None:
            raise ValidationError(f"Jewel {jewel.id} already exists")
        self.storage.save(self.jewels_table, jewel.id, jewel.to_dict())
        return jewel


class JewelRateManager:
    """Current per-gram gold and silver rates"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 clock: Optional[Clock] = None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.clock = clock or Clock()
        self.logger = get_logger("pawnshop.jewels.rates")
        self.rates_table = "jewel_rates"

    def set_rate(self, metal_type: Any, rate: Any, rate_date: Any = None,
                 updated_by: Optional[str] = None) -> JewelRate:
        """Create or replace the rate for a metal"""
        metal = MetalType.parse(metal_type)
        value = round_money(to_decimal(rate, 'rate'))
        if value <= 0:
            raise ValidationError("Rate must be a positive number")

        now = datetime.now(timezone.utc)
        existing = self.get_rate(metal.value)
        jewel_rate = JewelRate(
            id=metal.value,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            metal_type=metal,
            rate=value,
            date=parse_date(rate_date) or self.clock.today(),
        )
        self.storage.save(self.rates_table, jewel_rate.id, jewel_rate.to_dict())

        self.audit_trail.log_event(
            AuditEventType.JEWEL_RATE_CHANGED, "jewel_rate", metal.value,
            {'rate': value, 'previous': existing.rate if existing else None,
             'date': jewel_rate.date},
            user_id=updated_by
        )
        log_action(self.logger, "info", f"Jewel rate updated: {metal.value} {value}/gram",
                   user_id=updated_by, action="jewel_rate_updated", resource=metal.value,
                   extra={'rate': str(value)})
        return jewel_rate

    def get_rate(self, metal_type: Any) -> Optional[JewelRate]:
        data = self.storage.load(self.rates_table, MetalType.parse(metal_type).value)
        if data:
            return JewelRate.from_dict(data)
        return None

    def require_rate(self, metal_type: Any) -> JewelRate:
        jewel_rate = self.get_rate(metal_type)
        if jewel_rate is None:
            raise NotFoundError("Jewel rate not found")
        return jewel_rate

    def list_rates(self) -> List[JewelRate]:
        """Most recently updated first"""
        rates = [JewelRate.from_dict(d) for d in self.storage.load_all(self.rates_table)]
        rates.sort(key=lambda r: r.updated_at, reverse=True)
        return rates

    def delete_rate(self, metal_type: Any, deleted_by: Optional[str] = None) -> None:
        jewel_rate = self.require_rate(metal_type)
        self.storage.delete(self.rates_table, jewel_rate.id)
        self.audit_trail.log_event(
            AuditEventType.JEWEL_RATE_CHANGED, "jewel_rate", jewel_rate.id,
            {'action': 'deleted', 'rate': jewel_rate.rate}, user_id=deleted_by
        )

    def value_of(self, metal_type: Any, weight: Any) -> Decimal:
        """Metal value of a weight in grams at the current rate"""
        grams = to_decimal(weight, 'weight')
        if grams < 0:
            raise ValidationError("Weight cannot be negative")
        return round_money(grams * self.require_rate(metal_type).rate)

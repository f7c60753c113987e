"""
Interest rate bands for pawn loans.

Each band covers loan amounts in ``[min_amount, max_amount)`` for one metal
and carries a monthly interest percentage. Bands of the same metal may touch
but never overlap.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .exceptions import NotFoundError, ValidationError
from .money import round_money, to_decimal
from .storage import StorageInterface, StorageRecord


class MetalType(Enum):
    GOLD = "gold"
    SILVER = "silver"

    @classmethod
    def parse(cls, value: Any) -> 'MetalType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid metal type: {value}")


@dataclass
class InterestRate(StorageRecord):
    metal_type: MetalType
    min_amount: Decimal
    max_amount: Decimal
    interest: Decimal

    def covers(self, amount: Decimal) -> bool:
        return self.min_amount <= amount < self.max_amount

    def overlaps(self, other: 'InterestRate') -> bool:
        return (self.metal_type == other.metal_type
                and self.min_amount < other.max_amount
                and other.min_amount < self.max_amount)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InterestRate':
        data['metal_type'] = MetalType(data['metal_type'])
        for name in ('min_amount', 'max_amount', 'interest'):
            data[name] = to_decimal(data[name])
        return super().from_dict(data)


class InterestRateManager:
    """Maintains the rate card"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail, trash_bin=None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.trash_bin = trash_bin
        self.rates_table = "interest_rates"

    def _check_band(self, band: InterestRate) -> None:
        if band.min_amount < 0:
            raise ValidationError("Minimum amount cannot be negative")
        if band.min_amount >= band.max_amount:
            raise ValidationError("Maximum amount must be greater than minimum amount")
        if band.interest < 0:
            raise ValidationError("Interest cannot be negative")
        for other in self.list_rates(band.metal_type.value):
            if other.id != band.id and band.overlaps(other):
                raise ValidationError(
                    f"Band {band.min_amount}-{band.max_amount} overlaps existing "
                    f"{band.metal_type.value} band {other.min_amount}-{other.max_amount}"
                )

    def create_rate(self, metal_type: Any, min_amount: Any, max_amount: Any,
                    interest: Any, created_by: Optional[str] = None) -> InterestRate:
        now = datetime.now(timezone.utc)
        band = InterestRate(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            metal_type=MetalType.parse(metal_type),
            min_amount=round_money(min_amount),
            max_amount=round_money(max_amount),
            interest=to_decimal(interest, 'interest'),
        )
        self._check_band(band)
        self.storage.save(self.rates_table, band.id, band.to_dict())
        self.audit_trail.log_event(
            AuditEventType.INTEREST_RATE_CHANGED, "interest_rate", band.id,
            {'action': 'created', 'metal_type': band.metal_type.value,
             'min_amount': band.min_amount, 'max_amount': band.max_amount,
             'interest': band.interest},
            user_id=created_by
        )
        return band

    def update_rate(self, rate_id: str, changes: Dict[str, Any],
                    updated_by: Optional[str] = None) -> InterestRate:
        band = self.require_rate(rate_id)
        if changes.get('metal_type') is not None:
            band.metal_type = MetalType.parse(changes['metal_type'])
        for name in ('min_amount', 'max_amount'):
            if changes.get(name) is not None:
                setattr(band, name, round_money(changes[name]))
        if changes.get('interest') is not None:
            band.interest = to_decimal(changes['interest'], 'interest')
        self._check_band(band)
        band.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.rates_table, band.id, band.to_dict())
        self.audit_trail.log_event(
            AuditEventType.INTEREST_RATE_CHANGED, "interest_rate", band.id,
            {'action': 'updated'}, user_id=updated_by
        )
        return band

    def get_rate(self, rate_id: str) -> Optional[InterestRate]:
        data = self.storage.load(self.rates_table, rate_id)
        if data:
            return InterestRate.from_dict(data)
        return None

    def require_rate(self, rate_id: str) -> InterestRate:
        band = self.get_rate(rate_id)
        if band is None:
            raise NotFoundError("Interest rate not found")
        return band

    def list_rates(self, metal_type: Optional[str] = None) -> List[InterestRate]:
        bands = [InterestRate.from_dict(d) for d in self.storage.load_all(self.rates_table)]
        if metal_type:
            wanted = MetalType.parse(metal_type)
            bands = [b for b in bands if b.metal_type == wanted]
        bands.sort(key=lambda b: (b.metal_type.value, b.min_amount))
        return bands

    def rate_for(self, metal_type: Any, amount: Any) -> InterestRate:
        """Band that covers a loan amount"""
        value = to_decimal(amount)
        metal = MetalType.parse(metal_type)
        for band in self.list_rates(metal.value):
            if band.covers(value):
                return band
        raise NotFoundError(f"No {metal.value} interest rate covers {value}")

    def delete_rate(self, rate_id: str, deleted_by: Optional[str] = None) -> None:
        band = self.require_rate(rate_id)
        if self.trash_bin is not None:
            self.trash_bin.move_to_trash("interestRate", band.id, band.to_dict(),
                                         deleted_by=deleted_by)
        self.storage.delete(self.rates_table, band.id)

    def restore(self, data: Dict[str, Any]) -> InterestRate:
        """Trash bin restorer; the band must still fit the current rate card"""
        band = InterestRate.from_dict(dict(data))
        self._check_band(band)
        self.storage.save(self.rates_table, band.id, band.to_dict())
        return band

"""
Audit Trail Module

Hash-chained append-only log with SHA-256 for tamper detection. Payments,
status changes, closures and every trash-bin action are recorded here; the
trash log is a filtered view over this chain.
"""

import hashlib
import json
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .storage import StorageInterface, StorageRecord, to_document


class AuditEventType(Enum):
    """Types of audit events"""
    # Customer events
    CUSTOMER_CREATED = "customer_created"
    CUSTOMER_UPDATED = "customer_updated"

    # Loan events
    LOAN_CREATED = "loan_created"
    LOAN_UPDATED = "loan_updated"
    LOAN_STATUS_CHANGED = "loan_status_changed"
    LOAN_CLOSED = "loan_closed"
    PAYMENT_APPLIED = "payment_applied"
    PAYMENT_UNDONE = "payment_undone"

    # Voucher events
    VOUCHER_CREATED = "voucher_created"
    VOUCHER_UPDATED = "voucher_updated"
    VOUCHER_CLOSED = "voucher_closed"
    VOUCHER_CLOSURE_REVERTED = "voucher_closure_reverted"
    VOUCHER_AUCTIONED = "voucher_auctioned"
    VOUCHER_AUCTION_REVERTED = "voucher_auction_reverted"
    INTEREST_PAYMENT_RECORDED = "interest_payment_recorded"
    INTEREST_PAYMENT_DELETED = "interest_payment_deleted"

    # Rate card and catalogue events
    INTEREST_RATE_CHANGED = "interest_rate_changed"
    JEWEL_CHANGED = "jewel_changed"
    JEWEL_RATE_CHANGED = "jewel_rate_changed"
    FINANCIAL_YEAR_CHANGED = "financial_year_changed"

    # Trash events
    TRASH_MOVED = "trash_moved"
    TRASH_RESTORED = "trash_restored"
    TRASH_DELETED = "trash_deleted"

    # Reporting events
    LEDGER_REBUILT = "ledger_rebuilt"
    STOCK_SUMMARY_REBUILT = "stock_summary_rebuilt"
    DAY_BOOK_GENERATED = "day_book_generated"


TRASH_EVENTS = (
    AuditEventType.TRASH_MOVED,
    AuditEventType.TRASH_RESTORED,
    AuditEventType.TRASH_DELETED,
)


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event with hash chaining for tamper detection
    """
    sequence: int
    event_type: AuditEventType
    entity_type: str
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    user_id: Optional[str] = None

    def __post_init__(self):
        self.metadata = to_document(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        if isinstance(data['event_type'], str):
            data['event_type'] = AuditEventType(data['event_type'])
        return super().from_dict(data)


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events",
                 enabled: bool = True):
        self.storage = storage
        self.table_name = table_name
        self.enabled = enabled
        self._lock = threading.Lock()

    def _chain_head(self) -> Dict[str, Any]:
        events = self.storage.load_all(self.table_name)
        if not events:
            return {'sequence': 0, 'current_hash': ""}
        return max(events, key=lambda e: e.get('sequence', 0))

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """
        Log an audit event with hash chaining

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited (loan, voucher, trash...)
            entity_id: ID of the entity
            metadata: Additional event-specific data
            user_id: Staff member who initiated the action

        Returns:
            Created AuditEvent, or None when audit logging is disabled
        """
        if not self.enabled:
            return None

        with self._lock:
            head = self._chain_head()
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=head.get('sequence', 0) + 1,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=head.get('current_hash', ""),
                current_hash="",
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def get_events(
        self,
        event_types: Optional[Iterable[AuditEventType]] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """Events in chain order, optionally filtered; limit keeps the newest"""
        wanted = set(event_types) if event_types else None
        events = [AuditEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events = [
            e for e in events
            if (wanted is None or e.event_type in wanted)
            and (entity_type is None or e.entity_type == entity_type)
            and (entity_id is None or e.entity_id == entity_id)
        ]
        events.sort(key=lambda e: e.sequence)
        if limit:
            events = events[-limit:]
        return events

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        return self.get_events(entity_type=entity_type, entity_id=entity_id)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with ``valid``, ``total_events``, ``hash_errors`` and
            ``chain_breaks`` (event ids)
        """
        events = self.get_events()
        result = {
            'valid': True,
            'total_events': len(events),
            'hash_errors': [],
            'chain_breaks': []
        }

        previous_hash = ""
        for event in events:
            if not event.verify_hash():
                result['hash_errors'].append(event.id)
            if event.previous_hash != previous_hash:
                result['chain_breaks'].append(event.id)
            previous_hash = event.current_hash

        result['valid'] = not result['hash_errors'] and not result['chain_breaks']
        return result

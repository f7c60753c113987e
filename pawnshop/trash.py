"""
Trash Bin Module

Soft delete for customers, vouchers, loans and the other record types.
Deleted documents are parked here verbatim; restoring hands the document back
to the restorer registered for its type. Every move, restore and permanent
delete is written to the audit trail, which doubles as the trash log.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from .audit import TRASH_EVENTS, AuditEvent, AuditEventType, AuditTrail
from .exceptions import NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


DEFAULT_ITEM_TYPES = (
    "customer", "jewel", "voucher", "loan", "interestRate", "financialYear",
)

Restorer = Callable[[Dict[str, Any]], Any]


@dataclass
class TrashItem(StorageRecord):
    item_type: str
    original_id: str
    data: Dict[str, Any]
    original_status: Optional[str] = None
    deleted_by: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class TrashBin:
    """
    Soft-delete store with pluggable per-type restorers
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 item_types: Iterable[str] = DEFAULT_ITEM_TYPES):
        self.storage = storage
        self.audit_trail = audit_trail
        self.item_types = tuple(item_types)
        self._restorers: Dict[str, Restorer] = {}
        self.logger = get_logger("pawnshop.trash")

        self.trash_table = "trash"

    def register_restorer(self, item_type: str, restorer: Restorer) -> None:
        self._check_type(item_type)
        self._restorers[item_type] = restorer

    def _check_type(self, item_type: str) -> None:
        if item_type not in self.item_types:
            raise ValidationError(f"Invalid trash item type: {item_type}")

    def move_to_trash(self, item_type: str, original_id: str, data: Dict[str, Any],
                      original_status: Optional[str] = None, deleted_by: Optional[str] = None,
                      details: Optional[Dict[str, Any]] = None) -> TrashItem:
        self._check_type(item_type)
        now = datetime.now(timezone.utc)
        item = TrashItem(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            item_type=item_type,
            original_id=original_id,
            data=data,
            original_status=original_status,
            deleted_by=deleted_by,
            details=details or {},
        )
        self.storage.save(self.trash_table, item.id, item.to_dict())
        self._log(AuditEventType.TRASH_MOVED, item, deleted_by)
        return item

    def get_item(self, trash_id: str) -> Optional[TrashItem]:
        data = self.storage.load(self.trash_table, trash_id)
        if data:
            return TrashItem.from_dict(data)
        return None

    def require_item(self, trash_id: str) -> TrashItem:
        item = self.get_item(trash_id)
        if item is None:
            raise NotFoundError("Item not found in trash")
        return item

    def list_items(self, item_type: Optional[str] = None) -> List[TrashItem]:
        """Newest deletions first"""
        items = [TrashItem.from_dict(d) for d in self.storage.load_all(self.trash_table)]
        if item_type:
            items = [i for i in items if i.item_type == item_type]
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items

    def restore(self, trash_id: str, restored_by: Optional[str] = None) -> Any:
        """Recreate the original record and drop it from the trash"""
        item = self.require_item(trash_id)
        restorer = self._restorers.get(item.item_type)
        if restorer is None:
            raise ValidationError(f"Items of type {item.item_type} cannot be restored")

        restored = restorer(dict(item.data))
        self.storage.delete(self.trash_table, item.id)
        self._log(AuditEventType.TRASH_RESTORED, item, restored_by)
        return restored

    def delete_permanently(self, trash_id: str, deleted_by: Optional[str] = None) -> None:
        item = self.require_item(trash_id)
        self.storage.delete(self.trash_table, item.id)
        self._log(AuditEventType.TRASH_DELETED, item, deleted_by)

    def empty(self, item_type: Optional[str] = None, deleted_by: Optional[str] = None) -> int:
        """Permanently delete everything (or one type), logging each item"""
        items = self.list_items(item_type)
        for item in items:
            self.storage.delete(self.trash_table, item.id)
            self._log(AuditEventType.TRASH_DELETED, item, deleted_by)
        return len(items)

    def logs(self, limit: Optional[int] = None) -> List[AuditEvent]:
        """Trash actions, newest first"""
        events = self.audit_trail.get_events(event_types=TRASH_EVENTS, limit=limit)
        return list(reversed(events))

    def _log(self, event_type: AuditEventType, item: TrashItem, user_id: Optional[str]) -> None:
        self.audit_trail.log_event(
            event_type,
            item.item_type,
            item.original_id,
            {'trash_id': item.id, 'original_status': item.original_status, **item.details},
            user_id=user_id
        )
        log_action(self.logger, "info",
                   f"{event_type.value}: {item.item_type} {item.original_id}",
                   user_id=user_id, action=event_type.value, resource=item.original_id)

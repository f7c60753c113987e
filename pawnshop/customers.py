"""
Customer Management Module

Customer profiles for pawn and personal loans. Customer ids follow the
counter's register: two-digit year, two-digit month and a three-digit
sequence that restarts every month (e.g. 2403007).
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .dates import Clock, format_iso, parse_date
from .exceptions import NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class CustomerStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class Customer(StorageRecord):
    """Customer profile; ``id`` is the register customer id"""
    full_name: str
    phone_number: str
    date_added: date
    alt_phone_number: str = ""
    email: Optional[str] = None
    father_spouse: str = ""
    address: str = ""
    gov_id_type: str = ""
    gov_id_number: str = ""
    status: CustomerStatus = CustomerStatus.ACTIVE

    @property
    def customer_id(self) -> str:
        return self.id


EDITABLE_FIELDS = (
    'full_name', 'phone_number', 'alt_phone_number', 'email', 'father_spouse',
    'address', 'gov_id_type', 'gov_id_number', 'status',
)


class CustomerManager:
    """
    Manages customer profiles
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 clock: Optional[Clock] = None, trash_bin=None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.clock = clock or Clock()
        self.trash_bin = trash_bin
        self.logger = get_logger("pawnshop.customers")

        self.customers_table = "customers"

    def _issued_ids(self) -> List[str]:
        """Live customer ids plus those waiting in the trash bin"""
        ids = [data['id'] for data in self.storage.load_all(self.customers_table)]
        if self.trash_bin is not None:
            ids.extend(item.original_id for item in self.trash_bin.list_items("customer"))
        return ids

    def _next_customer_id(self) -> str:
        prefix = self.clock.today().strftime("%y%m")
        sequences = [
            int(customer_id[len(prefix):])
            for customer_id in self._issued_ids()
            if customer_id.startswith(prefix) and customer_id[len(prefix):].isdigit()
        ]
        return f"{prefix}{max(sequences, default=0) + 1:03d}"

    @staticmethod
    def _validate(fields: Dict[str, Any]) -> None:
        if not (fields.get('full_name') or "").strip():
            raise ValidationError("Customer name is required")
        if not (fields.get('phone_number') or "").strip():
            raise ValidationError("Please add a phone number")
        email = fields.get('email')
        if email and not EMAIL_PATTERN.match(email):
            raise ValidationError("Please add a valid email")

    def _phone_taken(self, phone_number: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            data['id'] != exclude_id
            for data in self.storage.find(self.customers_table, {'phone_number': phone_number})
        )

    def create_customer(
        self,
        full_name: str,
        phone_number: str,
        alt_phone_number: str = "",
        email: Optional[str] = None,
        father_spouse: str = "",
        address: str = "",
        gov_id_type: str = "",
        gov_id_number: str = "",
        created_by: Optional[str] = None
    ) -> Customer:
        """Register a customer under the next id of the current month"""
        fields = {
            'full_name': full_name,
            'phone_number': phone_number,
            'email': email or None,
        }
        self._validate(fields)
        if self._phone_taken(phone_number.strip()):
            raise ValidationError(f"A customer with phone {phone_number} already exists")

        now = datetime.now(timezone.utc)
        customer = Customer(
            id=self._next_customer_id(),
            created_at=now,
            updated_at=now,
            full_name=full_name.strip(),
            phone_number=phone_number.strip(),
            date_added=self.clock.today(),
            alt_phone_number=alt_phone_number or "",
            email=email or None,
            father_spouse=father_spouse or "",
            address=address or "",
            gov_id_type=gov_id_type or "",
            gov_id_number=gov_id_number or "",
        )
        self._save_customer(customer)

        self.audit_trail.log_event(
            AuditEventType.CUSTOMER_CREATED, "customer", customer.id,
            {'full_name': customer.full_name}, user_id=created_by
        )
        log_action(self.logger, "info", f"Created customer {customer.id}",
                   user_id=created_by, action="customer_created", resource=customer.id)
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        data = self.storage.load(self.customers_table, customer_id)
        if data:
            return self._customer_from_dict(data)
        return None

    def require_customer(self, customer_id: str) -> Customer:
        customer = self.get_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        return customer

    def list_customers(self, search: Optional[str] = None,
                       status: Optional[str] = None) -> List[Customer]:
        customers = [self._customer_from_dict(d) for d in self.storage.load_all(self.customers_table)]
        if status:
            customers = [c for c in customers if c.status.value == status]
        needle = (search or "").strip().lower()
        if needle:
            customers = [
                c for c in customers
                if needle in c.full_name.lower()
                or needle in c.id.lower()
                or needle in c.phone_number
            ]
        customers.sort(key=lambda c: c.id)
        return customers

    def update_customer(self, customer_id: str, changes: Dict[str, Any],
                        updated_by: Optional[str] = None) -> Customer:
        customer = self.require_customer(customer_id)
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown customer fields: {', '.join(sorted(unknown))}")

        for name, value in changes.items():
            if value is None:
                continue
            if name == 'status':
                try:
                    value = CustomerStatus(value)
                except ValueError:
                    raise ValidationError(f"Invalid customer status: {value}")
            setattr(customer, name, value)

        self._validate({
            'full_name': customer.full_name,
            'phone_number': customer.phone_number,
            'email': customer.email,
        })
        if 'phone_number' in changes and self._phone_taken(customer.phone_number, customer.id):
            raise ValidationError(f"A customer with phone {customer.phone_number} already exists")

        customer.updated_at = datetime.now(timezone.utc)
        self._save_customer(customer)
        self.audit_trail.log_event(
            AuditEventType.CUSTOMER_UPDATED, "customer", customer.id,
            {'fields': sorted(k for k, v in changes.items() if v is not None)},
            user_id=updated_by
        )
        return customer

    def delete_customer(self, customer_id: str, deleted_by: Optional[str] = None) -> None:
        """Move a customer to the trash bin"""
        customer = self.require_customer(customer_id)
        if self.trash_bin is not None:
            self.trash_bin.move_to_trash(
                "customer", customer.id, self._customer_to_dict(customer),
                original_status=customer.status.value, deleted_by=deleted_by
            )
        self.storage.delete(self.customers_table, customer.id)
        log_action(self.logger, "info", f"Deleted customer {customer.id}",
                   user_id=deleted_by, action="customer_deleted", resource=customer.id)

    def restore(self, data: Dict[str, Any]) -> Customer:
        """Trash bin restorer"""
        customer = self._customer_from_dict(dict(data))
        if self.storage.exists(self.customers_table, customer.id):
            raise ValidationError(f"Customer {customer.id} already exists")
        self._save_customer(customer)
        return customer

    def _save_customer(self, customer: Customer) -> None:
        self.storage.save(self.customers_table, customer.id, self._customer_to_dict(customer))

    def _customer_to_dict(self, customer: Customer) -> Dict[str, Any]:
        return {
            'id': customer.id,
            'created_at': customer.created_at.isoformat(),
            'updated_at': customer.updated_at.isoformat(),
            'full_name': customer.full_name,
            'phone_number': customer.phone_number,
            'alt_phone_number': customer.alt_phone_number,
            'email': customer.email,
            'father_spouse': customer.father_spouse,
            'address': customer.address,
            'gov_id_type': customer.gov_id_type,
            'gov_id_number': customer.gov_id_number,
            'status': customer.status.value,
            'date_added': format_iso(customer.date_added),
        }

    def _customer_from_dict(self, data: Dict[str, Any]) -> Customer:
        return Customer(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            full_name=data['full_name'],
            phone_number=data['phone_number'],
            date_added=parse_date(data.get('date_added')) or self.clock.today(),
            alt_phone_number=data.get('alt_phone_number') or "",
            email=data.get('email'),
            father_spouse=data.get('father_spouse') or "",
            address=data.get('address') or "",
            gov_id_type=data.get('gov_id_type') or "",
            gov_id_number=data.get('gov_id_number') or "",
            status=CustomerStatus(data.get('status', 'active')),
        )

"""
Invoice Management Module

Invoice and line-item entities plus the InvoiceManager, which owns draft
creation, item edits and the send/view/cancel transitions. The PAID
transition is not handled here: it belongs to the LedgerReconciler, which
derives it from payment history.
"""

from datetime import datetime, date, timezone
from decimal import Decimal
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
import logging
import uuid

from .currency import Money, Currency, to_decimal
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType


logger = logging.getLogger(__name__)


class InvoiceStatus(Enum):
    """Invoice lifecycle status"""
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"  # Display only, derived from due_date and never stored

    def can_transition_to(self, new_status: 'InvoiceStatus') -> bool:
        return new_status in _TRANSITIONS.get(self, set())


_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.CANCELLED},
    InvoiceStatus.SENT: {InvoiceStatus.VIEWED, InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    InvoiceStatus.VIEWED: {InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    # Refunds reopen a paid invoice
    InvoiceStatus.PAID: {InvoiceStatus.SENT, InvoiceStatus.VIEWED},
    InvoiceStatus.CANCELLED: set(),
}

OPEN_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.VIEWED)


class StaleInvoiceError(ValueError):
    """Raised when a write is attempted against an outdated invoice version"""

    def __init__(self, invoice_id: str, expected_version: int, actual_version: int):
        self.invoice_id = invoice_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Invoice {invoice_id} has version {actual_version}, expected {expected_version}"
        )


@dataclass
class InvoiceItem:
    """Invoice line item"""
    description: str
    quantity: Decimal
    unit_price: Money
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        self.quantity = to_decimal(self.quantity)
        if not self.description or not self.description.strip():
            raise ValueError("Item description is required")
        if self.quantity <= 0:
            raise ValueError("Item quantity must be positive")
        if self.unit_price.is_negative():
            raise ValueError("Item unit price cannot be negative")

    @property
    def total(self) -> Money:
        return self.unit_price * self.quantity


@dataclass
class Invoice(StorageRecord):
    """Customer invoice"""
    number: str
    customer_id: str
    items: List[InvoiceItem]
    tax_rate: Decimal
    due_date: date
    currency: Currency = Currency.USD
    status: InvoiceStatus = InvoiceStatus.DRAFT
    paid_date: Optional[date] = None
    payment_method: Optional[str] = None
    viewed_date: Optional[datetime] = None
    notes: str = ""
    version: int = 1

    @property
    def subtotal(self) -> Money:
        return Money.sum((item.total for item in self.items), self.currency)

    @property
    def tax(self) -> Money:
        return self.subtotal * self.tax_rate

    @property
    def total(self) -> Money:
        return self.subtotal + self.tax

    def is_overdue(self, as_of: Optional[date] = None) -> bool:
        """Unpaid, uncancelled and past its due date"""
        as_of = as_of or date.today()
        if self.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            return False
        return as_of > self.due_date

    def display_status(self, as_of: Optional[date] = None) -> InvoiceStatus:
        return InvoiceStatus.OVERDUE if self.is_overdue(as_of) else self.status


ItemInput = Union[InvoiceItem, Dict[str, Any]]


class InvoiceManager:
    """
    Manages invoice lifecycle outside of payment reconciliation
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        default_tax_rate: Decimal = Decimal('0.08'),
        currency: Currency = Currency.USD
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.default_tax_rate = to_decimal(default_tax_rate)
        self.currency = currency
        self.table_name = "invoices"
        self.payments_table = "payments"

    def create_invoice(
        self,
        customer_id: str,
        number: str,
        items: Iterable[ItemInput],
        due_date: date,
        tax_rate: Optional[Decimal] = None,
        notes: str = ""
    ) -> Invoice:
        """
        Create a new DRAFT invoice with totals computed from its items

        Args:
            customer_id: Customer reference
            number: Human-facing invoice number, unique
            items: InvoiceItem objects or dicts with description, quantity, unit_price
            due_date: Payment due date
            tax_rate: Flat tax rate as a fraction, defaults to the configured rate
            notes: Free-form notes

        Returns:
            Created Invoice
        """
        if not customer_id:
            raise ValueError("customer_id is required")
        if not number:
            raise ValueError("Invoice number is required")
        if due_date is None:
            raise ValueError("due_date is required")

        tax_rate = self.default_tax_rate if tax_rate is None else to_decimal(tax_rate)
        if tax_rate < 0:
            raise ValueError("Tax rate cannot be negative")

        invoice_items = self._build_items(items)

        with self.storage.atomic():
            if self.storage.find(self.table_name, {'number': number}):
                raise ValueError(f"Invoice number {number} already exists")

            now = datetime.now(timezone.utc)
            invoice = Invoice(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                number=number,
                customer_id=customer_id,
                items=invoice_items,
                tax_rate=tax_rate,
                due_date=due_date,
                currency=self.currency,
                notes=notes or ""
            )
            self._save_invoice(invoice)

            self._audit(
                AuditEventType.INVOICE_CREATED, invoice,
                {
                    'number': number,
                    'customer_id': customer_id,
                    'total': invoice.total.to_plain(),
                    'due_date': due_date
                }
            )

        logger.info("Created invoice %s for customer %s", number, customer_id)
        return invoice

    def update_items(
        self,
        invoice_id: str,
        items: Iterable[ItemInput],
        tax_rate: Optional[Decimal] = None,
        expected_version: Optional[int] = None
    ) -> Invoice:
        """Replace the items of a DRAFT invoice and recompute all totals"""
        invoice_items = self._build_items(items)

        with self.storage.atomic():
            invoice = self._require_invoice(invoice_id)
            self.check_version(invoice, expected_version)

            if invoice.status != InvoiceStatus.DRAFT:
                raise ValueError(
                    f"Invoice {invoice.number} is {invoice.status.value}; only draft invoices can be edited"
                )

            previous_total = invoice.total
            invoice.items = invoice_items
            if tax_rate is not None:
                tax_rate = to_decimal(tax_rate)
                if tax_rate < 0:
                    raise ValueError("Tax rate cannot be negative")
                invoice.tax_rate = tax_rate

            self.save_invoice(invoice)
            self._audit(
                AuditEventType.INVOICE_ITEMS_UPDATED, invoice,
                {
                    'previous_total': previous_total.to_plain(),
                    'new_total': invoice.total.to_plain(),
                    'item_count': len(invoice_items)
                }
            )
            return invoice

    def send_invoice(self, invoice_id: str, expected_version: Optional[int] = None) -> Invoice:
        """Move a DRAFT invoice to SENT"""
        with self.storage.atomic():
            invoice = self._require_invoice(invoice_id)
            self.check_version(invoice, expected_version)
            if invoice.status != InvoiceStatus.DRAFT:
                raise ValueError(f"Cannot send invoice {invoice.number} in status {invoice.status.value}")
            if not invoice.items:
                raise ValueError(f"Cannot send invoice {invoice.number} without items")
            if not invoice.total.is_positive():
                raise ValueError(f"Cannot send invoice {invoice.number} with a zero total")

            self.transition(invoice, InvoiceStatus.SENT)
            self.save_invoice(invoice)
            self._audit(AuditEventType.INVOICE_SENT, invoice, {'total': invoice.total.to_plain()})
            return invoice

    def mark_viewed(
        self,
        invoice_id: str,
        viewed_at: Optional[datetime] = None,
        expected_version: Optional[int] = None
    ) -> Invoice:
        """Record that the customer opened the invoice. Idempotent once viewed."""
        with self.storage.atomic():
            invoice = self._require_invoice(invoice_id)
            self.check_version(invoice, expected_version)

            if invoice.status == InvoiceStatus.VIEWED:
                return invoice
            if invoice.status != InvoiceStatus.SENT:
                raise ValueError(
                    f"Cannot mark invoice {invoice.number} viewed in status {invoice.status.value}"
                )

            invoice.viewed_date = viewed_at or datetime.now(timezone.utc)
            self.transition(invoice, InvoiceStatus.VIEWED)
            self.save_invoice(invoice)
            self._audit(AuditEventType.INVOICE_VIEWED, invoice, {'viewed_date': invoice.viewed_date})
            return invoice

    def cancel_invoice(
        self,
        invoice_id: str,
        reason: str = "",
        expected_version: Optional[int] = None
    ) -> Invoice:
        """Cancel an unpaid invoice. CANCELLED is terminal."""
        with self.storage.atomic():
            invoice = self._require_invoice(invoice_id)
            self.check_version(invoice, expected_version)
            self.transition(invoice, InvoiceStatus.CANCELLED)
            self.save_invoice(invoice)
            self._audit(AuditEventType.INVOICE_CANCELLED, invoice, {'reason': reason})

        logger.info("Cancelled invoice %s", invoice.number)
        return invoice

    def delete_draft(self, invoice_id: str) -> bool:
        """Delete a DRAFT invoice that has never had a payment recorded"""
        with self.storage.atomic():
            invoice = self._require_invoice(invoice_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise ValueError(f"Only draft invoices can be deleted; {invoice.number} is {invoice.status.value}")
            if self.storage.find(self.payments_table, {'invoice_id': invoice_id}):
                raise ValueError(f"Invoice {invoice.number} has payments and cannot be deleted")

            deleted = self.storage.delete(self.table_name, invoice_id)
            self._audit(AuditEventType.INVOICE_DELETED, invoice, {'number': invoice.number})
            return deleted

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        """Get invoice by ID"""
        invoice_data = self.storage.load(self.table_name, invoice_id)
        if invoice_data:
            return self._invoice_from_dict(invoice_data)
        return None

    def get_invoice_by_number(self, number: str) -> Optional[Invoice]:
        matches = self.storage.find(self.table_name, {'number': number})
        if matches:
            return self._invoice_from_dict(matches[0])
        return None

    def get_customer_invoices(self, customer_id: str) -> List[Invoice]:
        """Get all invoices for a customer"""
        invoices_data = self.storage.find(self.table_name, {'customer_id': customer_id})
        return [self._invoice_from_dict(data) for data in invoices_data]

    def list_invoices(self, status: Optional[InvoiceStatus] = None) -> List[Invoice]:
        """List invoices, optionally filtered by stored status"""
        if status is not None:
            invoices_data = self.storage.find(self.table_name, {'status': status.value})
        else:
            invoices_data = self.storage.load_all(self.table_name)
        return [self._invoice_from_dict(data) for data in invoices_data]

    def check_version(self, invoice: Invoice, expected_version: Optional[int]) -> None:
        """Raise StaleInvoiceError if the caller holds an outdated version"""
        if expected_version is not None and expected_version != invoice.version:
            raise StaleInvoiceError(invoice.id, expected_version, invoice.version)

    def transition(self, invoice: Invoice, new_status: InvoiceStatus) -> None:
        """Apply a legal status transition in place"""
        if not invoice.status.can_transition_to(new_status):
            raise ValueError(
                f"Invalid invoice transition {invoice.status.value} -> {new_status.value} "
                f"for invoice {invoice.number}"
            )
        invoice.status = new_status

    def save_invoice(self, invoice: Invoice) -> None:
        """Persist an existing invoice, bumping its version"""
        invoice.version += 1
        invoice.touch()
        self._save_invoice(invoice)

    def _require_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if not invoice:
            raise ValueError(f"Invoice {invoice_id} not found")
        return invoice

    def _build_items(self, items: Iterable[ItemInput]) -> List[InvoiceItem]:
        result = []
        for item in items or []:
            if isinstance(item, InvoiceItem):
                result.append(item)
                continue
            result.append(InvoiceItem(
                description=item.get('description', ''),
                quantity=item.get('quantity', 1),
                unit_price=Money(to_decimal(item.get('unit_price', 0)), self.currency),
                id=item.get('id') or str(uuid.uuid4())
            ))
        if not result:
            raise ValueError("Invoice must have at least one item")
        return result

    def _audit(self, event_type: AuditEventType, invoice: Invoice, metadata: Dict[str, Any]) -> None:
        if self.audit_trail is None:
            return
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="invoice",
            entity_id=invoice.id,
            metadata={'version': invoice.version, **metadata}
        )

    def _save_invoice(self, invoice: Invoice) -> None:
        self.storage.save(self.table_name, invoice.id, self._invoice_to_dict(invoice))

    def _invoice_to_dict(self, invoice: Invoice) -> Dict:
        """Convert invoice to dictionary for storage"""
        return {
            'id': invoice.id,
            'created_at': invoice.created_at.isoformat(),
            'updated_at': invoice.updated_at.isoformat(),
            'number': invoice.number,
            'customer_id': invoice.customer_id,
            'items': [
                {
                    'id': item.id,
                    'description': item.description,
                    'quantity': str(item.quantity),
                    'unit_price': str(item.unit_price.amount),
                    'total': str(item.total.amount)
                }
                for item in invoice.items
            ],
            'currency': invoice.currency.code,
            'subtotal': str(invoice.subtotal.amount),
            'tax_rate': str(invoice.tax_rate),
            'tax': str(invoice.tax.amount),
            'total': str(invoice.total.amount),
            'due_date': invoice.due_date.isoformat(),
            'status': invoice.status.value,
            'paid_date': invoice.paid_date.isoformat() if invoice.paid_date else None,
            'payment_method': invoice.payment_method,
            'viewed_date': invoice.viewed_date.isoformat() if invoice.viewed_date else None,
            'notes': invoice.notes,
            'version': invoice.version
        }

    def _invoice_from_dict(self, data: Dict) -> Invoice:
        """Create invoice from dictionary"""
        currency = Currency[data.get('currency', self.currency.code)]
        items = [
            InvoiceItem(
                id=item['id'],
                description=item['description'],
                quantity=Decimal(item['quantity']),
                unit_price=Money(Decimal(item['unit_price']), currency)
            )
            for item in data.get('items', [])
        ]

        return Invoice(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            number=data['number'],
            customer_id=data['customer_id'],
            items=items,
            tax_rate=Decimal(data['tax_rate']),
            due_date=date.fromisoformat(data['due_date']),
            currency=currency,
            status=InvoiceStatus(data['status']),
            paid_date=date.fromisoformat(data['paid_date']) if data.get('paid_date') else None,
            payment_method=data.get('payment_method'),
            viewed_date=datetime.fromisoformat(data['viewed_date']) if data.get('viewed_date') else None,
            notes=data.get('notes', ""),
            version=data.get('version', 1)
        )

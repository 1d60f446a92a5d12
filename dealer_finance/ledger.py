"""
Ledger Reconciliation Module

Payment records and the LedgerReconciler, which derives an invoice's balance
and PAID status from its payment history. Payments are append-only; a
correction is a status change (e.g. completed -> refunded) or a new payment.
Only completed payments count toward the balance.

Every path that can change the set of completed payments funnels into a
single fold over the invoice's chronological payment log, so out-of-order
status updates reach the same result as in-order ones.
"""

from datetime import datetime, date, timezone
from decimal import Decimal
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging
import uuid

from .currency import Money, Currency, to_decimal
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .invoices import (
    Invoice, InvoiceManager, InvoiceStatus, StaleInvoiceError, OPEN_STATUSES
)
from .logging_config import log_action


logger = logging.getLogger(__name__)

__all__ = [
    'PaymentMethod', 'PaymentStatus', 'Payment', 'InvoiceBalance',
    'LedgerReconciler', 'StaleInvoiceError'
]


class PaymentMethod(Enum):
    """Accepted payment methods"""
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHECK = "check"
    FINANCING = "financing"


class PaymentStatus(Enum):
    """Payment processing status"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

    def can_transition_to(self, new_status: 'PaymentStatus') -> bool:
        return new_status in _PAYMENT_TRANSITIONS.get(self, set())


_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


@dataclass
class Payment(StorageRecord):
    """Payment against an invoice"""
    invoice_id: str
    amount: Money
    method: PaymentMethod
    status: PaymentStatus
    processed_date: date
    transaction_id: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED


@dataclass
class InvoiceBalance:
    """Derived balance of an invoice"""
    total: Money
    total_paid: Money
    remaining_balance: Money

    def to_dict(self) -> Dict[str, str]:
        return {
            'total': self.total.to_plain(),
            'total_paid': self.total_paid.to_plain(),
            'remaining_balance': self.remaining_balance.to_plain()
        }


class LedgerReconciler:
    """
    Records payments and reconciles invoice status against them
    """

    def __init__(
        self,
        storage: StorageInterface,
        invoice_manager: InvoiceManager,
        audit_trail: Optional[AuditTrail] = None
    ):
        self.storage = storage
        self.invoice_manager = invoice_manager
        self.audit_trail = audit_trail
        self.payments_table = "payments"

    def record_payment(
        self,
        invoice_id: str,
        amount: Union[Money, Decimal, str],
        method: Union[PaymentMethod, str],
        status: Union[PaymentStatus, str] = PaymentStatus.COMPLETED,
        processed_date: Optional[date] = None,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> Payment:
        """
        Append a payment to an invoice and reconcile its status

        Args:
            invoice_id: Invoice being paid
            amount: Payment amount, must satisfy 0 < amount <= remaining balance
            method: Payment method
            status: Initial payment status (completed by default)
            processed_date: Date the payment was processed (defaults to today)
            transaction_id: External reference
            notes: Free-form notes
            expected_version: Invoice version the caller last read

        Returns:
            Created Payment

        Raises:
            ValueError: if the invoice is missing or not payable, or the amount is out of range
            StaleInvoiceError: if expected_version does not match the stored invoice
        """
        method = PaymentMethod(method) if isinstance(method, str) else method
        status = PaymentStatus(status) if isinstance(status, str) else status
        processed_date = processed_date or date.today()

        with self.storage.atomic():
            invoice = self._require_invoice(invoice_id)
            self.invoice_manager.check_version(invoice, expected_version)

            if not isinstance(amount, Money):
                amount = Money(to_decimal(amount), invoice.currency)
            if not amount.is_positive():
                raise ValueError("Payment amount must be positive")

            if invoice.status in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED):
                raise ValueError(
                    f"Cannot record payment on {invoice.status.value} invoice {invoice.number}"
                )
            if invoice.status == InvoiceStatus.PAID:
                raise ValueError(f"Invoice {invoice.number} is already paid")

            payments = self.get_payments(invoice_id)
            remaining = self._balance(invoice, payments).remaining_balance
            if amount > remaining:
                raise ValueError(
                    f"Payment amount {amount.to_plain()} exceeds remaining balance "
                    f"{remaining.to_plain()} for invoice {invoice.number}"
                )

            now = datetime.now(timezone.utc)
            payment = Payment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                invoice_id=invoice_id,
                amount=amount,
                method=method,
                status=status,
                processed_date=processed_date,
                transaction_id=transaction_id,
                notes=notes
            )
            self._save_payment(payment)
            self._audit(
                AuditEventType.PAYMENT_RECORDED, payment,
                {
                    'invoice_id': invoice_id,
                    'amount': amount.to_plain(),
                    'method': method,
                    'status': status,
                    'processed_date': processed_date
                }
            )

            payments.append(payment)
            self._apply(invoice, payments)
            self.invoice_manager.save_invoice(invoice)

        logger.info(
            "Recorded %s payment of %s on invoice %s (status %s)",
            status.value, amount.to_string(), invoice.number, invoice.status.value
        )
        return payment

    def update_payment_status(
        self,
        payment_id: str,
        new_status: Union[PaymentStatus, str],
        expected_version: Optional[int] = None
    ) -> Payment:
        """
        Move a payment to a new status and reconcile its invoice

        Legal transitions: pending -> processing | completed | failed,
        processing -> completed | failed, completed -> refunded.
        """
        new_status = PaymentStatus(new_status) if isinstance(new_status, str) else new_status

        with self.storage.atomic():
            payment = self.get_payment(payment_id)
            if not payment:
                raise ValueError(f"Payment {payment_id} not found")

            invoice = self._require_invoice(payment.invoice_id)
            self.invoice_manager.check_version(invoice, expected_version)

            if not payment.status.can_transition_to(new_status):
                raise ValueError(
                    f"Invalid payment transition {payment.status.value} -> {new_status.value}"
                )

            payments = self.get_payments(invoice.id)
            if new_status == PaymentStatus.COMPLETED:
                if invoice.status == InvoiceStatus.CANCELLED:
                    raise ValueError(f"Cannot complete payment on cancelled invoice {invoice.number}")
                remaining = self._balance(invoice, payments).remaining_balance
                if payment.amount > remaining:
                    raise ValueError(
                        f"Completing payment of {payment.amount.to_plain()} would exceed remaining "
                        f"balance {remaining.to_plain()} for invoice {invoice.number}"
                    )

            old_status = payment.status
            payment.status = new_status
            payment.touch()
            self._save_payment(payment)
            self._audit(
                AuditEventType.PAYMENT_STATUS_CHANGED, payment,
                {
                    'invoice_id': invoice.id,
                    'old_status': old_status,
                    'new_status': new_status,
                    'amount': payment.amount.to_plain()
                }
            )

            payments = [payment if p.id == payment.id else p for p in payments]
            self._apply(invoice, payments)
            self.invoice_manager.save_invoice(invoice)

        logger.info(
            "Payment %s moved %s -> %s", payment_id, old_status.value, new_status.value
        )
        return payment

    def reconcile(self, invoice_id: str) -> Invoice:
        """
        Re-derive the invoice's PAID status from its full payment log.

        The only place the PAID transition, and its reversal after a refund,
        happens. Safe to call at any time; writes only when the status changes.
        """
        with self.storage.atomic():
            invoice = self._require_invoice(invoice_id)
            if self._apply(invoice, self.get_payments(invoice_id)):
                self.invoice_manager.save_invoice(invoice)
            return invoice

    def get_balance(self, invoice_id: str) -> InvoiceBalance:
        """Total, completed paid-to-date and remaining balance. Pure read."""
        invoice = self._require_invoice(invoice_id)
        return self._balance(invoice, self.get_payments(invoice_id))

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        """Get payment by ID"""
        payment_data = self.storage.load(self.payments_table, payment_id)
        if payment_data:
            return self._payment_from_dict(payment_data)
        return None

    def get_payments(self, invoice_id: str) -> List[Payment]:
        """All payments for an invoice in chronological order"""
        payments_data = self.storage.find(self.payments_table, {'invoice_id': invoice_id})
        payments = [self._payment_from_dict(data) for data in payments_data]
        # Stable sort keeps recording order within a day
        return sorted(payments, key=lambda p: p.processed_date)

    def is_overdue(self, invoice: Invoice, as_of: Optional[date] = None) -> bool:
        """Derived overdue flag, never stored as a status"""
        return invoice.is_overdue(as_of)

    def get_invoice_summary(self, invoice_id: str, as_of: Optional[date] = None) -> Dict[str, Any]:
        """Stored status, display status, overdue flag and balance of an invoice"""
        invoice = self._require_invoice(invoice_id)
        payments = self.get_payments(invoice_id)
        balance = self._balance(invoice, payments)
        return {
            'invoice_id': invoice.id,
            'number': invoice.number,
            'customer_id': invoice.customer_id,
            'status': invoice.status.value,
            'display_status': invoice.display_status(as_of).value,
            'is_overdue': self.is_overdue(invoice, as_of),
            'due_date': invoice.due_date.isoformat(),
            'paid_date': invoice.paid_date.isoformat() if invoice.paid_date else None,
            'payment_count': len(payments),
            'version': invoice.version,
            **balance.to_dict()
        }

    def _require_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.invoice_manager.get_invoice(invoice_id)
        if not invoice:
            raise ValueError(f"Invoice {invoice_id} not found")
        return invoice

    def _balance(self, invoice: Invoice, payments: List[Payment]) -> InvoiceBalance:
        total = invoice.total
        zero = Money.zero(invoice.currency)
        total_paid = Money.sum((p.amount for p in payments if p.is_completed), invoice.currency)

        if invoice.status == InvoiceStatus.CANCELLED:
            return InvoiceBalance(total=total, total_paid=total_paid, remaining_balance=zero)

        remaining = total - total_paid
        if remaining.is_negative():
            log_action(
                logger, "warning",
                f"Completed payments exceed total on invoice {invoice.number}; clamping balance to zero",
                action="get_balance",
                resource=f"invoice:{invoice.id}",
                extra={
                    'total': total.to_plain(),
                    'total_paid': total_paid.to_plain(),
                    'overpaid': abs(remaining).to_plain()
                }
            )
            remaining = zero

        return InvoiceBalance(total=total, total_paid=total_paid, remaining_balance=remaining)

    def _apply(self, invoice: Invoice, payments: List[Payment]) -> bool:
        """
        Fold the payment log into the invoice status in place.

        Returns True when the invoice changed.
        """
        if invoice.status not in OPEN_STATUSES and invoice.status != InvoiceStatus.PAID:
            return False

        total = invoice.total
        paid = Money.zero(invoice.currency)
        settling_payment = None
        for payment in sorted(payments, key=lambda p: p.processed_date):
            if not payment.is_completed:
                continue
            paid = paid + payment.amount
            if settling_payment is None and paid >= total:
                settling_payment = payment

        if settling_payment is not None:
            if invoice.status == InvoiceStatus.PAID:
                return False
            self.invoice_manager.transition(invoice, InvoiceStatus.PAID)
            invoice.paid_date = settling_payment.processed_date
            invoice.payment_method = settling_payment.method.value
            self._audit_invoice(
                AuditEventType.INVOICE_PAID, invoice,
                {
                    'settling_payment_id': settling_payment.id,
                    'paid_date': invoice.paid_date,
                    'total_paid': paid.to_plain()
                }
            )
            logger.info("Invoice %s paid in full", invoice.number)
            return True

        if invoice.status == InvoiceStatus.PAID:
            reopened = InvoiceStatus.VIEWED if invoice.viewed_date else InvoiceStatus.SENT
            self.invoice_manager.transition(invoice, reopened)
            invoice.paid_date = None
            invoice.payment_method = None
            self._audit_invoice(
                AuditEventType.INVOICE_REOPENED, invoice,
                {'status': reopened, 'total_paid': paid.to_plain()}
            )
            logger.warning("Invoice %s reopened after refund", invoice.number)
            return True

        return False

    def _audit(self, event_type: AuditEventType, payment: Payment, metadata: Dict[str, Any]) -> None:
        if self.audit_trail is None:
            return
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="payment",
            entity_id=payment.id,
            metadata=metadata
        )

    def _audit_invoice(self, event_type: AuditEventType, invoice: Invoice, metadata: Dict[str, Any]) -> None:
        if self.audit_trail is None:
            return
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="invoice",
            entity_id=invoice.id,
            metadata=metadata
        )

    def _save_payment(self, payment: Payment) -> None:
        self.storage.save(self.payments_table, payment.id, self._payment_to_dict(payment))

    def _payment_to_dict(self, payment: Payment) -> Dict:
        return {
            'id': payment.id,
            'created_at': payment.created_at.isoformat(),
            'updated_at': payment.updated_at.isoformat(),
            'invoice_id': payment.invoice_id,
            'amount': str(payment.amount.amount),
            'currency': payment.amount.currency.code,
            'method': payment.method.value,
            'status': payment.status.value,
            'processed_date': payment.processed_date.isoformat(),
            'transaction_id': payment.transaction_id,
            'notes': payment.notes
        }

    def _payment_from_dict(self, data: Dict) -> Payment:
        currency = Currency[data.get('currency', self.invoice_manager.currency.code)]
        return Payment(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            invoice_id=data['invoice_id'],
            amount=Money(Decimal(data['amount']), currency),
            method=PaymentMethod(data['method']),
            status=PaymentStatus(data['status']),
            processed_date=date.fromisoformat(data['processed_date']),
            transaction_id=data.get('transaction_id'),
            notes=data.get('notes')
        )

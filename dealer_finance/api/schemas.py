"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..currency import Currency
from ..amortization import LoanParameters, PaymentFrequency, PrepaymentPlan, PrepaymentRecurrence
from ..invoices import Invoice
from ..ledger import Payment


# Loan calculator schemas
class LoanCalculationRequest(BaseModel):
    vehicle_price: str = Field(..., description="Decimal amount as string")
    down_payment: str = "0"
    annual_rate_percent: Optional[str] = Field(None, description="APR percent, defaults to the configured rate")
    term_periods: int = Field(..., description="Term in months")
    payment_frequency: str = Field("monthly", description="monthly, biweekly or weekly")
    include_insurance: bool = False
    insurance_amount: str = "0"
    include_tax: bool = False
    tax_rate_percent: str = "0"
    true_frequency: Optional[bool] = Field(None, description="Override the configured schedule mode")

    def to_loan_parameters(self, default_rate: Decimal, currency: Currency) -> LoanParameters:
        rate = Decimal(self.annual_rate_percent) if self.annual_rate_percent is not None else default_rate
        return LoanParameters(
            vehicle_price=Decimal(self.vehicle_price),
            down_payment=Decimal(self.down_payment),
            annual_rate_percent=rate,
            term_periods=self.term_periods,
            payment_frequency=PaymentFrequency(self.payment_frequency),
            include_insurance=self.include_insurance,
            insurance_amount=Decimal(self.insurance_amount),
            include_tax=self.include_tax,
            tax_rate_percent=Decimal(self.tax_rate_percent),
            currency=currency
        )


class PrepaymentRequest(BaseModel):
    loan: LoanCalculationRequest
    amount: str = Field(..., description="Extra principal per prepayment")
    start_period: int = 1
    recurrence: str = Field("one_time", description="one_time, monthly, quarterly or annually")

    def to_plan(self) -> PrepaymentPlan:
        return PrepaymentPlan(
            amount=Decimal(self.amount),
            start_period=self.start_period,
            recurrence=PrepaymentRecurrence(self.recurrence)
        )


# Invoice schemas
class InvoiceItemModel(BaseModel):
    description: str
    quantity: str = "1"
    unit_price: str = Field(..., description="Decimal amount as string")

    def to_item_dict(self) -> Dict[str, Any]:
        return {
            'description': self.description,
            'quantity': Decimal(self.quantity),
            'unit_price': Decimal(self.unit_price)
        }


class CreateInvoiceRequest(BaseModel):
    customer_id: str
    number: str
    items: List[InvoiceItemModel]
    due_date: str  # ISO date string
    tax_rate: Optional[str] = Field(None, description="Flat rate as a fraction, e.g. 0.08")
    notes: str = ""


class UpdateItemsRequest(BaseModel):
    items: List[InvoiceItemModel]
    tax_rate: Optional[str] = None
    expected_version: Optional[int] = None


class InvoiceActionRequest(BaseModel):
    expected_version: Optional[int] = None
    reason: str = ""


# Payment schemas
class RecordPaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    method: str = Field(..., description="credit_card, bank_transfer, cash, check or financing")
    status: str = "completed"
    processed_date: Optional[str] = None  # ISO date string
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class PaymentStatusRequest(BaseModel):
    status: str = Field(..., description="New payment status")
    expected_version: Optional[int] = None


def parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def invoice_response(invoice: Invoice) -> Dict[str, Any]:
    return {
        "id": invoice.id,
        "number": invoice.number,
        "customer_id": invoice.customer_id,
        "status": invoice.status.value,
        "items": [
            {
                "id": item.id,
                "description": item.description,
                "quantity": str(item.quantity),
                "unit_price": item.unit_price.to_plain(),
                "total": item.total.to_plain()
            }
            for item in invoice.items
        ],
        "currency": invoice.currency.code,
        "subtotal": invoice.subtotal.to_plain(),
        "tax_rate": str(invoice.tax_rate),
        "tax": invoice.tax.to_plain(),
        "total": invoice.total.to_plain(),
        "due_date": invoice.due_date.isoformat(),
        "paid_date": invoice.paid_date.isoformat() if invoice.paid_date else None,
        "payment_method": invoice.payment_method,
        "viewed_date": invoice.viewed_date.isoformat() if invoice.viewed_date else None,
        "notes": invoice.notes,
        "version": invoice.version
    }


def payment_response(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "invoice_id": payment.invoice_id,
        "amount": payment.amount.to_plain(),
        "method": payment.method.value,
        "status": payment.status.value,
        "processed_date": payment.processed_date.isoformat(),
        "transaction_id": payment.transaction_id,
        "notes": payment.notes
    }

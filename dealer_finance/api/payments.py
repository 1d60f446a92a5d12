"""
Payment endpoints
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response

from .deps import DealerFinanceSystem, get_system, http_error
from .schemas import RecordPaymentRequest, PaymentStatusRequest, payment_response, parse_date
from ..export import payments_to_csv


router = APIRouter()


@router.post("/invoices/{invoice_id}/payments", status_code=status.HTTP_201_CREATED)
async def record_payment(
    invoice_id: str,
    request: RecordPaymentRequest,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Record a payment against an invoice"""
    try:
        payment = system.ledger.record_payment(
            invoice_id=invoice_id,
            amount=request.amount,
            method=request.method,
            status=request.status,
            processed_date=parse_date(request.processed_date),
            transaction_id=request.transaction_id,
            notes=request.notes,
            expected_version=request.expected_version
        )
        invoice = system.invoice_manager.get_invoice(invoice_id)

        return {
            "payment": payment_response(payment),
            "invoice_status": invoice.status.value,
            "invoice_version": invoice.version,
            **system.ledger.get_balance(invoice_id).to_dict()
        }

    except Exception as e:
        raise http_error(e)


@router.get("/invoices/{invoice_id}/payments")
async def list_payments(
    invoice_id: str,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Payment history of an invoice in chronological order"""
    try:
        system.ledger.get_balance(invoice_id)
        payments = system.ledger.get_payments(invoice_id)

    except Exception as e:
        raise http_error(e)

    return {"payments": [payment_response(payment) for payment in payments]}


@router.get("/invoices/{invoice_id}/payments/export")
async def export_payments(
    invoice_id: str,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Download payment history as CSV"""
    try:
        invoice = system.invoice_manager.get_invoice(invoice_id)
        if not invoice:
            raise ValueError(f"Invoice {invoice_id} not found")
        content = payments_to_csv(system.ledger.get_payments(invoice_id))

    except Exception as e:
        raise http_error(e)

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="payments_{invoice.number}.csv"'}
    )


@router.post("/payments/{payment_id}/status")
async def update_payment_status(
    payment_id: str,
    request: PaymentStatusRequest,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Move a payment to a new status and reconcile its invoice"""
    try:
        payment = system.ledger.update_payment_status(
            payment_id, request.status, expected_version=request.expected_version
        )
        invoice = system.invoice_manager.get_invoice(payment.invoice_id)

        return {
            "payment": payment_response(payment),
            "invoice_status": invoice.status.value,
            "invoice_version": invoice.version,
            **system.ledger.get_balance(payment.invoice_id).to_dict()
        }

    except Exception as e:
        raise http_error(e)

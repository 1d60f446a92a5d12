"""
Invoice endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .deps import DealerFinanceSystem, get_system, http_error
from .schemas import (
    CreateInvoiceRequest, UpdateItemsRequest, InvoiceActionRequest,
    invoice_response, parse_date
)
from ..invoices import InvoiceStatus


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_invoice(
    request: CreateInvoiceRequest,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Create a draft invoice"""
    try:
        invoice = system.invoice_manager.create_invoice(
            customer_id=request.customer_id,
            number=request.number,
            items=[item.to_item_dict() for item in request.items],
            due_date=parse_date(request.due_date),
            tax_rate=request.tax_rate,
            notes=request.notes
        )
        return invoice_response(invoice)

    except Exception as e:
        raise http_error(e)


@router.get("")
async def list_invoices(
    customer_id: Optional[str] = None,
    number: Optional[str] = None,
    invoice_status: Optional[str] = None,
    system: DealerFinanceSystem = Depends(get_system)
):
    """List invoices by number, customer or stored status"""
    try:
        if number:
            invoice = system.invoice_manager.get_invoice_by_number(number)
            invoices = [invoice] if invoice else []
        elif customer_id:
            invoices = system.invoice_manager.get_customer_invoices(customer_id)
            if invoice_status:
                invoices = [i for i in invoices if i.status.value == invoice_status]
        else:
            status_filter = InvoiceStatus(invoice_status) if invoice_status else None
            invoices = system.invoice_manager.list_invoices(status_filter)

    except Exception as e:
        raise http_error(e)

    return {"invoices": [invoice_response(invoice) for invoice in invoices]}


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    as_of: Optional[str] = None,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Get invoice details with derived balance and display status"""
    invoice = system.invoice_manager.get_invoice(invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")

    try:
        summary = system.ledger.get_invoice_summary(invoice_id, parse_date(as_of))
    except Exception as e:
        raise http_error(e)

    response = invoice_response(invoice)
    response.update({
        "display_status": summary["display_status"],
        "is_overdue": summary["is_overdue"],
        "total_paid": summary["total_paid"],
        "remaining_balance": summary["remaining_balance"]
    })
    return response


@router.put("/{invoice_id}/items")
async def update_invoice_items(
    invoice_id: str,
    request: UpdateItemsRequest,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Replace the items of a draft invoice"""
    try:
        invoice = system.invoice_manager.update_items(
            invoice_id,
            [item.to_item_dict() for item in request.items],
            tax_rate=request.tax_rate,
            expected_version=request.expected_version
        )
        return invoice_response(invoice)

    except Exception as e:
        raise http_error(e)


@router.post("/{invoice_id}/send")
async def send_invoice(
    invoice_id: str,
    request: Optional[InvoiceActionRequest] = None,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Send a draft invoice to the customer"""
    request = request or InvoiceActionRequest()
    try:
        invoice = system.invoice_manager.send_invoice(invoice_id, expected_version=request.expected_version)
        return invoice_response(invoice)

    except Exception as e:
        raise http_error(e)


@router.post("/{invoice_id}/view")
async def mark_invoice_viewed(
    invoice_id: str,
    request: Optional[InvoiceActionRequest] = None,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Record that the customer viewed the invoice"""
    request = request or InvoiceActionRequest()
    try:
        invoice = system.invoice_manager.mark_viewed(invoice_id, expected_version=request.expected_version)
        return invoice_response(invoice)

    except Exception as e:
        raise http_error(e)


@router.post("/{invoice_id}/cancel")
async def cancel_invoice(
    invoice_id: str,
    request: Optional[InvoiceActionRequest] = None,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Cancel an unpaid invoice"""
    request = request or InvoiceActionRequest()
    try:
        invoice = system.invoice_manager.cancel_invoice(
            invoice_id, reason=request.reason, expected_version=request.expected_version
        )
        return invoice_response(invoice)

    except Exception as e:
        raise http_error(e)


@router.delete("/{invoice_id}")
async def delete_draft_invoice(
    invoice_id: str,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Delete a draft invoice"""
    try:
        system.invoice_manager.delete_draft(invoice_id)
        return {"message": "Invoice deleted"}

    except Exception as e:
        raise http_error(e)


@router.get("/{invoice_id}/balance")
async def get_invoice_balance(
    invoice_id: str,
    system: DealerFinanceSystem = Depends(get_system)
):
    """Get paid-to-date and remaining balance"""
    try:
        return system.ledger.get_balance(invoice_id).to_dict()

    except Exception as e:
        raise http_error(e)

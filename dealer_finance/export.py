"""
Export Module

Flat comma-separated exports of amortization schedules and invoice payment
history. Column order matches the dealership's existing download files.
"""

import csv
import io
from typing import Iterable, List

from .amortization import AmortizationEntry
from .ledger import Payment


SCHEDULE_HEADERS = [
    'Month', 'Payment', 'Principal', 'Interest',
    'Additional Costs', 'Balance', 'Total Interest Paid'
]

# Transaction ID precedes Date, as in the existing payment history download
PAYMENT_HEADERS = [
    'ID', 'Invoice ID', 'Amount', 'Method',
    'Status', 'Transaction ID', 'Date', 'Notes'
]


def _write_rows(headers: List[str], rows: Iterable[List[str]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)

    csv_content = output.getvalue()
    output.close()
    return csv_content


def schedule_to_csv(rows: Iterable[AmortizationEntry]) -> str:
    """Export amortization schedule rows, one line per period"""
    return _write_rows(SCHEDULE_HEADERS, (
        [
            str(entry.period),
            entry.payment.to_plain(),
            entry.principal.to_plain(),
            entry.interest.to_plain(),
            entry.additional_costs.to_plain(),
            entry.balance.to_plain(),
            entry.total_interest_paid.to_plain()
        ]
        for entry in rows
    ))


def payments_to_csv(payments: Iterable[Payment]) -> str:
    """Export payment history; missing optional fields are left empty"""
    return _write_rows(PAYMENT_HEADERS, (
        [
            payment.id,
            payment.invoice_id,
            payment.amount.to_plain(),
            payment.method.value,
            payment.status.value,
            payment.transaction_id or '',
            payment.processed_date.isoformat(),
            payment.notes or ''
        ]
        for payment in payments
    ))

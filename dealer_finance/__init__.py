"""
Dealer Finance

Loan amortization calculator and invoice/payment ledger for vehicle
dealerships, with Decimal money math and a hash-chained audit trail.
"""

__version__ = "1.0.0"

"""
System container and request dependencies
"""

from typing import Optional

from fastapi import HTTPException

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..currency import Currency
from ..invoices import InvoiceManager, StaleInvoiceError
from ..ledger import LedgerReconciler
from ..config import DealerFinanceConfig, get_config


class DealerFinanceSystem:
    """Ledger components wired to one storage backend"""

    def __init__(
        self,
        config: Optional[DealerFinanceConfig] = None,
        storage: Optional[StorageInterface] = None
    ):
        self.config = config or get_config()
        self.currency = Currency[self.config.currency]

        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.database_path)
        self.storage = storage

        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.invoice_manager = InvoiceManager(
            self.storage, self.audit_trail,
            default_tax_rate=self.config.default_tax_rate,
            currency=self.currency
        )
        self.ledger = LedgerReconciler(self.storage, self.invoice_manager, self.audit_trail)

    def close(self) -> None:
        self.storage.close()


_system: Optional[DealerFinanceSystem] = None


def get_system() -> DealerFinanceSystem:
    """Dependency returning the process-wide system, created on first use"""
    global _system
    if _system is None:
        _system = DealerFinanceSystem()
    return _system


def http_error(error: Exception) -> HTTPException:
    """Map a domain error onto an HTTP error response"""
    if isinstance(error, StaleInvoiceError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValueError) and "not found" in str(error):
        return HTTPException(status_code=404, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))

"""
Tests for storage backends and transaction support
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from dealer_finance.storage import (
    InMemoryStorage, SQLiteStorage, create_storage
)


invoice_data = {
    "id": "inv_001",
    "number": "INV-1001",
    "status": "sent",
    "total": "669.60",
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    backend = create_storage(request.param, ":memory:")
    yield backend
    backend.close()


class TestStorageBackends:
    """Behaviour shared by every backend"""

    def test_save_and_load(self, storage):
        storage.save("invoices", "inv_001", invoice_data)
        assert storage.load("invoices", "inv_001") == invoice_data

    def test_load_missing_returns_default(self, storage):
        assert storage.load("invoices", "missing") is None
        assert storage.load("invoices", "missing", default={}) == {}

    def test_update_keeps_insertion_order(self, storage):
        for i in range(3):
            storage.save("payments", f"pay_{i}", {"id": f"pay_{i}", "amount": "10.00"})
        storage.save("payments", "pay_0", {"id": "pay_0", "amount": "20.00"})

        records = storage.load_all("payments")
        assert [r["id"] for r in records] == ["pay_0", "pay_1", "pay_2"]
        assert records[0]["amount"] == "20.00"

    def test_decimal_values_serialized(self, storage):
        storage.save("payments", "pay_1", {"id": "pay_1", "amount": Decimal('12.50')})
        assert storage.load("payments", "pay_1")["amount"] == "12.50"

    def test_find_exists_count_delete(self, storage):
        storage.save("invoices", "a", {"id": "a", "customer_id": "c1"})
        storage.save("invoices", "b", {"id": "b", "customer_id": "c2"})

        assert [r["id"] for r in storage.find("invoices", {"customer_id": "c2"})] == ["b"]
        assert storage.exists("invoices", "a")
        assert storage.count("invoices") == 2
        assert storage.delete("invoices", "a")
        assert not storage.delete("invoices", "a")
        assert storage.count("invoices") == 1

    def test_clear_table(self, storage):
        storage.save("invoices", "a", {"id": "a"})
        storage.clear_table("invoices")
        assert storage.load_all("invoices") == []

    def test_atomic_commits(self, storage):
        with storage.atomic():
            storage.save("invoices", "a", {"id": "a"})
            storage.save("payments", "p", {"id": "p", "invoice_id": "a"})

        assert storage.exists("invoices", "a")
        assert storage.exists("payments", "p")

    def test_atomic_rolls_back_on_error(self, storage):
        storage.save("invoices", "a", {"id": "a", "version": 1})

        with pytest.raises(ValueError):
            with storage.atomic():
                storage.save("invoices", "a", {"id": "a", "version": 2})
                storage.save("payments", "p", {"id": "p"})
                raise ValueError("rejected")

        assert storage.load("invoices", "a")["version"] == 1
        assert not storage.exists("payments", "p")

    def test_nested_atomic_joins_outer_scope(self, storage):
        with pytest.raises(ValueError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("invoices", "inner", {"id": "inner"})
                raise ValueError("outer fails")

        assert not storage.exists("invoices", "inner")


class TestInMemoryStorage:
    """In-memory specifics"""

    def test_loaded_records_are_copies(self):
        storage = InMemoryStorage()
        storage.save("invoices", "a", {"id": "a", "items": [{"description": "x"}]})

        loaded = storage.load("invoices", "a")
        loaded["items"].append({"description": "y"})
        assert len(storage.load("invoices", "a")["items"]) == 1


class TestSQLiteStorage:
    """SQLite specifics"""

    def test_persists_to_file(self, tmp_path):
        db_path = tmp_path / "dealer_finance.db"
        storage = SQLiteStorage(db_path)
        storage.save("invoices", "a", invoice_data)
        storage.close()

        reopened = SQLiteStorage(db_path)
        assert reopened.load("invoices", "a") == invoice_data
        reopened.close()

    def test_table_created_inside_rolled_back_transaction(self):
        storage = SQLiteStorage(":memory:")
        with pytest.raises(ValueError):
            with storage.atomic():
                storage.save("fresh_table", "a", {"id": "a"})
                raise ValueError("rejected")

        storage.save("fresh_table", "b", {"id": "b"})
        assert [r["id"] for r in storage.load_all("fresh_table")] == ["b"]
        storage.close()


def test_unknown_backend_rejected():
    with pytest.raises(ValueError, match="Unsupported storage backend"):
        create_storage("postgres")

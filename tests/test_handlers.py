import pytest

from khata_erp.api import build_registry


@pytest.fixture()
def api(conn):
    return build_registry(conn, reuse_freed=False)


def _ok(result):
    assert result["success"] is True, result
    return result


def test_every_entity_is_registered(api):
    entities = {c.split(":", 1)[0] for c in api.channels()}
    assert {
        "products", "customers", "suppliers", "invoices", "customerOrders", "supplierOrders",
        "transactions", "maal", "supplierMaal", "supplierTransactions", "quickSales",
        "history", "ledger", "admin",
    } <= entities


def test_unknown_channel_is_a_result(api):
    assert api.invoke("invoices:explode", {}) == {
        "success": False, "error": "Unknown operation: invoices:explode", "code": "not_found",
    }


def test_invoice_flow_through_handlers(api):
    _ok(api.invoke("customers:create", {"customer_id": "C-1", "name": "Ramesh"}))
    assert _ok(api.invoke("invoices:getNextId"))["invoice_id"] == "E-1"

    created = _ok(api.invoke("invoices:create", {
        "customer_id": "C-1", "invoice_date": "2024-09-01", "remark": "r",
        "packing": 2, "freight": "", "riksha": None,
        "items": [
            {"product_code": "A", "quantity": 2, "selling_price": 10},
            {"product_code": "B", "quantity": 1, "selling_price": 5},
        ],
        "payment_amount": 7, "payment_type": "UPI",
    }))
    invoice_id = created["invoice_id"]

    data = _ok(api.invoke("invoices:get", {"invoice_id": invoice_id}))["data"]
    assert data["grand_total"] == 27
    assert data["payment"]["txn_type"] == "UPI"
    assert _ok(api.invoke("ledger:balance", {"party_id": "C-1"}))["balance"] == 20

    # edit without payment fields keeps the payment
    _ok(api.invoke("invoices:update", {
        "invoice_id": invoice_id, "customer_id": "C-1", "invoice_date": "2024-09-01",
        "items": [{"productCode": "A", "quantity": 3, "sellingPrice": 10}],
    }))
    assert _ok(api.invoke("ledger:balance", {"party_id": "C-1"}))["balance"] == 23

    history = _ok(api.invoke("history:party", {"customer_id": "C-1"}))["data"]
    assert [h["source"] for h in history] == ["invoice"]

    _ok(api.invoke("invoices:delete", {"invoice_id": invoice_id}))
    missing = api.invoke("invoices:delete", {"invoice_id": invoice_id})
    assert missing["success"] is False and missing["code"] == "not_found"


def test_validation_errors_carry_code(api):
    res = api.invoke("invoices:create", {"customer_id": "", "invoice_date": "2024-09-01", "items": []})
    assert res["success"] is False
    assert res["code"] == "validation"
    assert "customer_id" in res["error"]


def test_non_numeric_ids_are_validation_errors(api):
    for channel in ("transactions:get", "transactions:update", "supplierTransactions:delete"):
        res = api.invoke(channel, {"transaction_id": "abc", "date": "2024-09-01", "txn_type": "Cash", "amount": 1})
        assert res["success"] is False
        assert res["code"] == "validation", channel
    assert api.invoke("products:deleteByRowid", {"rowid": "x1"})["code"] == "validation"
    assert api.invoke("transactions:get", {"transaction_id": "404"})["code"] == "not_found"


def test_constraint_errors_carry_engine_message(api):
    _ok(api.invoke("products:create", {"code": "rope", "name": "Rope"}))
    res = api.invoke("products:create", {"code": "rope", "name": "Rope"})
    assert res["code"] == "constraint"
    assert "UNIQUE" in res["error"]


def test_domain_refusal(api):
    _ok(api.invoke("customers:create", {"customer_id": "C-1", "name": "Ramesh"}))
    inv = _ok(api.invoke("invoices:create", {
        "customer_id": "C-1", "invoice_date": "2024-09-01",
        "items": [{"product_code": "A", "quantity": 1, "selling_price": 10}],
    }))
    res = api.invoke("maal:delete", {"maal_invoice_no": inv["invoice_id"]})
    assert res["success"] is False and res["code"] == "domain"


def test_maal_and_transactions(api):
    _ok(api.invoke("customers:create", {"customer_id": "C-2", "name": "Gupta"}))
    maal = _ok(api.invoke("maal:create", {"customer_id": "C-2", "maal_date": "2024-09-01", "maal_amount": 100}))
    assert maal["invoice_number"] == "E-1"
    txn = _ok(api.invoke("transactions:create", {
        "customer_id": "C-2", "jama_date": "2024-09-02", "jama_txn_type": "Cash", "jama_amount": 40,
    }))

    assert _ok(api.invoke("ledger:balance", {"party_id": "C-2"}))["balance"] == 60
    assert len(_ok(api.invoke("transactions:getAll", {"customer_id": "C-2"}))["data"]) == 1
    assert len(_ok(api.invoke("maal:getAll", {"customer_id": "C-2"}))["data"]) == 1

    _ok(api.invoke("transactions:update", {
        "transaction_id": txn["transaction_id"], "date": "2024-09-02", "txn_type": "Cash", "amount": 50,
    }))
    _ok(api.invoke("maal:update", {"id": maal["id"], "maal_date": "2024-09-01", "maal_amount": 120}))
    assert _ok(api.invoke("ledger:balance", {"party_id": "C-2"}))["balance"] == 70

    _ok(api.invoke("transactions:delete", {"transaction_id": txn["transaction_id"]}))
    _ok(api.invoke("maal:delete", {"id": maal["id"]}))
    balances = _ok(api.invoke("ledger:balances", {}))["data"]
    assert balances == [{"party_id": "C-2", "name": "Gupta", "mobile": None, "maal": 0.0, "jama": 0.0, "balance": 0.0}]


def test_supplier_side(api):
    _ok(api.invoke("suppliers:create", {"supplier_id": "S-1", "name": "Sharma"}))
    order = _ok(api.invoke("supplierOrders:create", {
        "supplier_id": "S-1", "order_date": "2024-09-01",
        "items": [{"product_code": "A", "quantity": 10}],
        "payment": {"amount": 300, "type": "Bank"},
    }))
    assert order["order_id"] == "O-S-1"
    _ok(api.invoke("supplierMaal:create", {"supplier_id": "S-1", "maal_date": "2024-09-05", "maal_amount": 900}))
    _ok(api.invoke("supplierTransactions:create", {
        "supplier_id": "S-1", "jama_date": "2024-09-06", "jama_txn_type": "Bank", "jama_amount": 100,
    }))

    res = _ok(api.invoke("ledger:balance", {"party_id": "S-1", "role": "supplier"}))
    assert res == {"success": True, "maal": 900.0, "jama": 400.0, "balance": 500.0}
    assert len(_ok(api.invoke("history:supplierMaal", {"supplier_id": "S-1"}))["data"]) == 1
    assert len(_ok(api.invoke("history:payments", {"party_id": "S-1", "role": "supplier"}))["data"]) == 2

    bad = api.invoke("ledger:balance", {"party_id": "S-1", "role": "vendor"})
    assert bad["code"] == "validation"


def test_orders_status_and_quick_sales(api):
    _ok(api.invoke("customers:create", {"customer_id": "C-1", "name": "Ramesh"}))
    opts = _ok(api.invoke("customerOrders:statusOptions"))
    assert opts["default"] == "Received"

    order = _ok(api.invoke("customerOrders:create", {
        "customer_id": "C-1", "order_date": "2024-09-01", "items": [{"product_code": "A", "quantity": 1}],
    }))
    _ok(api.invoke("customerOrders:updateStatus", {"order_id": order["order_id"], "status": "Shipped"}))
    assert _ok(api.invoke("customerOrders:get", {"order_id": order["order_id"]}))["data"]["status"] == "Shipped"

    qs = _ok(api.invoke("quickSales:create", {
        "qs_date": "2024-09-01", "items": [{"product_code": "A", "quantity": 1, "selling_price": 9.5}],
    }))
    assert qs == {"success": True, "qs_id": "QS-1", "total": 10}


def test_products_update_with_new_code_and_cleanup(api):
    _ok(api.invoke("products:create", {"name": "Sami Rope", "size": "10 m", "selling_price": 40}))
    assert _ok(api.invoke("products:get", {"code": "sami-rope-10-m"}))["data"]["selling_price"] == 40

    _ok(api.invoke("products:update", {
        "original_code": "sami-rope-10-m", "code": "sami-10m", "name": "Sami Rope", "size": "10 m",
    }))
    assert api.invoke("products:get", {"code": "sami-rope-10-m"})["code"] == "not_found"

    _ok(api.invoke("products:delete", {"code": "sami-10m"}))
    res = _ok(api.invoke("admin:cleanupSoftDeletedProducts"))
    assert (res["deleted"], res["skipped"]) == (1, 0)


def test_unexpected_errors_are_internal(api, monkeypatch, caplog):
    from khata_erp.database.repositories import HistoryRepo

    def boom(self, customer_id):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(HistoryRepo, "list_party_history", boom)
    res = api.invoke("history:party", {"customer_id": "C-1"})
    assert res["success"] is False
    assert res["code"] == "internal"
    assert "disk on fire" in res["error"]

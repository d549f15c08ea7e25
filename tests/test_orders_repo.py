import pytest

from khata_erp.database.errors import ValidationError
from khata_erp.database.repositories import (
    CustomerOrdersRepo,
    CustomerOrderStatus,
    OrderLine,
    ProductsRepo,
    SupplierLedgerRepo,
    SupplierOrdersRepo,
    SupplierOrderStatus,
)


@pytest.fixture()
def orders(conn, seq):
    return CustomerOrdersRepo(conn, seq)


def test_customer_order_defaults_and_ids(orders, customer):
    assert orders.peek_next_id() == "O-C-1"
    order_id = orders.create_order(orders.draft(customer, "2024-06-01", lines=[OrderLine("A", 4)]))
    assert order_id == "O-C-1"

    data = orders.get_order(order_id)
    assert data["status"] == CustomerOrderStatus.RECEIVED.value == "Received"
    assert data["party_name"] == "Ramesh Traders"
    assert [(i["product_code"], i["quantity"]) for i in data["items"]] == [("A", 4.0)]
    assert data["payment"] is None


def test_status_is_free_text(orders, customer):
    order_id = orders.create_order(orders.draft(customer, "2024-06-01", status="Packed at godown",
                                                lines=[OrderLine("A", 1)]))
    assert orders.get_order(order_id)["status"] == "Packed at godown"
    assert orders.update_status(order_id, CustomerOrderStatus.SHIPPED.value)
    assert orders.get_order(order_id)["status"] == "Shipped"
    assert orders.update_status("O-C-404", "Shipped") is False
    with pytest.raises(ValidationError):
        orders.update_status(order_id, " ")


def test_status_options():
    assert CustomerOrdersRepo.status_options()[0] == "Received"
    assert "Waiting for Payment" in CustomerOrdersRepo.status_options()
    assert SupplierOrdersRepo.status_options() == [s.value for s in SupplierOrderStatus]
    assert SupplierOrdersRepo.DEFAULT_STATUS == "Placed"


def test_update_replaces_lines_and_stubs_products(conn, orders, customer):
    order_id = orders.create_order(orders.draft(customer, "2024-06-01",
                                                lines=[OrderLine("A", 1), OrderLine("B", 2)]))
    assert orders.update_order(order_id, orders.draft(customer, "2024-06-02", "rush",
                                                      lines=[{"productCode": "C", "quantity": "7"}]))
    data = orders.get_order(order_id)
    assert data["order_date"] == "2024-06-02"
    assert [(i["product_code"], i["quantity"]) for i in data["items"]] == [("C", 7.0)]
    assert ProductsRepo(conn).get("C") is not None


def test_list_orders_with_totals(orders, customer):
    orders.create_order(orders.draft(customer, "2024-06-01", lines=[OrderLine("A", 1), OrderLine("B", 2.5)]))
    orders.create_order(orders.draft(customer, "2024-06-03", lines=[OrderLine("A", 10)]))
    rows = orders.list_orders()
    assert [r["order_id"] for r in rows] == ["O-C-2", "O-C-1"]
    assert rows[1]["total_quantity"] == 3.5
    assert rows[1]["item_count"] == 2
    assert orders.list_orders("C-404") == []


def test_delete_order_is_not_found_the_second_time(conn, orders, customer):
    order_id = orders.create_order(orders.draft(customer, "2024-06-01", lines=[OrderLine("A", 1)]))
    assert orders.delete_order(order_id)
    assert conn.execute("SELECT COUNT(*) FROM customer_order_items").fetchone()[0] == 0
    assert orders.delete_order(order_id) is False
    assert orders.update_order(order_id, orders.draft(customer, "2024-06-01", lines=[OrderLine("A", 1)])) is False
    # numbers are never recycled for orders
    assert orders.peek_next_id() == "O-C-2"


@pytest.mark.parametrize("lines", [[], [OrderLine("A", 0)], [{"product_code": " ", "quantity": 1}]])
def test_order_validation(orders, customer, lines):
    with pytest.raises(ValidationError):
        orders.draft(customer, "2024-06-01", lines=lines)


def test_supplier_order_with_advance(conn, seq, supplier):
    repo = SupplierOrdersRepo(conn, seq)
    order_id = repo.create_order(repo.draft(supplier, "2024-06-01", lines=[OrderLine("A", 100)],
                                            payment={"amount": 1500, "type": "Bank"}))
    assert order_id == "O-S-1"
    data = repo.get_order(order_id)
    assert data["status"] == "Placed"
    assert data["payment"]["amount"] == 1500

    ledger = SupplierLedgerRepo(conn, seq)
    assert ledger.balance(supplier) == -1500

    repo.update_order(order_id, repo.draft(supplier, "2024-06-01", lines=[OrderLine("A", 100)],
                                           payment={"amount": 1000}))
    assert ledger.balance(supplier) == -1000

import pytest

from khata_erp.database.errors import ConstraintError, ValidationError
from khata_erp.database.repositories import CustomerLedgerRepo, CustomersRepo, SuppliersRepo


def test_customer_crud(conn):
    repo = CustomersRepo(conn)
    assert repo.create(" C-9 ", "  Gupta Stores ", "Station Road", "98") == "C-9"
    assert repo.get("C-9").name == "Gupta Stores"

    assert repo.update("C-9", "Gupta & Sons", None, "99")
    c = repo.get("C-9")
    assert (c.name, c.mobile) == ("Gupta & Sons", "99")
    assert c.as_dict("customer_id")["customer_id"] == "C-9"

    assert repo.delete("C-9")
    assert repo.get("C-9") is None
    assert repo.delete("C-9") is False
    assert repo.update("C-9", "Nobody") is False


def test_required_fields(conn):
    with pytest.raises(ValidationError):
        CustomersRepo(conn).create("", "Name")
    with pytest.raises(ValidationError):
        SuppliersRepo(conn).create("S-2", "  ")


def test_duplicate_id_is_constraint_error(conn, customer):
    with pytest.raises(ConstraintError):
        CustomersRepo(conn).create("C-1", "Someone else")


def test_search_matches_name_and_mobile(conn, customer):
    repo = CustomersRepo(conn)
    repo.create("C-2", "Bansal Hardware", None, "9811112222")
    assert [p.party_id for p in repo.search("bansal")] == ["C-2"]
    assert [p.party_id for p in repo.search("98000")] == ["C-1"]
    assert len(repo.list_all()) == 2


def test_party_with_ledger_rows_cannot_be_deleted(conn, customer):
    CustomerLedgerRepo(conn).create_jama_entry(customer, "2024-01-01", "Cash", 10)
    with pytest.raises(ConstraintError):
        CustomersRepo(conn).delete(customer)
    assert CustomersRepo(conn).exists(customer)


def test_suppliers_live_in_their_own_table(conn, supplier):
    assert SuppliersRepo(conn).get("S-1").name == "Sharma Wholesale"
    assert CustomersRepo(conn).get("S-1") is None

import logging

import pytest

from khata_erp.database.errors import DomainError
from khata_erp.database.repositories import InvoiceLine, InvoicesRepo, SequenceAllocator
from khata_erp.database.tx import immediate_tx


def _invoice(conn, seq, customer):
    repo = InvoicesRepo(conn, seq)
    return repo.create_invoice(repo.draft(customer, "2024-04-01", lines=[InvoiceLine("A", 1, 10)]))


def test_first_invoice_id_is_one(seq):
    assert seq.peek_next_id("invoice") == "E-1"
    assert seq.next_id("invoice") == "E-1"
    assert seq.next_id("invoice") == "E-2"


def test_prefix_per_document_type(seq):
    assert seq.next_id("customer_order") == "O-C-1"
    assert seq.next_id("supplier_order") == "O-S-1"
    assert seq.next_id("quick_sale") == "QS-1"
    assert seq.next_id("invoice") == "E-1"


def test_unknown_document_type(seq):
    with pytest.raises(DomainError):
        seq.next_id("credit_note")


def test_deleted_invoice_number_is_not_reissued(conn, seq, customer):
    repo = InvoicesRepo(conn, seq)
    first = _invoice(conn, seq, customer)
    assert first == "E-1"
    assert repo.delete_invoice(first)
    assert seq.next_id("invoice") == "E-2"


def test_peek_does_not_consume(seq):
    assert seq.peek_next_id("quick_sale") == "QS-1"
    assert seq.peek_next_id("quick_sale") == "QS-1"
    assert seq.last_number("quick_sale") == 0


def test_claim_rolls_back_with_caller_transaction(conn, seq):
    with pytest.raises(RuntimeError):
        with immediate_tx(conn):
            assert seq.next_id("invoice") == "E-1"
            raise RuntimeError("insert failed")
    assert seq.last_number("invoice") == 0
    assert seq.next_id("invoice") == "E-1"


def test_parse_number_understands_legacy_prefix(seq):
    assert seq.parse_number("invoice", "E-12") == 12
    assert seq.parse_number("invoice", "AGS-I-7") == 7
    assert seq.parse_number("invoice", "QS-3") is None
    assert seq.parse_number("invoice", "E-x") is None
    assert seq.parse_number("invoice", None) is None


def test_release_is_noop_when_reuse_disabled(conn, seq):
    assert seq.release("invoice", "E-1") is False
    assert conn.execute("SELECT COUNT(*) FROM reusable_invoice_numbers").fetchone()[0] == 0


def test_reuse_pool_hands_out_lowest_freed_number(conn, customer):
    seq = SequenceAllocator(conn, reuse_freed=True)
    repo = InvoicesRepo(conn, seq)
    ids = [_invoice(conn, seq, customer) for _ in range(3)]
    assert ids == ["E-1", "E-2", "E-3"]

    repo.delete_invoice("E-3")
    repo.delete_invoice("E-2")
    assert seq.peek_next_id("invoice") == "E-2"
    assert _invoice(conn, seq, customer) == "E-2"
    assert _invoice(conn, seq, customer) == "E-3"
    assert _invoice(conn, seq, customer) == "E-4"
    assert seq.check_pool_consistency("invoice") == []


def test_reuse_enabled_from_environment(conn, monkeypatch):
    monkeypatch.setenv("KHATA_ERP_REUSE_FREED_NUMBERS", "yes")
    assert SequenceAllocator(conn).reuse_freed is True
    monkeypatch.setenv("KHATA_ERP_REUSE_FREED_NUMBERS", "0")
    assert SequenceAllocator(conn).reuse_freed is False


def test_pool_consistency_reports_anomalies(conn, customer, caplog):
    seq = SequenceAllocator(conn, reuse_freed=True)
    _invoice(conn, seq, customer)  # E-1 live
    conn.execute("INSERT INTO reusable_invoice_numbers(invoice_number) VALUES (1)")
    conn.execute("INSERT INTO reusable_invoice_numbers(invoice_number) VALUES (40)")

    with caplog.at_level(logging.WARNING, logger="khata_erp.database.repositories.sequences_repo"):
        anomalies = seq.check_pool_consistency("invoice")

    kinds = sorted(a.kind for a in anomalies)
    assert kinds == ["pool_number_in_use", "pool_out_of_range"]
    assert any("outside" in r.getMessage() for r in caplog.records)


def test_reserve_raises_last_number_and_leaves_the_pool(conn):
    seq = SequenceAllocator(conn, reuse_freed=True)
    assert seq.next_id("invoice") == "E-1"
    assert seq.release("invoice", "E-1")

    assert seq.reserve("invoice", "E-1")
    assert seq.last_number("invoice") == 1
    assert seq.peek_next_id("invoice") == "E-2"

    assert seq.reserve("invoice", "E-10")
    assert seq.reserve("invoice", "E-4")
    assert seq.last_number("invoice") == 10
    assert seq.reserve("invoice", "OLD-77") is False
    assert seq.next_id("invoice") == "E-11"


def test_release_refuses_numbers_never_issued(conn):
    seq = SequenceAllocator(conn, reuse_freed=True)
    seq.next_id("invoice")
    assert seq.release("invoice", "E-99") is False
    assert conn.execute("SELECT COUNT(*) FROM reusable_invoice_numbers").fetchone()[0] == 0
    assert seq.next_id("invoice") == "E-2"

import json
import logging

import pytest

from khata_erp import config
from khata_erp.utils.helpers import round_half_up, round_off
from khata_erp.utils.validators import is_strictly_positive_number, non_empty, parse_float


def test_round_off_is_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2
    assert round_off(26.5) == (27, 0.5)
    assert round_off(26.4) == (26, -0.4)


def test_validators():
    assert non_empty(" x ")
    assert not non_empty("   ")
    assert parse_float("", default=0.0) == 0.0
    assert parse_float("2.5") == 2.5
    with pytest.raises(ValueError):
        parse_float(True)
    assert is_strictly_positive_number("1")
    assert not is_strictly_positive_number(0)


def test_config_paths_follow_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("KHATA_ERP_DATA_DIR", str(tmp_path / "d"))
    monkeypatch.delenv("KHATA_ERP_LOG_DIR")
    assert config.db_path() == tmp_path / "d" / "erp.db"
    assert config.log_dir() == tmp_path / "d" / "logs"
    assert config.reuse_freed_numbers() is False


def test_audit_logger_ignores_foreign_handlers(tmp_path):
    from khata_erp.utils.loggers import get_audit_logger, log_event, reset_audit_logger

    audit = logging.getLogger("khata_erp.audit")
    foreign = logging.NullHandler()
    audit.addHandler(foreign)
    try:
        log_file = tmp_path / "audit" / "a.log"
        logger = get_audit_logger(log_file)
        assert get_audit_logger(log_file) is logger
        log_event(logger, "sequence.pool", "check", "hello", {"n": 1})
        for h in logger.handlers:
            h.flush()
        assert json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])["extra"]["n"] == 1

        reset_audit_logger()
        assert foreign in audit.handlers
        assert not any(getattr(h, "_khata_audit", False) for h in audit.handlers)
    finally:
        audit.removeHandler(foreign)

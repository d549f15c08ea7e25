# utils/validators.py

def non_empty(text) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text is not None and str(text).strip())


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to float.

    Returns:
        (ok: bool, value: float|None)
    """
    if isinstance(x, bool):
        return False, None
    try:
        return True, float(x)
    except (TypeError, ValueError):
        return False, None


def parse_float(x, default: float | None = None) -> float:
    """
    Strict parse to float; raises ValueError with a clear message on failure.
    Blank input (None / "") yields `default` when one is given.
    """
    if default is not None and (x is None or (isinstance(x, str) and not x.strip())):
        return default
    ok, val = try_parse_float(x)
    if not ok:
        raise ValueError(f"Could not parse '{x}' as a number.")
    return val  # type: ignore[return-value]


def is_strictly_positive_number(x) -> bool:
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val > 0)

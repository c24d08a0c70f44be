"""Reduce arbitrary text to a safe printable form for logging."""

_KEPT_CONTROLS = frozenset("\r\n\t")


def _is_kept(char: str) -> bool:
    return char in _KEPT_CONTROLS or "\x20" <= char <= "\x7e"


def escape_default_except_lf(text: str) -> str:
    """Replace every character that is not printable ASCII, CR, LF or TAB with '?'."""
    return "".join(char if _is_kept(char) else "?" for char in text)
import sys
from typing import Any

_DEFAULT_ERRORS = "backslashreplace"


def _get_encoding(stream) -> str:
    return getattr(stream, "encoding", None) or getattr(sys.stdout, "encoding", None) or "utf-8"


def safe_str(x: Any, encoding: str | None = None, errors: str = _DEFAULT_ERRORS) -> str:
    if isinstance(x, bytes):
        return x.decode(encoding or "utf-8", errors=errors)

    s = str(x)
    enc = encoding or _get_encoding(sys.stdout)
    try:
        s.encode(enc)
        return s
    except UnicodeEncodeError:
        return s.encode(enc, errors=errors).decode(enc, errors=errors)
    except LookupError:
        return s.encode("utf-8", errors=errors).decode("utf-8", errors=errors)


def safe_print(*args: Any, **kwargs: Any) -> None:
    sep = kwargs.pop("sep", " ")
    end = kwargs.pop("end", "\n")
    file = kwargs.pop("file", sys.stdout)
    flush = kwargs.pop("flush", False)
    errors = kwargs.pop("errors", _DEFAULT_ERRORS)

    if kwargs:
        unexpected = ", ".join(sorted(kwargs))
        raise TypeError(f"safe_print() got unexpected keyword arguments: {unexpected}")

    encoding = _get_encoding(file)
    safe_args = [safe_str(arg, encoding=encoding, errors=errors) for arg in args]
    text = safe_str(sep, encoding=encoding, errors=errors).join(safe_args)
    text += safe_str(end, encoding=encoding, errors=errors)

    try:
        file.write(text)
    except UnicodeEncodeError:
        file.write(text.encode(encoding, errors=errors).decode(encoding, errors=errors))

    if flush:
        file.flush()


def format_table(rows, headers) -> str:
    """Render rows as a fixed-width text table for terminal output."""
    cells = [[str(h) for h in headers]] + [[str(c) for c in row] for row in rows]
    widths = [max(len(r[i]) for r in cells) for i in range(len(headers))]
    lines = []
    for idx, row in enumerate(cells):
        lines.append("  ".join(c.ljust(w) for c, w in zip(row, widths)).rstrip())
        if idx == 0:
            lines.append("  ".join("-" * w for w in widths))
    return "\n".join(lines)

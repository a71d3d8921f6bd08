"""Utility functions for sqlmove.

Helpers shared by the catalog, the volume relabeler and the relocation units:
drive letter normalisation, T-SQL and PowerShell quoting, path arithmetic on
Windows paths and size formatting.
"""

import ntpath
import re

_DRIVE_LETTER_RE = re.compile(r"^\s*([A-Za-z])\s*:?\s*\\?\s*$")


def normalize_drive_letter(value: str) -> str:
    """Normalize a drive letter to a single uppercase letter.

    Args:
        value: Drive letter in any of the usual spellings

    Returns:
        Single uppercase letter

    Raises:
        ValueError: If the value is not a drive letter

    Examples:
        >>> normalize_drive_letter("e:")
        'E'
        >>> normalize_drive_letter("F:\\\\")
        'F'
    """
    match = _DRIVE_LETTER_RE.match(value or "")
    if not match:
        raise ValueError(f"Not a drive letter: {value!r}")
    return match.group(1).upper()


def volume_root(letter: str) -> str:
    """Return the root directory of a volume, e.g. ``E:\\``."""
    return f"{normalize_drive_letter(letter)}:\\"


def display_letter(letter: str) -> str:
    """Return the ``E:`` spelling of a drive letter."""
    return f"{normalize_drive_letter(letter)}:"


def quote_identifier(name: str) -> str:
    """Bracket-quote a T-SQL identifier the way QUOTENAME does."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Quote a T-SQL Unicode string literal."""
    return "N'" + value.replace("'", "''") + "'"


def ps_quote(value: str) -> str:
    """Quote a PowerShell single-quoted string."""
    return "'" + value.replace("'", "''") + "'"


def relocated_path(original_path: str, destination_dir: str) -> str:
    """Compute the new path of a file moved into ``destination_dir``.

    Only the containing directory changes; the file name is preserved.

    Examples:
        >>> relocated_path("D:\\\\data\\\\db1.mdf", "X:\\\\data")
        'X:\\\\data\\\\db1.mdf'
    """
    return ntpath.join(destination_dir, ntpath.basename(original_path))


def format_size(size_bytes: int) -> str:
    """Format bytes into human-readable string.

    Examples:
        >>> format_size(0)
        '0 B'
        >>> format_size(1024)
        '1.0 KB'
        >>> format_size(1536870912)
        '1.4 GB'
    """
    if size_bytes == 0:
        return "0 B"

    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_bytes < 1024.0:
            if unit == "B":
                return f"{int(size_bytes)} {unit}"
            else:
                return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"

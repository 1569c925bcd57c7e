"""
Conversion between spreadsheet cell references ("B12") and 0-based indices.

Columns use bijective base-26 letters (A..Z, AA, AB, ...); rows are 1-based
decimal numbers in references and 0-based indices in code.
"""
import re
from typing import NamedTuple, Optional, Tuple

from .exceptions import InvalidAddressError

_ADDRESS_RE = re.compile(r"([A-Za-z]+)([0-9]+)")


class CellPosition(NamedTuple):
    row_index: int
    col_index: int


def column_letters(col_index: int) -> str:
    """Encodes a 0-based column index: 0 -> 'A', 25 -> 'Z', 26 -> 'AA'."""
    if col_index < 0:
        raise ValueError(f"Column index must be >= 0, got {col_index}")
    letters = ""
    n = col_index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(ord('A') + remainder) + letters
    return letters


def column_index(letters: str) -> int:
    """Decodes column letters (case-insensitive) into a 0-based index."""
    index = 0
    for ch in letters.upper():
        index = index * 26 + (ord(ch) - ord('A') + 1)
    return index - 1


def to_address(row_index: int, col_index: int) -> str:
    """
    Builds a cell reference from 0-based indices.

    >>> to_address(0, 0)
    'A1'
    >>> to_address(0, 26)
    'AA1'
    """
    if row_index < 0:
        raise ValueError(f"Row index must be >= 0, got {row_index}")
    return f"{column_letters(col_index)}{row_index + 1}"


def from_address(address: str) -> CellPosition:
    """
    Parses a cell reference into 0-based indices.

    >>> from_address("B5")
    CellPosition(row_index=4, col_index=1)

    Raises:
        InvalidAddressError: If the reference is not letters followed by a row >= 1.
    """
    match = _ADDRESS_RE.fullmatch(address or "")
    if not match:
        raise InvalidAddressError(address)
    row_number = int(match.group(2))
    if row_number < 1:
        raise InvalidAddressError(address)
    return CellPosition(row_number - 1, column_index(match.group(1)))


def try_from_address(address: str) -> Optional[CellPosition]:
    """Like `from_address` but returns None for malformed references."""
    try:
        return from_address(address)
    except InvalidAddressError:
        return None


def split_cell_id(cell_id: str) -> Tuple[str, str]:
    """
    Splits a ``"Sheet:Ref"`` edit key into sheet name and cell reference.

    The split happens on the last colon so sheet names may contain colons.

    Raises:
        InvalidAddressError: If either part is missing.
    """
    sheet_name, sep, cell_ref = (cell_id or "").rpartition(':')
    if not sep or not sheet_name or not cell_ref:
        raise InvalidAddressError(cell_id)
    return sheet_name, cell_ref


def make_cell_id(sheet_name: str, row_index: int, col_index: int) -> str:
    """Builds the ``"Sheet:Ref"`` key used for spreadsheet edits."""
    return f"{sheet_name}:{to_address(row_index, col_index)}"

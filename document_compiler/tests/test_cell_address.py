import pytest

from document_compiler.cell_address import (
    CellPosition, column_index, column_letters, from_address, make_cell_id,
    split_cell_id, to_address, try_from_address
)
from document_compiler.exceptions import InvalidAddressError


@pytest.mark.parametrize("row, col, address", [
    (0, 0, "A1"),
    (0, 25, "Z1"),
    (0, 26, "AA1"),
    (0, 27, "AB1"),
    (0, 701, "ZZ1"),
    (0, 702, "AAA1"),
    (4, 1, "B5"),
    (99, 2, "C100"),
])
def test_to_address(row, col, address):
    assert to_address(row, col) == address

def test_from_address_concrete():
    assert from_address("B5") == CellPosition(row_index=4, col_index=1)
    assert from_address("b5") == CellPosition(4, 1)
    assert from_address("AA1").col_index == 26

def test_round_trip_over_grid():
    for row in range(0, 60, 7):
        for col in range(0, 800, 13):
            assert from_address(to_address(row, col)) == (row, col)

def test_column_helpers_are_inverse():
    for col in (0, 1, 25, 26, 51, 52, 701, 702, 18277):
        assert column_index(column_letters(col)) == col

@pytest.mark.parametrize("bad", ["", "A", "1", "A0", "1A", "A-1", "A1B", " A1", "B5\n", None])
def test_from_address_rejects_malformed(bad):
    with pytest.raises(InvalidAddressError):
        from_address(bad)
    assert try_from_address(bad) is None

def test_invalid_address_error_is_value_error():
    with pytest.raises(ValueError, match="Invalid cell address"):
        from_address("ZZ")

def test_negative_indices_rejected():
    with pytest.raises(ValueError):
        to_address(-1, 0)
    with pytest.raises(ValueError):
        to_address(0, -1)

def test_split_cell_id_uses_last_colon():
    assert split_cell_id("Sheet1:B2") == ("Sheet1", "B2")
    assert split_cell_id("Q1: Budget:C3") == ("Q1: Budget", "C3")

@pytest.mark.parametrize("bad", ["B2", ":B2", "Sheet1:", ""])
def test_split_cell_id_rejects_incomplete(bad):
    with pytest.raises(InvalidAddressError):
        split_cell_id(bad)

def test_make_cell_id():
    assert make_cell_id("Data", 2, 27) == "Data:AB3"

# tests/unit/test_reservation_lines.py
from datetime import date
from types import SimpleNamespace

import pytest

from app.services.errors import InvalidReservationRequest
from app.services.inventory_ledger import merge_quantities
from app.services.reservation_number import format_number, number_prefix, parse_sequence
from app.services.reservation_service import LineRequest, group_lines_by_business, merge_lines


def test_merge_lines_accepts_several_shapes_and_merges_duplicates():
    lines = merge_lines(
        [
            LineRequest(listing_id=3, quantity=1),
            (5, 2),
            {"listing_id": 3, "quantity": 4},
        ]
    )
    assert lines == [LineRequest(3, 5), LineRequest(5, 2)]


@pytest.mark.parametrize("bad", [[], [(1, 0)], [{"listing_id": 1}], [(None, 2)]])
def test_merge_lines_rejects_malformed(bad):
    with pytest.raises(InvalidReservationRequest):
        merge_lines(bad)


def test_group_lines_by_business_keeps_request_order():
    listings = {
        1: SimpleNamespace(business_id=20),
        2: SimpleNamespace(business_id=10),
        3: SimpleNamespace(business_id=20),
    }
    groups = group_lines_by_business(
        [LineRequest(1, 1), LineRequest(2, 1), LineRequest(3, 2)], listings
    )
    assert list(groups.keys()) == [20, 10]
    assert groups[20] == [LineRequest(1, 1), LineRequest(3, 2)]
    assert groups[10] == [LineRequest(2, 1)]


def test_merge_quantities_sorts_by_listing_id():
    assert merge_quantities([(9, 1), (2, 3), (9, 2)]) == [(2, 3), (9, 3)]


def test_reservation_number_format():
    day = date(2026, 3, 14)
    assert number_prefix("GRN", day) == "GRN-20260314"
    assert format_number("GRN", day, 7) == "GRN-20260314-00007"
    assert parse_sequence("GRN-20260314-00042") == 42
    assert parse_sequence("garbage") == 0

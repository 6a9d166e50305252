"""
Document numbering tests.

Verifies:
- Numbers are PREFIX-YYYYMMDD-NNNN, strictly increasing within a day
- Each business day starts again at 0001
- Order and sale sequences are independent
"""

from datetime import date

import pytest

from conftest import place_order

from voltshop.models import DocumentSequence
from voltshop.services import numbering_service
from voltshop.services.numbering_service import NumberingError, next_order_number, next_sale_number


class TestSequence:

    def test_numbers_increase_within_a_day(self, db_session):
        day = date(2024, 3, 9)
        numbers = [next_order_number(on_date=day) for _ in range(3)]
        assert numbers == ["ORD-20240309-0001", "ORD-20240309-0002", "ORD-20240309-0003"]

    def test_new_day_resets_counter(self, db_session):
        next_order_number(on_date=date(2024, 3, 9))
        next_order_number(on_date=date(2024, 3, 9))

        assert next_order_number(on_date=date(2024, 3, 10)) == "ORD-20240310-0001"
        assert db_session.query(DocumentSequence).count() == 2

    def test_sale_and_order_sequences_are_independent(self, db_session):
        day = date(2024, 3, 9)
        next_order_number(on_date=day)
        next_order_number(on_date=day)

        assert next_sale_number(on_date=day) == "SALE-20240309-0001"

    def test_pad_width(self, db_session):
        number = numbering_service.next_sequence_number(
            document_type="INVOICE", prefix="INV", on_date=date(2024, 1, 2), pad=6,
        )
        assert number == "INV-20240102-000001"

    @pytest.mark.parametrize("document_type,prefix", [("", "ORD"), ("ORDER", "")])
    def test_requires_type_and_prefix(self, db_session, document_type, prefix):
        with pytest.raises(NumberingError):
            numbering_service.next_sequence_number(document_type=document_type, prefix=prefix)

    def test_business_date_follows_configured_timezone(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "BUSINESS_TIMEZONE", "Africa/Kampala")
        number = next_order_number()
        today = numbering_service.current_business_date()
        assert number == f"ORD-{today:%Y%m%d}-0001"


def test_orders_get_distinct_numbers(customer, laptop):
    first = place_order(customer, (laptop.id, 1))
    second = place_order(customer, (laptop.id, 1))

    assert first.order_number != second.order_number
    assert first.order_number.rsplit("-", 1)[1] == "0001"
    assert second.order_number.rsplit("-", 1)[1] == "0002"

"""
Document numbering tests (INQ and UP series).

Numbers are PREFIX + YYYY + MM + a 4-digit sequence that restarts every month.
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from uniform_palace.models import DocumentSequence, Inquiry
from uniform_palace.services import document_service, inquiry_service
from uniform_palace.services.document_service import DocumentSequenceError


class TestFormat:

    def test_format(self):
        assert document_service.format_document_number("INQ", datetime(2024, 1, 15), 7) == "INQ2024010007"
        assert document_service.format_document_number("UP", datetime(2024, 11, 2), 123) == "UP2024110123"

    def test_sequence_wider_than_padding(self):
        assert document_service.format_document_number("UP", datetime(2024, 3, 1), 12345) == "UP20240312345"


class TestAllocation:

    def test_consecutive_numbers(self, db_session):
        at = datetime(2024, 1, 10)
        first = document_service.next_document_number(document_type="inquiry", at=at)
        second = document_service.next_document_number(document_type="inquiry", at=at)
        db_session.commit()

        assert first == "INQ2024010001"
        assert second == "INQ2024010002"

    def test_sequence_restarts_each_month(self, db_session):
        document_service.next_document_number(document_type="order", at=datetime(2024, 1, 31))
        document_service.next_document_number(document_type="order", at=datetime(2024, 1, 31))
        feb = document_service.next_document_number(document_type="order", at=datetime(2024, 2, 1))
        db_session.commit()

        assert feb == "UP2024020001"
        periods = {s.period: s.next_number for s in db_session.query(DocumentSequence).all()}
        assert periods == {"202401": 3, "202402": 2}

    def test_series_are_independent(self, db_session):
        at = datetime(2024, 5, 5)
        assert document_service.next_document_number(document_type="inquiry", at=at) == "INQ2024050001"
        assert document_service.next_document_number(document_type="order", at=at) == "UP2024050001"

    def test_seeds_from_existing_records(self, db_session, inquiry_form):
        # Records created before the counter row existed
        for n in (1, 2):
            db_session.add(Inquiry(
                inquiry_number=f"INQ202403000{n}",
                inquiry_date=datetime(2024, 3, n),
                status="new",
                **inquiry_form,
            ))
        db_session.commit()

        assert document_service.next_document_number(document_type="inquiry", at=datetime(2024, 3, 20)) == "INQ2024030003"

    def test_rollback_releases_number(self, db_session):
        at = datetime(2024, 6, 1)
        document_service.next_document_number(document_type="inquiry", at=at)
        db_session.rollback()

        assert document_service.next_document_number(document_type="inquiry", at=at) == "INQ2024060001"

    def test_unknown_type(self, db_session):
        with pytest.raises(DocumentSequenceError):
            document_service.next_document_number(document_type="invoice")

    def test_unknown_type_answers_400(self, app, db_session):
        from uniform_palace.errors import json_error

        with app.test_request_context():
            with pytest.raises(DocumentSequenceError) as info:
                document_service.next_document_number(document_type="invoice")
            resp, status = json_error(info.value, action="allocate number")

        assert status == 400
        assert resp.get_json()["error"] == "Unknown document type: invoice"


class TestRetry:

    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch):
        from uniform_palace.services import concurrency

        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)

    def test_lock_error_retried_when_nothing_staged(self, db_session, monkeypatch):
        real_allocate = document_service._allocate
        calls = []

        def flaky(*args):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return real_allocate(*args)

        monkeypatch.setattr(document_service, "_allocate", flaky)
        number = document_service.next_document_number(document_type="order", at=datetime(2024, 7, 1))

        assert number == "UP2024070001"
        assert len(calls) == 2

    def test_staged_work_is_not_rolled_back(self, db_session, inquiry_form, monkeypatch):
        staged = Inquiry(
            inquiry_number="INQ2024070099", inquiry_date=datetime(2024, 7, 1), status="new", **inquiry_form,
        )
        db_session.add(staged)
        calls = []

        def locked(*args):
            calls.append(args)
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        monkeypatch.setattr(document_service, "_allocate", locked)
        with pytest.raises(OperationalError):
            document_service.next_document_number(document_type="inquiry", at=datetime(2024, 7, 1))

        assert len(calls) == 1
        assert staged in db_session.new


class TestSubmittedInquiries:

    def test_submitted_inquiries_are_numbered_in_order(self, db_session, inquiry_form):
        numbers = [inquiry_service.submit_inquiry(patch=dict(inquiry_form)).inquiry_number for _ in range(3)]

        assert len(set(numbers)) == 3
        assert all(n.startswith("INQ") and len(n) == 13 for n in numbers)
        assert [int(n[-4:]) for n in numbers] == [1, 2, 3]

"""Tests for the in-memory NativeHealthStore."""

from __future__ import annotations

import asyncio
from datetime import datetime

from conftest import STEPS, make_quantity_sample

from healthbridge.domains.health.connectors import NativeHealthStore
from healthbridge.domains.health.connectors.memory_store import InMemoryHealthStore


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestInMemoryHealthStore:
    def test_implements_protocol(self):
        assert isinstance(InMemoryHealthStore(), NativeHealthStore)

    def test_characteristics(self, memory_store):
        assert _run(memory_store.read_gender()) == "female"
        assert _run(memory_store.read_date_of_birth()) == "1990-04-12"

    def test_auth_defaults_to_undetermined(self):
        store = InMemoryHealthStore()
        assert _run(store.check_auth_status(STEPS)) == "undetermined"
        assert _run(InMemoryHealthStore(authorized=True).check_auth_status(STEPS)) == "authorized"

    def test_range_filter_requires_containment(self, memory_store):
        memory_store.add_sample(make_quantity_sample(STEPS, 10, datetime(2026, 1, 1, 23), datetime(2026, 1, 2, 1)))
        memory_store.add_sample(make_quantity_sample(STEPS, 20, datetime(2026, 1, 2, 3)))

        result = _run(memory_store.query_sample_type(STEPS, datetime(2026, 1, 2), datetime(2026, 1, 3)))
        assert [r["quantity"] for r in result] == [20]

    def test_aggregated_windows(self, memory_store):
        memory_store.add_sample(make_quantity_sample(STEPS, 5, datetime(2026, 1, 1, 10, 15)))
        memory_store.add_sample(make_quantity_sample(STEPS, 7, datetime(2026, 1, 1, 12, 5)))

        result = _run(memory_store.query_sample_type_aggregated(
            STEPS, datetime(2026, 1, 1, 10), datetime(2026, 1, 1, 13), "hour"
        ))
        assert [r["quantity"] for r in result] == [5, 0, 7]

    def test_correlation_stored_in_grams(self, memory_store):
        _run(memory_store.save_correlation({
            "correlationType": "HKCorrelationTypeIdentifierFood",
            "startDate": datetime(2026, 1, 1, 12),
            "endDate": datetime(2026, 1, 1, 12),
            "samples": [{"sampleType": "HKQuantityTypeIdentifierDietarySodium", "unit": "mg", "amount": 250}],
        }))
        stored = _run(memory_store.query_correlation_type(
            "HKCorrelationTypeIdentifierFood", datetime(2026, 1, 1), datetime(2026, 1, 2), ["g"]
        ))
        assert stored[0]["samples"][0]["value"] == 0.25

    def test_returned_records_are_copies(self, memory_store):
        memory_store.add_sample(make_quantity_sample(STEPS, 1, datetime(2026, 1, 1, 8)))
        first = _run(memory_store.query_sample_type(STEPS, datetime(2026, 1, 1), datetime(2026, 1, 2)))
        first[0]["quantity"] = 999
        second = _run(memory_store.query_sample_type(STEPS, datetime(2026, 1, 1), datetime(2026, 1, 2)))
        assert second[0]["quantity"] == 1

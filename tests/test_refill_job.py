"""Tests for homely.core.refill_job and the app entry point."""

import logging
from unittest.mock import patch

from homely.core.refill_job import run_refill_for_all_households
from homely.core.results import RefillResult, ResultKind


class TestRunRefillForAllHouseholds:
    def test_refills_every_household(self, lifecycle, household_db, make_household, make_task):
        a = make_household(name="A")
        b = make_household(name="B")
        make_task(a.id, interval={"months": 1})
        make_task(b.id, interval={"years": 1})

        results = run_refill_for_all_households(lifecycle, household_db)

        assert set(results) == {a.id, b.id}
        assert results[a.id].generated == 24
        assert results[b.id].generated == 2

    def test_failure_does_not_stop_run(self, lifecycle, household_db, make_household, caplog):
        a = make_household(name="A")
        b = make_household(name="B")
        outcomes = {
            a.id: RefillResult(ResultKind.UNEXPECTED, "Could not refill household: boom"),
            b.id: RefillResult(ResultKind.SUCCESS, "3 events generated", generated=3),
        }

        with patch.object(lifecycle, "refill_events", side_effect=lambda hid: outcomes[hid]):
            with caplog.at_level(logging.INFO, logger="homely.core.refill_job"):
                results = run_refill_for_all_households(lifecycle, household_db)

        assert results[a.id].kind is ResultKind.UNEXPECTED
        assert results[b.id].generated == 3
        assert f"Refill of household {a.id} failed" in caplog.text
        assert "2 households, 3 events" in caplog.text

    def test_no_households(self, lifecycle, household_db):
        assert run_refill_for_all_households(lifecycle, household_db) == {}


class TestMain:
    def test_main_runs_refill(self, services, make_task, household):
        from homely import app

        task = make_task(household.id, interval={"months": 1})
        with patch.object(app, "build_services", return_value=services):
            assert app.main() == 0
        assert services.lifecycle.count_future_events(task.id) == 24

    def test_main_reports_failure(self, services, household):
        from homely import app

        failed = {household.id: RefillResult(ResultKind.UNEXPECTED, "boom")}
        with patch.object(app, "build_services", return_value=services), \
                patch.object(app, "run_refill_for_all_households", return_value=failed):
            assert app.main() == 1

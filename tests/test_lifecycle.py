"""
Car status transitions: release for rent, the workshop visit and the
daily sweep that flags returned cars for service.
"""

import asyncio
import contextlib
from datetime import date

import pytest
from conftest import book, make_car

from car_rental import lifecycle
from car_rental.database import CarDB, CarStatus, ReservationStatus, SessionLocal


def status_of(car_id):
    session = SessionLocal()
    try:
        return session.query(CarDB).filter(CarDB.id == car_id).one().status
    finally:
        session.close()


def test_set_car_ready_for_rent(db):
    car = make_car(db)
    car.status = CarStatus.SERVICED
    db.commit()

    lifecycle.set_car_ready_for_rent(db, car.id)

    assert status_of(car.id) == CarStatus.READY_FOR_RENT


def test_set_ready_for_unknown_car_is_noop(db):
    assert lifecycle.set_car_ready_for_rent(db, 404) is None


def test_mark_rented_and_due_for_service(db):
    car = make_car(db)

    lifecycle.mark_car_rented(db, car.id)
    assert status_of(car.id) == CarStatus.RENTED

    lifecycle.mark_car_due_for_service(db, car.id)
    assert status_of(car.id) == CarStatus.BEFORE_SERVICE


def test_service_wait_ends_serviced(db):
    car = make_car(db)

    lifecycle.change_status_to_in_service_and_wait(car.id, duration=0)

    assert status_of(car.id) == CarStatus.SERVICED


def test_car_is_in_service_during_wait(db, monkeypatch):
    car = make_car(db)
    seen = []

    def fake_sleep(seconds):
        seen.append((seconds, status_of(car.id)))

    monkeypatch.setattr(lifecycle.time, "sleep", fake_sleep)
    lifecycle.change_status_to_in_service_and_wait(car.id, duration=60)

    assert seen == [(60, CarStatus.IN_SERVICE)]
    assert status_of(car.id) == CarStatus.SERVICED


def test_service_wait_uses_configured_duration(db, monkeypatch):
    car = make_car(db)
    durations = []
    monkeypatch.setattr(lifecycle.Config, "SERVICE_DURATION_SECONDS", 12.5)
    monkeypatch.setattr(lifecycle.time, "sleep", durations.append)

    lifecycle.change_status_to_in_service_and_wait(car.id)

    assert durations == [12.5]


def test_service_wait_unknown_car(monkeypatch):
    monkeypatch.setattr(lifecycle.time, "sleep", pytest.fail)
    lifecycle.change_status_to_in_service_and_wait(404, duration=0)


class TestStatusSweep:
    def test_cars_returning_today_are_due_for_service(self, db, customer):
        returning = make_car(db)
        still_out = make_car(db)
        idle = make_car(db)
        book(db, returning, customer, date(2030, 6, 10), date(2030, 6, 12), status=ReservationStatus.ACTIVE)
        book(db, still_out, customer, date(2030, 6, 10), date(2030, 6, 13), status=ReservationStatus.ACTIVE)

        updated = lifecycle.update_car_statuses(db, today=date(2030, 6, 12))

        assert [car.id for car in updated] == [returning.id]
        assert status_of(returning.id) == CarStatus.BEFORE_SERVICE
        assert status_of(still_out.id) == CarStatus.READY_FOR_RENT
        assert status_of(idle.id) == CarStatus.READY_FOR_RENT

    def test_cancelled_reservations_are_ignored(self, db, customer):
        car = make_car(db)
        book(db, car, customer, date(2030, 6, 10), date(2030, 6, 12), status=ReservationStatus.CANCELLED)

        assert lifecycle.update_car_statuses(db, today=date(2030, 6, 12)) == []
        assert status_of(car.id) == CarStatus.READY_FOR_RENT

    def test_car_with_two_reservations_listed_once(self, db, customer):
        car = make_car(db)
        book(db, car, customer, date(2030, 6, 10), date(2030, 6, 12), status=ReservationStatus.COMPLETED)
        book(db, car, customer, date(2030, 6, 12), date(2030, 6, 12))

        updated = lifecycle.update_car_statuses(db, today=date(2030, 6, 12))

        assert [c.id for c in updated] == [car.id]

    def test_nothing_ending_today(self, db):
        make_car(db)
        assert lifecycle.update_car_statuses(db, today=date(2030, 1, 1)) == []

    def test_run_status_sweep_uses_own_session(self, db, customer):
        today = date.today()
        car = make_car(db)
        book(db, car, customer, today, today, status=ReservationStatus.ACTIVE)

        assert lifecycle.run_status_sweep() == [car.id]
        assert status_of(car.id) == CarStatus.BEFORE_SERVICE


def run_sweep_loop(until, interval, settle=0.0, timeout=5.0):
    """Run the sweep loop until ``until()`` holds, then cancel it and return the task."""

    async def scenario():
        task = asyncio.create_task(lifecycle.status_sweep_loop(interval=interval))
        try:
            async def wait():
                while not until():
                    await asyncio.sleep(0.01)
            await asyncio.wait_for(wait(), timeout)
            await asyncio.sleep(settle)
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return task

    return asyncio.run(scenario())


class TestSweepLoop:
    def test_first_sweep_runs_at_startup(self, db, customer, monkeypatch):
        today = date.today()
        car = make_car(db)
        book(db, car, customer, today, today, status=ReservationStatus.ACTIVE)
        swept = []
        sweep = lifecycle.run_status_sweep
        monkeypatch.setattr(lifecycle, "run_status_sweep", lambda: swept.append(sweep()))

        task = run_sweep_loop(until=lambda: swept, interval=3600)

        assert task.cancelled()
        assert swept == [[car.id]]
        assert status_of(car.id) == CarStatus.BEFORE_SERVICE

    def test_waits_an_interval_between_sweeps(self, monkeypatch):
        calls = []
        monkeypatch.setattr(lifecycle, "run_status_sweep", lambda: calls.append(1))

        run_sweep_loop(until=lambda: calls, interval=3600, settle=0.1)

        assert len(calls) == 1

    def test_repeats_every_interval(self, monkeypatch):
        calls = []
        monkeypatch.setattr(lifecycle, "run_status_sweep", lambda: calls.append(1))

        task = run_sweep_loop(until=lambda: len(calls) >= 3, interval=0.01)

        assert task.cancelled()

    def test_failed_sweep_does_not_stop_the_loop(self, monkeypatch):
        calls = []

        def flaky_sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database is locked")
            return []

        monkeypatch.setattr(lifecycle, "run_status_sweep", flaky_sweep)

        task = run_sweep_loop(until=lambda: len(calls) >= 2, interval=0.01)

        assert task.cancelled()
        assert len(calls) >= 2

    def test_interval_defaults_to_config(self, monkeypatch):
        calls = []
        monkeypatch.setattr(lifecycle, "run_status_sweep", lambda: calls.append(1))
        monkeypatch.setattr(lifecycle.Config, "STATUS_SWEEP_INTERVAL_SECONDS", 0.01)

        run_sweep_loop(until=lambda: len(calls) >= 2, interval=None)

        assert len(calls) >= 2

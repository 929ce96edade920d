"""
Car lifecycle: READY_FOR_RENT -> RENTED -> BEFORE_SERVICE -> IN_SERVICE
-> SERVICED, and back to READY_FOR_RENT once staff release the car.
"""

import asyncio
import logging
import time
from datetime import date, datetime, time as dtime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from . import database
from .availability import find_car_by_id
from .config import Config
from .database import CarDB, CarStatus, ReservationDB, ReservationStatus
from .telemetry import status_counter

logger = logging.getLogger(__name__)


def _set_status(db: Session, car: CarDB, status: CarStatus):
    previous = car.status
    car.status = status
    db.commit()
    status_counter.add(1, {"status": status.value})
    logger.info(f"Car {car.id} status: {previous.value if previous else None} -> {status.value}")


def set_car_ready_for_rent(db: Session, car_id: int) -> Optional[CarDB]:
    """Release a car for rental. Unknown ids are ignored."""
    car = find_car_by_id(db, car_id)
    if car is not None:
        _set_status(db, car, CarStatus.READY_FOR_RENT)
    return car


def mark_car_rented(db: Session, car_id: int) -> Optional[CarDB]:
    car = find_car_by_id(db, car_id)
    if car is not None:
        _set_status(db, car, CarStatus.RENTED)
    return car


def mark_car_due_for_service(db: Session, car_id: int) -> Optional[CarDB]:
    car = find_car_by_id(db, car_id)
    if car is not None:
        _set_status(db, car, CarStatus.BEFORE_SERVICE)
    return car


def change_status_to_in_service_and_wait(car_id: int, duration: float = None, session_factory=None):
    """
    Put a car in the workshop, block for the service duration, then mark it
    serviced. Runs on a background worker with its own session.
    """
    if duration is None:
        duration = Config.SERVICE_DURATION_SECONDS
    session_factory = session_factory or database.SessionLocal

    db = session_factory()
    try:
        car = find_car_by_id(db, car_id)
        if car is None:
            logger.warning(f"Service requested for unknown car {car_id}")
            return
        _set_status(db, car, CarStatus.IN_SERVICE)

        time.sleep(duration)

        car = find_car_by_id(db, car_id)
        if car is None:
            logger.warning(f"Car {car_id} was removed while in service")
            return
        _set_status(db, car, CarStatus.SERVICED)
    finally:
        db.close()


def update_car_statuses(db: Session, today: date = None) -> List[CarDB]:
    """Flag every car whose reservation ends today as due for service."""
    today = today or date.today()
    day_start = datetime.combine(today, dtime.min)
    next_day = day_start + timedelta(days=1)

    reservations_ending_today = db.query(ReservationDB).filter(
        ReservationDB.reservation_end >= day_start,
        ReservationDB.reservation_end < next_day,
        ReservationDB.status != ReservationStatus.CANCELLED,
    ).all()

    cars = []
    for reservation in reservations_ending_today:
        if reservation.car is not None and reservation.car not in cars:
            cars.append(reservation.car)

    for car in cars:
        car.status = CarStatus.BEFORE_SERVICE
    db.commit()

    if cars:
        status_counter.add(len(cars), {"status": CarStatus.BEFORE_SERVICE.value})
    logger.info(f"Status sweep for {today.isoformat()}: {len(cars)} car(s) due for service")
    return cars


def run_status_sweep(session_factory=None) -> List[int]:
    session_factory = session_factory or database.SessionLocal
    db = session_factory()
    try:
        return [car.id for car in update_car_statuses(db)]
    finally:
        db.close()


async def status_sweep_loop(interval: float = None):
    """Run the status sweep at startup and then once per interval."""
    interval = interval or Config.STATUS_SWEEP_INTERVAL_SECONDS
    while True:
        try:
            await asyncio.to_thread(run_status_sweep)
        except Exception:
            logger.exception("Status sweep failed")
        await asyncio.sleep(interval)

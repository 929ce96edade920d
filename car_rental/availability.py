"""
Availability search over the fleet.

Date ranges are whole days: ``[start_date, end_date]`` covers everything
from the first midnight up to the last microsecond of ``end_date``. A car is
available when it is not in the workshop and no PENDING or ACTIVE
reservation overlaps that window.
"""

from datetime import date, datetime, time
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import (
    BLOCKING_RESERVATION_STATUSES,
    CarDB,
    CarMakeDB,
    CarStatus,
    ChassisType,
    FuelType,
    GearboxType,
    LocationDB,
    ReservationDB,
    SeatCountDB,
)
from .errors import CarNotFound, InvalidDateRange


def day_bounds(start_date: date, end_date: date) -> Tuple[datetime, datetime]:
    """Expand a day range into the timestamps it covers."""
    if start_date > end_date:
        raise InvalidDateRange()
    return datetime.combine(start_date, time.min), datetime.combine(end_date, time.max)


def _blocked_car_ids(range_start: datetime, range_end: datetime):
    return select(ReservationDB.car_id).where(
        ReservationDB.status.in_(BLOCKING_RESERVATION_STATUSES),
        ReservationDB.reservation_start <= range_end,
        ReservationDB.reservation_end >= range_start,
    )


def _available(query, start_date: date, end_date: date):
    range_start, range_end = day_bounds(start_date, end_date)
    return query.filter(
        CarDB.status != CarStatus.IN_SERVICE,
        CarDB.id.notin_(_blocked_car_ids(range_start, range_end)),
    )


def find_all_cars(db: Session) -> List[CarDB]:
    return db.query(CarDB).order_by(CarDB.id).all()


def find_car_by_id(db: Session, car_id: int) -> Optional[CarDB]:
    return db.query(CarDB).filter(CarDB.id == car_id).first()


def find_cars_by_location(db: Session, city: str) -> List[CarDB]:
    return (
        db.query(CarDB)
        .join(CarDB.location)
        .filter(LocationDB.city == city)
        .order_by(CarDB.id)
        .all()
    )


def find_available_cars(db: Session, start_date: date, end_date: date) -> List[CarDB]:
    return _available(db.query(CarDB), start_date, end_date).order_by(CarDB.id).all()


def find_available_cars_in_location(db: Session, city: str, start_date: date, end_date: date) -> List[CarDB]:
    query = db.query(CarDB).join(CarDB.location).filter(LocationDB.city == city)
    return _available(query, start_date, end_date).order_by(CarDB.id).all()


def find_cars_with_filters(
    db: Session,
    city: Optional[str] = None,
    gearbox_type: Optional[GearboxType] = None,
    chassis_type: Optional[ChassisType] = None,
    seat_count: Optional[int] = None,
    year_min: Optional[int] = None,
    year_max: Optional[int] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    make: Optional[str] = None,
    fuel_type: Optional[FuelType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[CarDB]:
    """
    Search the fleet. Every filter is optional and unset filters match
    everything. Date availability only applies when both dates are given.
    """
    query = db.query(CarDB)

    if city:
        query = query.join(CarDB.location).filter(LocationDB.city == city)
    if make:
        query = query.join(CarDB.make).filter(CarMakeDB.name == make)
    if seat_count is not None:
        query = query.join(CarDB.seat_count).filter(SeatCountDB.count == seat_count)
    if gearbox_type is not None:
        query = query.filter(CarDB.gearbox_type == gearbox_type)
    if chassis_type is not None:
        query = query.filter(CarDB.chassis_type == chassis_type)
    if fuel_type is not None:
        query = query.filter(CarDB.fuel_type == fuel_type)
    if year_min is not None:
        query = query.filter(CarDB.year_of_production >= year_min)
    if year_max is not None:
        query = query.filter(CarDB.year_of_production <= year_max)
    if price_min is not None:
        query = query.filter(CarDB.price_per_day >= price_min)
    if price_max is not None:
        query = query.filter(CarDB.price_per_day <= price_max)
    if start_date is not None and end_date is not None:
        query = _available(query, start_date, end_date)

    return query.order_by(CarDB.id).all()


def is_car_available(db: Session, car_id: int, start_date: date, end_date: date) -> bool:
    if find_car_by_id(db, car_id) is None:
        raise CarNotFound()
    query = db.query(CarDB).filter(CarDB.id == car_id)
    return _available(query, start_date, end_date).first() is not None


def gallery(
    db: Session,
    location: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[CarDB]:
    """Cars shown in the gallery for the given (all optional) criteria."""
    if start_date is not None and end_date is not None:
        if location:
            return find_available_cars_in_location(db, location, start_date, end_date)
        return find_available_cars(db, start_date, end_date)
    if location:
        return find_cars_by_location(db, location)
    return find_all_cars(db)

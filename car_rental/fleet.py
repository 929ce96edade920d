"""
Fleet inventory managed by staff: adding, updating and deleting cars while
keeping makes, locations and the seat catalogue consistent with the cars
that reference them.
"""

import logging
from datetime import date
from typing import List

from sqlalchemy.orm import Session

from .availability import find_car_by_id
from .database import (
    BLOCKING_RESERVATION_STATUSES,
    CarDB,
    CarMakeDB,
    CarStatus,
    LocationDB,
    ReservationDB,
    SeatCountDB,
)
from .errors import CarInUse, CarNotFound, DuplicateCar, InvalidCarData
from .schemas import CarAddRequest, CarUpdateRequest
from .telemetry import fleet_counter

logger = logging.getLogger(__name__)

MIN_PRODUCTION_YEAR = 1900


def get_car(db: Session, car_id: int) -> CarDB:
    car = find_car_by_id(db, car_id)
    if car is None:
        raise CarNotFound()
    return car


def find_or_create_location(db: Session, city: str) -> LocationDB:
    location = db.query(LocationDB).filter(LocationDB.city == city).first()
    if location is None:
        location = LocationDB(city=city)
        db.add(location)
        logger.info(f"New location: {city}")
    return location


def find_or_create_make(db: Session, name: str) -> CarMakeDB:
    make = db.query(CarMakeDB).filter(CarMakeDB.name == name).first()
    if make is None:
        make = CarMakeDB(name=name)
        db.add(make)
        logger.info(f"New car make: {name}")
    return make


def validate_car_uniqueness(db: Session, vin: str, registration_number: str):
    if db.query(CarDB).filter(CarDB.vin == vin).count():
        raise DuplicateCar("Car with the same VIN already exists.")
    if db.query(CarDB).filter(CarDB.registration_number == registration_number).count():
        raise DuplicateCar("Car with the same Registration Number already exists.")


def add_car(db: Session, request: CarAddRequest) -> CarDB:
    # All checks run before anything is added to the session
    validate_car_uniqueness(db, request.vin, request.registration_number)

    if not MIN_PRODUCTION_YEAR <= request.year_of_production <= date.today().year:
        raise InvalidCarData("Year of production must be between 1900 and the current year.")

    seat_count = db.query(SeatCountDB).filter(SeatCountDB.count == request.seat_count).first()
    if seat_count is None:
        raise InvalidCarData("Seat count not found")

    location = find_or_create_location(db, request.location)
    make = find_or_create_make(db, request.make)
    seat_count.available = True

    car = CarDB(
        make=make,
        model=request.model,
        registration_number=request.registration_number,
        vin=request.vin,
        year_of_production=request.year_of_production,
        chassis_type=request.chassis_type,
        gearbox_type=request.gearbox_type,
        fuel_type=request.fuel_type,
        seat_count=seat_count,
        price_per_day=request.price_per_day,
        location=location,
        status=CarStatus.READY_FOR_RENT,
    )
    db.add(car)
    db.commit()
    db.refresh(car)

    fleet_counter.add(1, {"change": "added"})
    logger.info(f"Car added: {car.id} {make.name} {car.model} ({car.registration_number}) in {location.city}")
    return car


def update_car(db: Session, car_id: int, request: CarUpdateRequest) -> CarDB:
    car = get_car(db, car_id)

    if request.registration_number != car.registration_number:
        taken = db.query(CarDB).filter(
            CarDB.registration_number == request.registration_number,
            CarDB.id != car.id,
        ).count()
        if taken:
            raise DuplicateCar("Car with the same Registration Number already exists.")

    if request.location:
        car.location = find_or_create_location(db, request.location)

    car.registration_number = request.registration_number
    car.price_per_day = request.price_per_day
    db.commit()
    db.refresh(car)

    logger.info(f"Car updated: {car.id} ({car.registration_number}, {car.price_per_day}/day, {car.location.city})")
    return car


def has_active_or_pending_reservations(db: Session, car_id: int) -> bool:
    return db.query(ReservationDB).filter(
        ReservationDB.car_id == car_id,
        ReservationDB.status.in_(BLOCKING_RESERVATION_STATUSES),
    ).count() > 0


def delete_car(db: Session, car_id: int):
    """
    Delete a car and its reservation history. The make and location go
    with it when no other car uses them; the seat count is only marked
    unavailable since the catalogue is fixed.
    """
    car = get_car(db, car_id)
    if has_active_or_pending_reservations(db, car_id):
        raise CarInUse()

    make, location, seat_count = car.make, car.location, car.seat_count
    cars_with_same_make = db.query(CarDB).filter(CarDB.make_id == make.id).count()
    cars_in_same_location = db.query(CarDB).filter(CarDB.location_id == location.id).count()
    cars_with_same_seat_count = db.query(CarDB).filter(CarDB.seat_count_id == seat_count.id).count()

    db.delete(car)
    db.flush()
    # Collections loaded before the flush still hold the deleted car
    db.expire(make)
    db.expire(location)

    if cars_with_same_make <= 1:
        db.delete(make)
        logger.info(f"Car make removed with its last car: {make.name}")
    if cars_in_same_location <= 1:
        db.delete(location)
        logger.info(f"Location removed with its last car: {location.city}")
    if cars_with_same_seat_count <= 1:
        seat_count.available = False

    db.commit()
    fleet_counter.add(1, {"change": "deleted"})
    logger.info(f"Car deleted: {car_id}")


# =============================================================================
# Reference data
# =============================================================================

def list_locations(db: Session) -> List[LocationDB]:
    return db.query(LocationDB).order_by(LocationDB.city).all()


def list_makes(db: Session) -> List[CarMakeDB]:
    return db.query(CarMakeDB).order_by(CarMakeDB.name).all()


def list_seat_counts(db: Session, available_only: bool = False) -> List[SeatCountDB]:
    query = db.query(SeatCountDB)
    if available_only:
        query = query.filter(SeatCountDB.available == True)  # noqa: E712
    return query.order_by(SeatCountDB.count).all()

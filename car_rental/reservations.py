"""
Reservation lifecycle: PENDING -> ACTIVE (picked up) -> COMPLETED
(returned), or PENDING -> CANCELLED.

Placing a reservation does not re-check availability and nothing
serializes concurrent bookings of the same car; double-booking an
overlapping range is possible.
"""

import logging
from datetime import date
from typing import List

from sqlalchemy.orm import Session

from .availability import day_bounds
from .database import ReservationDB, ReservationStatus, UserDB, UserRole
from .errors import AuthenticationError, InvalidReservationState, PermissionDenied, ReservationNotFound
from .fleet import get_car
from .lifecycle import mark_car_due_for_service, mark_car_rented
from .telemetry import reservation_counter

logger = logging.getLogger(__name__)


def save_reservation(db: Session, reservation: ReservationDB) -> ReservationDB:
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation


def reserve_car(
    db: Session,
    user: UserDB,
    car_id: int,
    start_date: date,
    end_date: date,
    return_location: str,
) -> ReservationDB:
    if user is None:
        raise AuthenticationError()

    car = get_car(db, car_id)
    reservation_start, reservation_end = day_bounds(start_date, end_date)

    reservation = save_reservation(db, ReservationDB(
        car=car,
        user=user,
        reservation_start=reservation_start,
        reservation_end=reservation_end,
        status=ReservationStatus.PENDING,
        pickup_location=car.location,
        dropoff_point=return_location,
    ))

    reservation_counter.add(1, {"pickup": car.location.city})
    logger.info(
        f"Reservation placed: {reservation.id}, car {car.id}, user {user.login}, "
        f"{start_date.isoformat()}..{end_date.isoformat()}, return to {return_location}"
    )
    return reservation


def get_reservation(db: Session, reservation_id: int) -> ReservationDB:
    reservation = db.query(ReservationDB).filter(ReservationDB.id == reservation_id).first()
    if reservation is None:
        raise ReservationNotFound()
    return reservation


def get_reservation_for(db: Session, user: UserDB, reservation_id: int) -> ReservationDB:
    """Fetch a reservation its owner or a staff member may see."""
    reservation = get_reservation(db, reservation_id)
    if reservation.user_id != user.id and user.role != UserRole.ADMIN:
        raise PermissionDenied("This reservation belongs to another customer")
    return reservation


def list_user_reservations(db: Session, user: UserDB) -> List[ReservationDB]:
    return (
        db.query(ReservationDB)
        .filter(ReservationDB.user_id == user.id)
        .order_by(ReservationDB.reservation_start)
        .all()
    )


def _transition(reservation: ReservationDB, expected: ReservationStatus, target: ReservationStatus):
    if reservation.status != expected:
        raise InvalidReservationState(
            f"Reservation {reservation.id} is {reservation.status.value}, "
            f"only {expected.value} reservations can become {target.value}"
        )
    reservation.status = target


def cancel_reservation(db: Session, user: UserDB, reservation_id: int) -> ReservationDB:
    reservation = get_reservation_for(db, user, reservation_id)
    _transition(reservation, ReservationStatus.PENDING, ReservationStatus.CANCELLED)
    db.commit()
    logger.info(f"Reservation cancelled: {reservation.id} by {user.login}")
    return reservation


def start_reservation(db: Session, reservation_id: int) -> ReservationDB:
    """Customer picked the car up."""
    reservation = get_reservation(db, reservation_id)
    _transition(reservation, ReservationStatus.PENDING, ReservationStatus.ACTIVE)
    mark_car_rented(db, reservation.car_id)
    logger.info(f"Reservation started: {reservation.id}, car {reservation.car_id} rented")
    return reservation


def complete_reservation(db: Session, reservation_id: int) -> ReservationDB:
    """Customer returned the car; it goes to the service queue."""
    reservation = get_reservation(db, reservation_id)
    _transition(reservation, ReservationStatus.ACTIVE, ReservationStatus.COMPLETED)
    mark_car_due_for_service(db, reservation.car_id)
    logger.info(f"Reservation completed: {reservation.id}, car {reservation.car_id} due for service")
    return reservation

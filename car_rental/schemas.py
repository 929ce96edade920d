"""
Pydantic models (API request/response) and the helpers that build
response views from database rows.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .database import (
    CarDB,
    CarStatus,
    ChassisType,
    FuelType,
    GearboxType,
    ReservationDB,
    ReservationStatus,
    UserDB,
    UserRole,
)


# =============================================================================
# Cars
# =============================================================================

class CarAddRequest(BaseModel):
    make: str = Field(..., min_length=1, description="Make name, created if unknown")
    model: str = Field(..., min_length=1)
    vin: str = Field(..., min_length=1, max_length=17)
    registration_number: str = Field(..., min_length=1)
    year_of_production: int
    chassis_type: ChassisType
    gearbox_type: GearboxType
    fuel_type: FuelType
    seat_count: int = Field(..., description="Number of seats, must exist in the seat catalogue")
    price_per_day: float = Field(..., gt=0)
    location: str = Field(..., min_length=1, description="City, created if unknown")


class CarUpdateRequest(BaseModel):
    registration_number: str = Field(..., min_length=1)
    price_per_day: float = Field(..., gt=0)
    location: Optional[str] = Field(None, description="New city, created if unknown")


class Car(BaseModel):
    car_id: int
    make: str
    model: str
    registration_number: str
    vin: str
    year_of_production: int
    chassis_type: ChassisType
    gearbox_type: GearboxType
    fuel_type: FuelType
    seat_count: int
    price_per_day: float
    location: str
    status: CarStatus


class CarListResponse(BaseModel):
    cars: List[Car]
    total_results: int


class AvailabilityResponse(BaseModel):
    car_id: int
    start_date: date
    end_date: date
    available: bool


class StatusSweepResponse(BaseModel):
    sweep_date: date
    updated_car_ids: List[int]


class SeatCount(BaseModel):
    seat_count_id: int
    count: int
    available: bool


def car_view(car: CarDB) -> Car:
    return Car(
        car_id=car.id,
        make=car.make.name,
        model=car.model,
        registration_number=car.registration_number,
        vin=car.vin,
        year_of_production=car.year_of_production,
        chassis_type=car.chassis_type,
        gearbox_type=car.gearbox_type,
        fuel_type=car.fuel_type,
        seat_count=car.seat_count.count,
        price_per_day=car.price_per_day,
        location=car.location.city,
        status=car.status,
    )


def car_list(cars: List[CarDB]) -> CarListResponse:
    return CarListResponse(cars=[car_view(c) for c in cars], total_results=len(cars))


# =============================================================================
# Reservations
# =============================================================================

class ReservationRequest(BaseModel):
    car_id: int
    start_date: date
    end_date: date
    return_location: str = Field(..., min_length=1, description="City where the car is dropped off")


class Reservation(BaseModel):
    reservation_id: int
    status: ReservationStatus
    car_id: int
    car_info: str  # "2021 Toyota Corolla"
    registration_number: str
    user_id: int
    reservation_start: datetime
    reservation_end: datetime
    pickup_location: Optional[str] = None
    dropoff_point: str
    num_days: int
    total_price: float
    created_at: datetime


class ReservationListResponse(BaseModel):
    reservations: List[Reservation]
    total_results: int


def reservation_days(reservation: ReservationDB) -> int:
    """Inclusive number of rental days."""
    return (reservation.reservation_end.date() - reservation.reservation_start.date()).days + 1


def reservation_view(reservation: ReservationDB) -> Reservation:
    car = reservation.car
    num_days = reservation_days(reservation)
    return Reservation(
        reservation_id=reservation.id,
        status=reservation.status,
        car_id=car.id,
        car_info=f"{car.year_of_production} {car.make.name} {car.model}",
        registration_number=car.registration_number,
        user_id=reservation.user_id,
        reservation_start=reservation.reservation_start,
        reservation_end=reservation.reservation_end,
        pickup_location=reservation.pickup_location.city if reservation.pickup_location else None,
        dropoff_point=reservation.dropoff_point,
        num_days=num_days,
        total_price=round(car.price_per_day * num_days, 2),
        created_at=reservation.created_at,
    )


# =============================================================================
# Accounts & messages
# =============================================================================

class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone_number: Optional[str] = None
    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    confirm_password: str


class LoginRequest(BaseModel):
    login: str
    password: str


class UserProfile(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
    login: str
    role: UserRole


class LoginResponse(BaseModel):
    token: str
    user: UserProfile


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(..., min_length=1)
    confirm_password: str


class SubscribeRequest(BaseModel):
    email: str = Field(..., min_length=3)


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: Optional[str] = None
    message: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str
    checks: dict


def user_profile(user: UserDB) -> UserProfile:
    return UserProfile(
        user_id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        phone_number=user.phone_number,
        login=user.login,
        role=user.role,
    )

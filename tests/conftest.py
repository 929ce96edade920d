"""
Shared fixtures: an in-memory database recreated for every test, plus
helpers to put cars, users and reservations in it.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TELEMETRY_CONSOLE_EXPORT"] = "false"
os.environ["SERVICE_DURATION_SECONDS"] = "0"
os.environ["SEED_DATA"] = "false"

from datetime import date, datetime, time  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from car_rental import accounts  # noqa: E402
from car_rental.app import app  # noqa: E402
from car_rental.database import (  # noqa: E402
    Base,
    ChassisType,
    FuelType,
    GearboxType,
    ReservationDB,
    ReservationStatus,
    SessionLocal,
    UserRole,
    engine,
)
from car_rental.fleet import add_car  # noqa: E402
from car_rental.schemas import CarAddRequest, RegisterRequest  # noqa: E402
from car_rental.seed import seed_seat_counts  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_seat_counts(session)
    session.close()
    accounts.sessions.clear()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    # No context manager: the lifespan (seeding, status sweep) stays off
    return TestClient(app)


_car_counter = {"n": 0}


def make_car(db, **overrides):
    _car_counter["n"] += 1
    n = _car_counter["n"]
    data = {
        "make": "Toyota",
        "model": "Corolla",
        "vin": f"VIN{n:014d}",
        "registration_number": f"WA {n:05d}",
        "year_of_production": 2020,
        "chassis_type": ChassisType.SEDAN,
        "gearbox_type": GearboxType.MANUAL,
        "fuel_type": FuelType.PETROL,
        "seat_count": 5,
        "price_per_day": 40.0,
        "location": "Warsaw",
    }
    data.update(overrides)
    return add_car(db, CarAddRequest(**data))


def make_user(db, login="jkowalski", role=UserRole.CUSTOMER, password="secret"):
    return accounts.register_user(
        db,
        RegisterRequest(
            first_name="Jan",
            last_name="Kowalski",
            email=f"{login}@example.com",
            phone_number="+48 600 000 000",
            login=login,
            password=password,
            confirm_password=password,
        ),
        role=role,
    )


def book(db, car, user, start, end, status=ReservationStatus.PENDING, dropoff="Warsaw"):
    """Insert a reservation row directly, bypassing the booking flow."""
    reservation = ReservationDB(
        car=car,
        user=user,
        reservation_start=datetime.combine(start, time.min),
        reservation_end=datetime.combine(end, time.max),
        status=status,
        pickup_location=car.location,
        dropoff_point=dropoff,
    )
    db.add(reservation)
    db.commit()
    return reservation


def auth_headers(user):
    return {"Authorization": f"Bearer {accounts.sessions.create(user.id)}"}


@pytest.fixture
def customer(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, login="fleetadmin", role=UserRole.ADMIN)


@pytest.fixture
def june():
    """A reference booking window far enough in the future."""
    return date(2030, 6, 10), date(2030, 6, 12)

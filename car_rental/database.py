"""
Database engine, session factory and table definitions.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Config


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live and die with a single connection
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


engine = create_engine(Config.DATABASE_URL, **_engine_kwargs(Config.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Dependency for getting database sessions."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    Base.metadata.create_all(bind=engine)


# =============================================================================
# Enumerations
# =============================================================================

class CarStatus(str, enum.Enum):
    READY_FOR_RENT = "READY_FOR_RENT"
    RENTED = "RENTED"
    BEFORE_SERVICE = "BEFORE_SERVICE"
    IN_SERVICE = "IN_SERVICE"
    SERVICED = "SERVICED"


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Reservations in these states hold the car
BLOCKING_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.ACTIVE)


class GearboxType(str, enum.Enum):
    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"


class ChassisType(str, enum.Enum):
    SEDAN = "SEDAN"
    HATCHBACK = "HATCHBACK"
    ESTATE = "ESTATE"
    SUV = "SUV"
    COUPE = "COUPE"
    CONVERTIBLE = "CONVERTIBLE"
    VAN = "VAN"
    PICKUP = "PICKUP"


class FuelType(str, enum.Enum):
    PETROL = "PETROL"
    DIESEL = "DIESEL"
    HYBRID = "HYBRID"
    ELECTRIC = "ELECTRIC"
    LPG = "LPG"


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


def _enum(enum_cls):
    return Enum(enum_cls, native_enum=False, length=20)


# =============================================================================
# Tables
# =============================================================================

class UserDB(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    phone_number = Column(String, nullable=True)
    login = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(_enum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    created_at = Column(DateTime, default=datetime.utcnow)

    reservations = relationship("ReservationDB", back_populates="user")


class LocationDB(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    city = Column(String, unique=True, nullable=False)

    cars = relationship("CarDB", back_populates="location")
    # Deleting a location nulls the pickup point of historic reservations
    pickups = relationship("ReservationDB", back_populates="pickup_location")


class CarMakeDB(Base):
    __tablename__ = "car_makes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)

    cars = relationship("CarDB", back_populates="make")


class SeatCountDB(Base):
    __tablename__ = "seat_counts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    count = Column(Integer, unique=True, nullable=False)
    available = Column(Boolean, nullable=False, default=False)

    cars = relationship("CarDB", back_populates="seat_count")


class CarDB(Base):
    __tablename__ = "cars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    make_id = Column(Integer, ForeignKey("car_makes.id"), nullable=False)
    model = Column(String, nullable=False)
    registration_number = Column(String, unique=True, nullable=False)
    vin = Column(String(17), unique=True, nullable=False)
    year_of_production = Column(Integer, nullable=False)
    chassis_type = Column(_enum(ChassisType), nullable=False)
    gearbox_type = Column(_enum(GearboxType), nullable=False)
    fuel_type = Column(_enum(FuelType), nullable=False)
    seat_count_id = Column(Integer, ForeignKey("seat_counts.id"), nullable=False)
    price_per_day = Column(Float, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    status = Column(_enum(CarStatus), nullable=False, default=CarStatus.READY_FOR_RENT)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    make = relationship("CarMakeDB", back_populates="cars")
    seat_count = relationship("SeatCountDB", back_populates="cars")
    location = relationship("LocationDB", back_populates="cars")
    reservations = relationship(
        "ReservationDB", back_populates="car", cascade="all, delete-orphan"
    )


class ReservationDB(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reservation_start = Column(DateTime, nullable=False)
    reservation_end = Column(DateTime, nullable=False)
    status = Column(_enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING)
    pickup_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    dropoff_point = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    car = relationship("CarDB", back_populates="reservations")
    user = relationship("UserDB", back_populates="reservations")
    pickup_location = relationship("LocationDB", back_populates="pickups")

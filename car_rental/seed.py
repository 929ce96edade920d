"""
Reference data and database seeding.
"""

import logging

from sqlalchemy.orm import Session

from .database import CarDB, ChassisType, FuelType, GearboxType, SeatCountDB
from .fleet import add_car
from .schemas import CarAddRequest

logger = logging.getLogger(__name__)

# Seat configurations the fleet can offer. A count becomes "available"
# (shown in search filters) once at least one car uses it.
SEAT_COUNTS = [2, 4, 5, 7, 9]

DEMO_FLEET = [
    {"make": "Toyota", "model": "Corolla", "vin": "JTDBR32E720000001", "registration_number": "WA 1001A",
     "year_of_production": 2021, "chassis_type": ChassisType.SEDAN, "gearbox_type": GearboxType.AUTOMATIC,
     "fuel_type": FuelType.HYBRID, "seat_count": 5, "price_per_day": 45.0, "location": "Warsaw"},
    {"make": "Skoda", "model": "Octavia Combi", "vin": "TMBJJ7NE0K0000002", "registration_number": "WA 1002B",
     "year_of_production": 2020, "chassis_type": ChassisType.ESTATE, "gearbox_type": GearboxType.MANUAL,
     "fuel_type": FuelType.DIESEL, "seat_count": 5, "price_per_day": 50.0, "location": "Warsaw"},
    {"make": "Volkswagen", "model": "Multivan", "vin": "WV2ZZZ7HZ8H000003", "registration_number": "KR 2001C",
     "year_of_production": 2019, "chassis_type": ChassisType.VAN, "gearbox_type": GearboxType.MANUAL,
     "fuel_type": FuelType.DIESEL, "seat_count": 7, "price_per_day": 85.0, "location": "Krakow"},
    {"make": "Fiat", "model": "500", "vin": "ZFA31200000000004", "registration_number": "KR 2002D",
     "year_of_production": 2022, "chassis_type": ChassisType.HATCHBACK, "gearbox_type": GearboxType.MANUAL,
     "fuel_type": FuelType.PETROL, "seat_count": 4, "price_per_day": 30.0, "location": "Krakow"},
    {"make": "Tesla", "model": "Model 3", "vin": "5YJ3E1EA7KF000005", "registration_number": "GD 3001E",
     "year_of_production": 2023, "chassis_type": ChassisType.SEDAN, "gearbox_type": GearboxType.AUTOMATIC,
     "fuel_type": FuelType.ELECTRIC, "seat_count": 5, "price_per_day": 95.0, "location": "Gdansk"},
    {"make": "Mazda", "model": "MX-5", "vin": "JMZNDAD0000000006", "registration_number": "GD 3002F",
     "year_of_production": 2021, "chassis_type": ChassisType.CONVERTIBLE, "gearbox_type": GearboxType.MANUAL,
     "fuel_type": FuelType.PETROL, "seat_count": 2, "price_per_day": 75.0, "location": "Gdansk"},
]


def seed_seat_counts(db: Session):
    existing = {row.count for row in db.query(SeatCountDB).all()}
    missing = [count for count in SEAT_COUNTS if count not in existing]
    for count in missing:
        db.add(SeatCountDB(count=count, available=False))
    db.commit()
    if missing:
        logger.info(f"Seeded seat counts: {missing}")


def seed_fleet(db: Session):
    """Seed the demo fleet into an empty database."""
    existing = db.query(CarDB).count()
    if existing > 0:
        logger.info(f"Database already has {existing} cars, skipping seed")
        return

    logger.info("Seeding database with demo fleet...")
    for car in DEMO_FLEET:
        add_car(db, CarAddRequest(**car))
    logger.info(f"Seeded {len(DEMO_FLEET)} cars")

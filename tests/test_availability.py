"""
Availability rules: which cars the gallery and the search offer for a
date range.
"""

from datetime import date

import pytest
from conftest import book, make_car

from car_rental import availability
from car_rental.database import CarStatus, FuelType, GearboxType, ReservationStatus
from car_rental.errors import CarNotFound, InvalidDateRange


def ids(cars):
    return [car.id for car in cars]


def test_day_bounds_cover_whole_days():
    start, end = availability.day_bounds(date(2030, 6, 10), date(2030, 6, 12))
    assert start.isoformat() == "2030-06-10T00:00:00"
    assert end.isoformat() == "2030-06-12T23:59:59.999999"


def test_day_bounds_reject_reversed_range():
    with pytest.raises(InvalidDateRange):
        availability.day_bounds(date(2030, 6, 12), date(2030, 6, 10))


def test_single_day_range_is_valid():
    start, end = availability.day_bounds(date(2030, 6, 10), date(2030, 6, 10))
    assert start < end


@pytest.mark.parametrize("status", [ReservationStatus.PENDING, ReservationStatus.ACTIVE])
def test_pending_and_active_reservations_block(db, customer, june, status):
    car = make_car(db)
    other = make_car(db)
    book(db, car, customer, *june, status=status)

    available = availability.find_available_cars(db, date(2030, 6, 11), date(2030, 6, 15))
    assert ids(available) == [other.id]


@pytest.mark.parametrize("status", [ReservationStatus.COMPLETED, ReservationStatus.CANCELLED])
def test_finished_reservations_do_not_block(db, customer, june, status):
    car = make_car(db)
    book(db, car, customer, *june, status=status)

    assert ids(availability.find_available_cars(db, *june)) == [car.id]


def test_reservation_ending_on_start_day_blocks(db, customer, june):
    """Ranges are whole days, so sharing a single day is an overlap."""
    car = make_car(db)
    book(db, car, customer, *june)

    assert availability.find_available_cars(db, date(2030, 6, 12), date(2030, 6, 14)) == []
    assert availability.find_available_cars(db, date(2030, 6, 5), date(2030, 6, 10)) == []


def test_adjacent_ranges_do_not_overlap(db, customer, june):
    car = make_car(db)
    book(db, car, customer, *june)

    assert ids(availability.find_available_cars(db, date(2030, 6, 13), date(2030, 6, 15))) == [car.id]
    assert ids(availability.find_available_cars(db, date(2030, 6, 1), date(2030, 6, 9))) == [car.id]


def test_range_enclosing_reservation_blocks(db, customer):
    car = make_car(db)
    book(db, car, customer, date(2030, 6, 11), date(2030, 6, 11))

    assert availability.find_available_cars(db, date(2030, 6, 1), date(2030, 6, 30)) == []


def test_car_in_service_is_not_offered(db, june):
    car = make_car(db)
    car.status = CarStatus.IN_SERVICE
    db.commit()

    assert availability.find_available_cars(db, *june) == []
    # Still part of the fleet listing
    assert ids(availability.find_all_cars(db)) == [car.id]


def test_available_in_location(db, customer, june):
    warsaw_free = make_car(db, location="Warsaw")
    warsaw_booked = make_car(db, location="Warsaw")
    make_car(db, location="Krakow")
    book(db, warsaw_booked, customer, *june)

    cars = availability.find_available_cars_in_location(db, "Warsaw", *june)
    assert ids(cars) == [warsaw_free.id]


def test_is_car_available(db, customer, june):
    car = make_car(db)
    book(db, car, customer, *june)

    assert not availability.is_car_available(db, car.id, *june)
    assert availability.is_car_available(db, car.id, date(2030, 7, 1), date(2030, 7, 3))


def test_is_car_available_unknown_car(db, june):
    with pytest.raises(CarNotFound):
        availability.is_car_available(db, 999, *june)


class TestGallery:
    def test_no_filters_lists_everything(self, db, customer, june):
        first = make_car(db)
        second = make_car(db, location="Krakow")
        book(db, first, customer, *june)

        assert ids(availability.gallery(db)) == [first.id, second.id]

    def test_location_only(self, db):
        make_car(db, location="Warsaw")
        krakow = make_car(db, location="Krakow")

        assert ids(availability.gallery(db, location="Krakow")) == [krakow.id]

    def test_dates_only(self, db, customer, june):
        booked = make_car(db)
        free = make_car(db, location="Krakow")
        book(db, booked, customer, *june)

        assert ids(availability.gallery(db, start_date=june[0], end_date=june[1])) == [free.id]

    def test_dates_and_location(self, db, customer, june):
        make_car(db, location="Warsaw")
        krakow_booked = make_car(db, location="Krakow")
        krakow_free = make_car(db, location="Krakow")
        book(db, krakow_booked, customer, *june)

        cars = availability.gallery(db, "Krakow", *june)
        assert ids(cars) == [krakow_free.id]

    def test_empty_location_is_ignored(self, db):
        car = make_car(db)
        assert ids(availability.gallery(db, location="")) == [car.id]

    def test_single_date_is_ignored(self, db, customer, june):
        car = make_car(db)
        book(db, car, customer, *june)

        assert ids(availability.gallery(db, start_date=june[0])) == [car.id]


class TestFilters:
    @pytest.fixture
    def fleet(self, db):
        return {
            "corolla": make_car(db, make="Toyota", model="Corolla", year_of_production=2018,
                                price_per_day=35.0, gearbox_type=GearboxType.MANUAL),
            "tesla": make_car(db, make="Tesla", model="Model 3", year_of_production=2023,
                              price_per_day=95.0, gearbox_type=GearboxType.AUTOMATIC,
                              fuel_type=FuelType.ELECTRIC, location="Gdansk"),
            "van": make_car(db, make="Volkswagen", model="Multivan", year_of_production=2020,
                            price_per_day=80.0, seat_count=7, location="Krakow"),
        }

    def test_no_filters(self, db, fleet):
        assert len(availability.find_cars_with_filters(db)) == 3

    def test_by_gearbox(self, db, fleet):
        cars = availability.find_cars_with_filters(db, gearbox_type=GearboxType.AUTOMATIC)
        assert ids(cars) == [fleet["tesla"].id]

    def test_by_seat_count(self, db, fleet):
        assert ids(availability.find_cars_with_filters(db, seat_count=7)) == [fleet["van"].id]

    def test_by_year_range(self, db, fleet):
        cars = availability.find_cars_with_filters(db, year_min=2019, year_max=2021)
        assert ids(cars) == [fleet["van"].id]

    def test_by_price_range(self, db, fleet):
        cars = availability.find_cars_with_filters(db, price_min=40, price_max=90)
        assert ids(cars) == [fleet["van"].id]

    def test_by_make_and_fuel(self, db, fleet):
        assert ids(availability.find_cars_with_filters(db, make="Tesla")) == [fleet["tesla"].id]
        assert ids(availability.find_cars_with_filters(db, fuel_type=FuelType.ELECTRIC)) == [fleet["tesla"].id]

    def test_by_location(self, db, fleet):
        assert ids(availability.find_cars_with_filters(db, city="Krakow")) == [fleet["van"].id]

    def test_combined_with_dates(self, db, fleet, customer, june):
        book(db, fleet["corolla"], customer, *june)

        cars = availability.find_cars_with_filters(
            db, gearbox_type=GearboxType.MANUAL, start_date=june[0], end_date=june[1]
        )
        assert ids(cars) == [fleet["van"].id]

    def test_no_match(self, db, fleet):
        assert availability.find_cars_with_filters(db, make="Ferrari") == []

"""
Domain exceptions.

Service functions raise these; a single FastAPI handler turns them into
``{"detail": ...}`` responses with the status code each class carries.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CarRentalError(Exception):
    """Base class for every error the service reports to clients."""

    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class CarNotFound(CarRentalError):
    status_code = 404
    default_message = "Car not found"


class ReservationNotFound(CarRentalError):
    status_code = 404
    default_message = "Reservation not found"


class DuplicateCar(CarRentalError):
    status_code = 409
    default_message = "Car already exists"


class CarInUse(CarRentalError):
    status_code = 409
    default_message = "You cannot delete this car as it is either rented now or booked for the future!"


class InvalidCarData(CarRentalError):
    default_message = "Invalid car data"


class InvalidDateRange(CarRentalError):
    default_message = "Start date must not be after end date"


class InvalidReservationState(CarRentalError):
    status_code = 409
    default_message = "Reservation cannot change to the requested state"


class RegistrationError(CarRentalError):
    default_message = "Registration failed"


class PasswordResetError(CarRentalError):
    default_message = "Password reset failed"


class AuthenticationError(CarRentalError):
    status_code = 401
    default_message = "Authentication required"


class PermissionDenied(CarRentalError):
    status_code = 403
    default_message = "Staff access required"


class NotificationError(CarRentalError):
    status_code = 502
    default_message = "Failed to send notification"


async def car_rental_error_handler(request: Request, exc: CarRentalError):
    logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(CarRentalError, car_rental_error_handler)

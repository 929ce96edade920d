"""
Car Rental Service
==================
Backend for a car rental website: customers browse the fleet, check
availability and book cars; staff manage the fleet and move cars through
their service lifecycle.

Features:
- RESTful API for the car gallery, filtered search and reservations
- Staff endpoints for fleet inventory and car status changes
- SQLite (or any SQLAlchemy URL) for persistent storage
- OpenTelemetry instrumentation for distributed tracing
- Health endpoints for Kubernetes probes
- Structured logging for the audit trail
"""

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import accounts, availability, fleet, lifecycle, notifications, reservations
from .config import Config
from .database import ChassisType, FuelType, GearboxType, SessionLocal, UserDB, UserRole, get_db, init_db
from .errors import AuthenticationError, PermissionDenied, register_error_handlers
from .schemas import (
    AvailabilityResponse,
    Car,
    CarAddRequest,
    CarListResponse,
    CarUpdateRequest,
    ContactRequest,
    ForgotPasswordRequest,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    Reservation,
    ReservationListResponse,
    ReservationRequest,
    ResetPasswordRequest,
    SeatCount,
    StatusSweepResponse,
    SubscribeRequest,
    UserProfile,
    car_list,
    car_view,
    reservation_view,
    user_profile,
)
from .seed import seed_fleet, seed_seat_counts
from .telemetry import latency_histogram, request_counter, setup_logging, tracer

setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# Metrics Middleware
# =============================================================================

async def metrics_middleware(request: Request, call_next):
    """Record request count and latency per endpoint."""
    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000

    request_counter.add(1, {"endpoint": request.url.path, "method": request.method})
    latency_histogram.record(duration_ms, {"endpoint": request.url.path})

    return response


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info(f"Starting {Config.SERVICE_NAME} v{Config.SERVICE_VERSION}")
    logger.info(f"Database: {Config.DATABASE_URL}")

    init_db()
    logger.info("Database tables created")

    db = SessionLocal()
    try:
        seed_seat_counts(db)
        accounts.ensure_admin(db)
        if Config.SEED_DATA:
            seed_fleet(db)
    finally:
        db.close()

    sweep = asyncio.create_task(lifecycle.status_sweep_loop())
    yield
    sweep.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweep
    logger.info(f"Shutting down {Config.SERVICE_NAME}")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Car Rental Service",
    description="Fleet inventory, availability search and reservations",
    version=Config.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(metrics_middleware)
register_error_handlers(app)
FastAPIInstrumentor.instrument_app(app)


# =============================================================================
# Authentication
# =============================================================================

def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[UserDB]:
    token = bearer_token(authorization)
    return accounts.user_for_token(db, token) if token else None


def require_user(user: Optional[UserDB] = Depends(current_user)) -> UserDB:
    if user is None:
        raise AuthenticationError("Please log in first")
    return user


def require_admin(user: UserDB = Depends(require_user)) -> UserDB:
    if user.role != UserRole.ADMIN:
        raise PermissionDenied()
    return user


# =============================================================================
# Health Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint for Kubernetes probes."""
    db_status = "healthy"
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        service=Config.SERVICE_NAME,
        version=Config.SERVICE_VERSION,
        timestamp=datetime.utcnow().isoformat(),
        checks={"database": db_status},
    )


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """Readiness probe for Kubernetes."""
    return {"ready": True}


@app.get("/live", tags=["Health"])
async def liveness_check():
    """Liveness probe for Kubernetes."""
    return {"alive": True}


# =============================================================================
# Cars
# =============================================================================

@app.get("/api/v1/cars", response_model=CarListResponse, tags=["Cars"])
async def list_cars(
    location: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
):
    """
    Car gallery. With both dates only cars free for the whole range are
    listed, optionally narrowed to one city.
    """
    with tracer.start_as_current_span("list_cars") as span:
        span.set_attribute("search.location", location or "")
        cars = availability.gallery(db, location, start_date, end_date)
        return car_list(cars)


@app.get("/api/v1/cars/search", response_model=CarListResponse, tags=["Cars"])
async def search_cars(
    location: Optional[str] = None,
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
    db: Session = Depends(get_db),
):
    """Search the fleet with any combination of filters."""
    with tracer.start_as_current_span("search_cars"):
        cars = availability.find_cars_with_filters(
            db,
            city=location,
            gearbox_type=gearbox_type,
            chassis_type=chassis_type,
            seat_count=seat_count,
            year_min=year_min,
            year_max=year_max,
            price_min=price_min,
            price_max=price_max,
            make=make,
            fuel_type=fuel_type,
            start_date=start_date,
            end_date=end_date,
        )
        logger.info(f"Car search: location={location}, {start_date}..{end_date}, found {len(cars)} cars")
        return car_list(cars)


@app.get("/api/v1/cars/{car_id}", response_model=Car, tags=["Cars"])
async def get_car(car_id: int, db: Session = Depends(get_db)):
    """Retrieve car details by ID."""
    return car_view(fleet.get_car(db, car_id))


@app.get("/api/v1/cars/{car_id}/availability", response_model=AvailabilityResponse, tags=["Cars"])
async def car_availability(car_id: int, start_date: date, end_date: date, db: Session = Depends(get_db)):
    """Check whether one car can be booked for a date range."""
    available = availability.is_car_available(db, car_id, start_date, end_date)
    return AvailabilityResponse(car_id=car_id, start_date=start_date, end_date=end_date, available=available)


# =============================================================================
# Reference Data
# =============================================================================

@app.get("/api/v1/locations", tags=["Reference Data"])
async def list_locations(db: Session = Depends(get_db)):
    """Get list of cities with cars."""
    return {
        "locations": [
            {"id": loc.id, "city": loc.city, "cars": len(loc.cars)}
            for loc in fleet.list_locations(db)
        ]
    }


@app.get("/api/v1/makes", tags=["Reference Data"])
async def list_makes(db: Session = Depends(get_db)):
    """Get list of car makes in the fleet."""
    return {"makes": [{"id": make.id, "name": make.name} for make in fleet.list_makes(db)]}


@app.get("/api/v1/seat-counts", response_model=List[SeatCount], tags=["Reference Data"])
async def list_seat_counts(available_only: bool = False, db: Session = Depends(get_db)):
    """Get the seat catalogue; ``available_only`` limits it to counts some car has."""
    return [
        SeatCount(seat_count_id=row.id, count=row.count, available=row.available)
        for row in fleet.list_seat_counts(db, available_only)
    ]


# =============================================================================
# Accounts
# =============================================================================

@app.post("/api/v1/auth/register", response_model=UserProfile, status_code=201, tags=["Accounts"])
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new customer account."""
    return user_profile(accounts.register_user(db, request))


@app.post("/api/v1/auth/login", response_model=LoginResponse, tags=["Accounts"])
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Log in and receive a bearer token."""
    token, user = accounts.login(db, request.login, request.password)
    return LoginResponse(token=token, user=user_profile(user))


@app.post("/api/v1/auth/logout", response_model=MessageResponse, tags=["Accounts"])
async def logout(authorization: Optional[str] = Header(None)):
    """End the current session."""
    token = bearer_token(authorization)
    if token:
        accounts.logout(token)
    return MessageResponse(message="Signed out")


@app.get("/api/v1/auth/me", response_model=UserProfile, tags=["Accounts"])
async def me(user: UserDB = Depends(require_user)):
    return user_profile(user)


@app.post("/api/v1/auth/forgot-password", response_model=MessageResponse, tags=["Accounts"])
def forgot_password(request: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """Send a password reset link to a registered e-mail address."""
    accounts.request_password_reset(db, request.email)
    return MessageResponse(message="A password reset link has been sent to your email.")


@app.post("/api/v1/auth/reset-password", response_model=MessageResponse, tags=["Accounts"])
def reset_password(request: ResetPasswordRequest, db: Session = Depends(get_db)):
    """Set a new password using a reset token."""
    accounts.reset_password(db, request.token, request.password, request.confirm_password)
    return MessageResponse(message="Password successfully reset")


# =============================================================================
# Reservations
# =============================================================================

@app.post("/api/v1/reservations", response_model=Reservation, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: ReservationRequest,
    user: UserDB = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Book a car. The pickup point is the car's current location.
    """
    with tracer.start_as_current_span("create_reservation") as span:
        span.set_attribute("car.id", request.car_id)
        span.set_attribute("user.id", user.id)
        reservation = reservations.reserve_car(
            db, user, request.car_id, request.start_date, request.end_date, request.return_location
        )
        return reservation_view(reservation)


@app.get("/api/v1/reservations", response_model=ReservationListResponse, tags=["Reservations"])
async def my_reservations(user: UserDB = Depends(require_user), db: Session = Depends(get_db)):
    """List the logged-in customer's reservations."""
    items = reservations.list_user_reservations(db, user)
    return ReservationListResponse(
        reservations=[reservation_view(r) for r in items],
        total_results=len(items),
    )


@app.get("/api/v1/reservations/{reservation_id}", response_model=Reservation, tags=["Reservations"])
async def get_reservation(
    reservation_id: int,
    user: UserDB = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Retrieve reservation details by ID."""
    return reservation_view(reservations.get_reservation_for(db, user, reservation_id))


@app.delete("/api/v1/reservations/{reservation_id}", response_model=Reservation, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: int,
    user: UserDB = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Cancel a reservation that has not been picked up yet."""
    with tracer.start_as_current_span("cancel_reservation") as span:
        span.set_attribute("reservation.id", reservation_id)
        return reservation_view(reservations.cancel_reservation(db, user, reservation_id))


# =============================================================================
# Messages
# =============================================================================

@app.post("/api/v1/subscribe", response_model=MessageResponse, tags=["Messages"])
async def subscribe(request: SubscribeRequest):
    """Newsletter subscription."""
    notifications.send_subscription_confirmation(request.email)
    return MessageResponse(
        message="Thank you for subscribing! A confirmation email has been sent to your address."
    )


@app.post("/api/v1/contact", response_model=MessageResponse, tags=["Messages"])
async def contact(request: ContactRequest):
    """Contact form."""
    notifications.send_contact_form_message(request.name, request.email, request.phone, request.message)
    return MessageResponse(message="Your message has been sent successfully!")


# =============================================================================
# Staff: Fleet
# =============================================================================

@app.post("/api/v1/admin/cars", response_model=Car, status_code=201, tags=["Staff"])
async def add_car(
    request: CarAddRequest,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Add a car to the fleet."""
    with tracer.start_as_current_span("add_car") as span:
        span.set_attribute("car.vin", request.vin)
        return car_view(fleet.add_car(db, request))


@app.put("/api/v1/admin/cars/{car_id}", response_model=Car, tags=["Staff"])
async def update_car(
    car_id: int,
    request: CarUpdateRequest,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Change a car's registration, daily price or location."""
    return car_view(fleet.update_car(db, car_id, request))


@app.delete("/api/v1/admin/cars/{car_id}", response_model=MessageResponse, tags=["Staff"])
async def delete_car(
    car_id: int,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Remove a car that has no pending or active reservation."""
    with tracer.start_as_current_span("delete_car") as span:
        span.set_attribute("car.id", car_id)
        fleet.delete_car(db, car_id)
        return MessageResponse(message=f"Car {car_id} deleted")


@app.post("/api/v1/admin/cars/status-sweep", response_model=StatusSweepResponse, tags=["Staff"])
async def status_sweep(
    today: Optional[date] = None,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Flag cars whose reservation ends today as due for service."""
    today = today or date.today()
    cars = lifecycle.update_car_statuses(db, today)
    return StatusSweepResponse(sweep_date=today, updated_car_ids=[car.id for car in cars])


@app.post("/api/v1/admin/cars/{car_id}/ready", response_model=Car, tags=["Staff"])
async def set_ready_for_rent(
    car_id: int,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Release a car for rental."""
    fleet.get_car(db, car_id)
    return car_view(lifecycle.set_car_ready_for_rent(db, car_id))


@app.post("/api/v1/admin/cars/{car_id}/service", response_model=MessageResponse, status_code=202, tags=["Staff"])
async def send_to_service(
    car_id: int,
    background_tasks: BackgroundTasks,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Put a car in the workshop; it is marked serviced after the service duration."""
    fleet.get_car(db, car_id)
    background_tasks.add_task(lifecycle.change_status_to_in_service_and_wait, car_id)
    return MessageResponse(message=f"Car {car_id} sent to service")


# =============================================================================
# Staff: Reservations
# =============================================================================

@app.post("/api/v1/admin/reservations/{reservation_id}/start", response_model=Reservation, tags=["Staff"])
async def start_reservation(
    reservation_id: int,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Hand the car over to the customer."""
    return reservation_view(reservations.start_reservation(db, reservation_id))


@app.post("/api/v1/admin/reservations/{reservation_id}/complete", response_model=Reservation, tags=["Staff"])
async def complete_reservation(
    reservation_id: int,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Take the car back from the customer."""
    return reservation_view(reservations.complete_reservation(db, reservation_id))


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    uvicorn.run(
        "car_rental.app:app",
        host="0.0.0.0",
        port=Config.PORT,
        reload=Config.ENV == "development",
        log_level="info",
    )


if __name__ == "__main__":
    main()

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config import settings
from src.database import init_db
from src.exceptions import BookingSystemError
from src.trips import router as trips_router
from src.trips.departure_scheduler import MaintenanceLoop
from src.bookings import router as bookings_router, admin_router as booking_admin_router
from src.payments import router as payments_router
from src.inquiries import router as inquiries_router
from src.reports import router as reports_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    maintenance = None
    if settings.ENABLE_BACKGROUND_SWEEPS:
        maintenance = MaintenanceLoop()
        maintenance.start()
    yield
    if maintenance is not None:
        await maintenance.stop()


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Coach Trip Inventory & Booking API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingSystemError)
async def booking_system_error_handler(request: Request, exc: BookingSystemError):
    logger.debug("%s on %s: %s", exc.code, request.url.path, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(
    trips_router,
    prefix=f"{settings.API_V1_STR}/trips",
    tags=["Trips"]
)

app.include_router(
    bookings_router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Booking & Ticketing"]
)

app.include_router(
    booking_admin_router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Back Office"]
)

app.include_router(
    payments_router,
    prefix=f"{settings.API_V1_STR}/payments",
    tags=["Payments"]
)

app.include_router(
    inquiries_router,
    prefix=f"{settings.API_V1_STR}/inquiries",
    tags=["Bus Hire Inquiries"]
)

app.include_router(
    reports_router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Reports"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Coach Trip Inventory & Booking API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

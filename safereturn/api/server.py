import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from safereturn.api import contacts, locations, profile, trips
from safereturn.config import settings
from safereturn.models import init_db
from safereturn.services.scheduler import start_scheduler, stop_scheduler

# Configure logging
logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - create tables, start and stop background services."""
    init_db()
    if settings.ENABLE_SCHEDULER:
        log.info("Starting background scheduler...")
        start_scheduler()
    yield
    log.info("Stopping background scheduler...")
    stop_scheduler()


description = """
SafeReturn tracks a traveller's trip: it stores emergency contacts and medical
info, records location updates while a trip is active, and sends an SMS alert
to the selected contacts if return is not confirmed by the deadline.
"""

tags_metadata = [
    {"name": "profile", "description": "City and medical information"},
    {"name": "contacts", "description": "Manage emergency contacts"},
    {"name": "trips", "description": "Start, extend and end tracked trips"},
    {"name": "locations", "description": "Location updates during a trip"},
]

app = FastAPI(
    title="SafeReturn API",
    description=description,
    version="1.0.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS_LIST,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(profile.router)
app.include_router(contacts.router)
app.include_router(trips.router)
app.include_router(locations.router)


@app.get("/")
def root():
    return {"message": "SafeReturn API is running", "version": "1.0.0"}


@app.get("/health")
def health():
    return {"ok": True}

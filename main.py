import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

import models  # Ensure every table is known by SQLModel for table creation
from api.geofence_routes import router as geofence_router
from api.presence_routes import router as presence_router
from api.time_routes import router as time_router
from core.config import DEV_DOMAIN, PRODUCTION_DOMAIN, REMOTE_RETRY_INTERVAL_SECONDS
from core.deps import get_store, get_tracker_registry
from core.exceptions import PersistenceError
from db.session import engine
from services.persistence import run_sync_retry_loop

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# This file is the control center of the whole application

# Construct the list of allowed origins, always including both dev and production
allowed_origins_list = [
    DEV_DOMAIN,
    PRODUCTION_DOMAIN,
    "http://localhost:3000",  # Additional fallback for React dev
    "http://127.0.0.1:5173",  # Additional fallback for Vite dev
]

# Remove any None values and duplicates
allowed_origins_list = list(set([origin for origin in allowed_origins_list if origin]))

logger.info(f"🌐 CORS: Allowing origins: {allowed_origins_list}")


# When We Start, Create the DB Tables if they don't exist
@asynccontextmanager
async def lifespan(app: FastAPI):

    SQLModel.metadata.create_all(engine)

    retry_task = None
    if get_store().remote is not None:
        retry_task = asyncio.create_task(
            run_sync_retry_loop(get_store(), REMOTE_RETRY_INTERVAL_SECONDS)
        )

    yield

    # No tracker or retry loop may outlive the event loop
    get_tracker_registry().stop_all()
    if retry_task is not None:
        retry_task.cancel()


# Starts Fast API Up; Init
app = FastAPI(lifespan=lifespan)

# Allow requests from the web client in dev & production
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Local storage has no fallback beneath it, so its failures are server errors
@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Could not access local storage."})


app.include_router(geofence_router, prefix="/geofences", tags=["Geofence"])
app.include_router(time_router, prefix="/time", tags=["Time"])
app.include_router(presence_router, prefix="/presence", tags=["Presence", "Compliance"])

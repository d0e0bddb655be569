# server.py
import logging

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)

from db import Base, engine  # noqa: E402
from errors import PrintalmaError, printalma_error_handler  # noqa: E402
from settings import settings  # noqa: E402
import models  # noqa: E402,F401  (registers tables on Base.metadata)
from admin import router as admin_router  # noqa: E402
from designs import router as designs_router  # noqa: E402
from vendor_products import router as vendor_products_router  # noqa: E402

# --- App Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Design validation and vendor product API for Printalma.",
    version="1.0.0",
)

# --- CORS Middleware ---
origins = settings.CORS_ORIGINS.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Domain errors → JSON responses ---
app.add_exception_handler(PrintalmaError, printalma_error_handler)


# --- Database Startup Event ---
@app.on_event("startup")
async def on_startup():
    """Create database tables on startup."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("Database tables verified/created.")


# --- Routers ---
api_router = APIRouter(prefix=settings.API_V1_PREFIX)
api_router.include_router(designs_router)
api_router.include_router(vendor_products_router)
api_router.include_router(admin_router)
app.include_router(api_router)


@app.get("/", include_in_schema=False)
async def root():
    return {"service": settings.PROJECT_NAME, "status": "running"}

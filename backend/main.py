from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from api.v1 import account, tasks, rewards, referrals, admin
from core.config import settings
from core.exceptions import register_exception_handlers
from db.base import initialize_database
from db.session import engine
from utils.logging_config import configure_logging, RequestContextMiddleware
from utils.responses import no_store_json

# Configure logging with date-based files and TTL retention
logger = configure_logging("points_economy")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)

# Typed engine errors -> structured JSON; anything else -> generic 500
register_exception_handlers(app)

# Add GZip compression for larger JSON payloads
app.add_middleware(GZipMiddleware, minimum_size=500)

# Add logging context middleware to capture user_id and API path
app.add_middleware(RequestContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(account.router, tags=["Account"])
app.include_router(tasks.router, tags=["Tasks"])
app.include_router(rewards.router, tags=["Rewards"])
app.include_router(referrals.router, tags=["Referrals"])
app.include_router(admin.router, tags=["Admin"])

@app.on_event("startup")
async def startup_db_client():
    """Create tables if they don't exist yet"""
    await initialize_database()
    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_db_client():
    """Application shutdown"""
    await engine.dispose()
    logger.info("SQL engine disposed")

@app.get("/")
async def root():
    return no_store_json({"message": settings.APP_NAME, "version": settings.VERSION})

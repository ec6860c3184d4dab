from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api import achievements, application, goals, health, users
from .models.db.database import engine, Base
from .models.db import user as user_model
from .models.db import application as application_model
from .models.db import goal as goal_model
from .models.db import achievement as achievement_model
from .services.achievement_catalog import load_catalog
from .services.achievement_repository import AchievementRepository
from .services.exceptions import CatalogLoadError, StoreUnavailableError
from .services.notifications import build_notifier
from .services.progress_session import ProgressSessionRegistry
from .utils.logging_config import setup_logging, get_logger
from .config.settings import get_settings

# Initialize settings
settings = get_settings()

# Setup logging configuration
setup_logging(
    level=settings.log_level,
    log_file=settings.log_file
)
logger = get_logger(__name__)

# Validate configuration on startup
missing_settings = settings.validate_required_settings()
if missing_settings:
    for setting in missing_settings:
        logger.error("Configuration error: %s", setting)
    if settings.is_production():
        raise RuntimeError("Invalid configuration for production environment")

# A broken catalog disables evaluation; application tracking keeps working
try:
    catalog = load_catalog(settings.catalog_path)
except CatalogLoadError as e:
    logger.error("Achievement evaluation disabled: %s", e)
    catalog = None

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/docs" if settings.api_docs_enabled else None,
    redoc_url="/redoc" if settings.api_docs_enabled else None,
)

app.state.progress_registry = ProgressSessionRegistry(
    repository=AchievementRepository(),
    notifier=build_notifier(settings.notification_webhook_url, settings.notification_timeout),
    catalog=catalog,
    settings=settings,
)

# Add CORS middleware if enabled
if settings.cors_enabled:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Routers
app.include_router(health.router, prefix="/api", tags=["Health Check"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(application.router, prefix="/api/applications", tags=["Application Tracker"])
app.include_router(goals.router, prefix="/api/goals", tags=["Goals"])
app.include_router(achievements.router, prefix="/api/achievements", tags=["Achievements"])

@app.on_event("startup")
def on_startup():
    """Initialize database tables, publish the catalog and log application startup."""
    logger.info("Starting Job Application Tracker...")
    # Model modules are imported above so their tables are registered on Base.
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized successfully")
    registry = app.state.progress_registry
    if registry.catalog is not None:
        try:
            registry.repository.sync_catalog(registry.catalog)
        except StoreUnavailableError as e:
            logger.error("Could not sync achievement catalog: %s", e)

@app.on_event("shutdown")
def on_shutdown():
    """Give pending unlocks one last chance to reach the store."""
    for user_id, result in app.state.progress_registry.sync_all(force=True).items():
        if result.still_pending:
            logger.warning("User %s shut down with unsynced unlocks: %s", user_id, list(result.still_pending))

@app.get("/")
def read_root():
    return {"message": f"Welcome to the {settings.app_name} API"}

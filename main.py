"""
Study Canvas Backend - FastAPI Application

Entry point for the node-graph study canvas API.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings, validate_required_settings
from database import get_db_manager
from shared.api import health
from canvas.api import routes as canvas_routes

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Validate configuration on startup
validate_required_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Study Canvas Backend",
    description="Node-graph study canvas with AI-generated courses, lessons, quizzes and slides",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(canvas_routes.router)


@app.on_event("startup")
async def startup_event():
    """Prepare the session store on startup."""
    logger.info("Starting Study Canvas Backend...")

    if settings.session_store_backend == "database":
        db_manager = get_db_manager()
        if not db_manager.health_check():
            logger.warning("Database health check failed on startup")
        else:
            db_manager.create_tables()
            logger.info("Database connection healthy")

    logger.info(f"Application started (store: {settings.session_store_backend}, provider: {settings.llm_provider})")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )

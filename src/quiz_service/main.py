from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from pymongo import MongoClient
from sqlalchemy import text
import logging

from . import database
from .config import Settings, settings as default_settings
from .errors import QuizServiceError, ValidationError
from .routers import grading, questions, quizzes, taking
from .services.catalog import CourseCatalog, DaprCourseCatalog
from .services.events import DaprEventPublisher, EventPublisher, LoggingEventPublisher
from .session.drafts import ensure_draft_indexes
from .utils.clock import utcnow

# Setup logging
logging.basicConfig(
    level=logging.INFO if not default_settings.DEBUG else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Settings = None,
    catalog: CourseCatalog = None,
    publisher: EventPublisher = None,
    drafts_collection=None,
    clock=None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {settings.APP_NAME}...")
        if not database.init_database(settings.DATABASE_URL, max_retries=settings.DATABASE_CONNECT_RETRIES):
            raise RuntimeError("Could not connect to database")

        mongo_client = None
        if app.state.drafts_collection is None:
            mongo_client = MongoClient(settings.MONGODB_URL)
            app.state.drafts_collection = mongo_client[settings.MONGODB_DB][settings.DRAFTS_COLLECTION]
            logger.info(f"MongoDB URL: {settings.MONGODB_URL}")
        ensure_draft_indexes(app.state.drafts_collection)

        logger.info(f"✓ {settings.APP_NAME} ready")
        yield

        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME}...")
        if mongo_client is not None:
            mongo_client.close()
        database.close_database()

    app = FastAPI(
        title="Quiz Service - Micro Learning System",
        description="Timed quizzes, scoring, manual grading and results",
        version=settings.VERSION,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.catalog = catalog or DaprCourseCatalog(settings)
    if publisher is None:
        if settings.EVENTS_ENABLED:
            publisher = DaprEventPublisher(settings.PUBSUB_NAME, settings.APP_ID)
        else:
            publisher = LoggingEventPublisher()
    app.state.publisher = publisher
    app.state.drafts_collection = drafts_collection
    app.state.clock = clock or utcnow

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(QuizServiceError)
    async def quiz_service_error_handler(request: Request, exc: QuizServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.to_dict()),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        error = ValidationError("Invalid request payload")
        body = error.to_dict()
        body["errors"] = exc.errors()
        return JSONResponse(status_code=error.status_code, content=jsonable_encoder(body))

    # Include routers
    app.include_router(quizzes.router)
    app.include_router(questions.router)
    app.include_router(taking.router)
    app.include_router(grading.router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        try:
            with database.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            db_status = "connected"
        except Exception:
            db_status = "disconnected"

        return {
            "status": "healthy",
            "service": settings.APP_ID,
            "version": settings.VERSION,
            "database": db_status
        }

    @app.get("/")
    async def root():
        return {
            "message": "Quiz Service - Micro Learning System",
            "docs": "/docs",
            "health": "/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "quiz_service.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG
    )

# exam_prep/main.py
import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import config
from .core.database import get_db_manager, close_db_manager
from .core.ai_services import get_ai_service, close_ai_service
from .core.exceptions import ExamPrepError, StorageError
from .services.session_service import get_session_engine
from .services.generation_service import close_generation_service
from .api.routes import router

# Setup logging
logging.basicConfig(
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

async def _cleanup_sessions_periodically():
    """Evict completed and abandoned sessions on a fixed interval"""
    engine = get_session_engine()
    while True:
        await asyncio.sleep(config.SESSION_CLEANUP_INTERVAL_SECONDS)
        engine.cleanup_expired_sessions()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info("🚀 Exam Prep API starting...")

    validation = config.validate()
    if not validation["valid"]:
        raise RuntimeError(f"Configuration invalid: {validation['issues']}")
    logger.info("✅ Configuration validated")

    logger.info("🔄 Initializing database...")
    db_health = get_db_manager().validate_connection()
    if not db_health["overall"]:
        raise StorageError(f"Database validation failed: {db_health}")
    logger.info("✅ Database connected and validated")

    # Provider keys can be added later from the admin panel
    ai_health = get_ai_service().health_check()
    if ai_health["status"] != "healthy":
        logger.warning(f"⚠️ AI service not ready: {ai_health}")
    else:
        logger.info(f"✅ AI service configured: {ai_health['model']}")

    logger.info(f"⏱️ Countdown tick: {config.COUNTDOWN_TICK_SECONDS}s, dedup policy: {config.DEDUP_POLICY}")

    cleanup_task = asyncio.create_task(_cleanup_sessions_periodically())

    yield

    # Cleanup on shutdown
    logger.info("👋 Shutting down...")
    cleanup_task.cancel()
    get_session_engine().shutdown()
    close_generation_service()
    close_ai_service()
    close_db_manager()
    logger.info("✅ Graceful shutdown completed")

# Create FastAPI application
app = FastAPI(
    title=config.API_TITLE,
    description=config.API_DESCRIPTION,
    version=config.API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)

# Exception handlers
@app.exception_handler(ExamPrepError)
async def exam_prep_error_handler(request: Request, exc: ExamPrepError):
    """Render application errors with their own status"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_type}: {exc.message}")
    else:
        logger.warning(f"{exc.error_type}: {exc.message}")

    content = {
        "error": exc.title,
        "message": exc.message,
        "type": exc.error_type
    }
    if getattr(exc, "retryable", False):
        content["retryable"] = True

    return JSONResponse(status_code=exc.status_code, content=content)

@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle validation errors"""
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation Error",
            "message": str(exc),
            "type": "validation_error"
        }
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
            "type": "server_error"
        }
    )

# Health check endpoints
@app.get("/health")
async def health_check():
    """Component health check"""
    health_status = {
        "status": "healthy",
        "service": "exam_prep_api",
        "version": config.API_VERSION
    }

    engine_health = get_session_engine().health_check()
    health_status["session_engine"] = engine_health["status"]
    health_status["active_sessions"] = engine_health["active_sessions"]

    try:
        health_status["ai_service"] = get_ai_service().health_check()["status"]
    except ExamPrepError as e:
        health_status["ai_service"] = "error"
        logger.warning(f"AI service health check failed: {e}")

    try:
        db_health = get_db_manager().validate_connection()
        health_status["database"] = "healthy" if db_health["overall"] else "degraded"
    except ExamPrepError as e:
        health_status["database"] = "error"
        logger.warning(f"Database health check failed: {e}")

    if health_status["database"] != "healthy":
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status

@app.get("/info")
async def api_info():
    """API information and capabilities"""
    return {
        "name": config.API_TITLE,
        "version": config.API_VERSION,
        "description": config.API_DESCRIPTION,
        "features": {
            "timed_sessions": True,
            "ai_test_generation": True,
            "news_generation": True,
            "pdf_export": True,
            "rank": True
        },
        "configuration": {
            "llm_model": config.LLM_MODEL,
            "dedup_policy": config.DEDUP_POLICY,
            "max_generated_questions": config.MAX_GENERATED_QUESTIONS,
            "minutes_per_question": config.MINUTES_PER_QUESTION,
            "languages": config.NEWS_LANGUAGES
        },
        "endpoints": {
            "start_session": "POST /api/sessions",
            "submit_session": "POST /api/sessions/{attempt_id}/submit",
            "get_result": "GET /api/results/{attempt_id}",
            "download_pdf": "GET /api/results/{attempt_id}/pdf",
            "fetch_news": "POST /api/functions/fetch-news",
            "generate_test": "POST /api/functions/generate-test",
            "health": "GET /health",
            "docs": "GET /docs"
        }
    }

if __name__ == "__main__":
    import uvicorn

    host = os.getenv('API_HOST', '0.0.0.0')
    port = int(os.getenv('API_PORT', '8070'))
    debug_mode = os.getenv('DEBUG_MODE', 'false').lower() == 'true'

    logger.info("🚀 Starting Exam Prep API")
    logger.info(f"🌐 Server: http://{host}:{port}")
    logger.info(f"📚 Docs: http://{host}:{port}/docs")

    uvicorn.run(
        "exam_prep.main:app",
        host=host,
        port=port,
        reload=debug_mode,
        log_level=os.getenv('LOG_LEVEL', 'info').lower(),
        access_log=debug_mode
    )

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from docongo.config.database import Database
from docongo.config.settings import settings
from docongo.api.conversation import router as conversation_router
from docongo.errors import DocOnGoError
from docongo.middleware import JWTAuthMiddleware, RequestLoggingMiddleware
import logging

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info("Starting DocOnGo API...")
    logger.info(f"Environment: {settings.environment}")

    try:
        await Database.connect_db()
        logger.info("MongoDB connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise

    if not settings.jwt_secret:
        logger.warning("jwt_secret is not set; all callers will be treated as anonymous")

    yield

    # Shutdown
    logger.info("Shutting down DocOnGo API...")
    await Database.close_db()
    logger.info("MongoDB connection closed")


# Initialize FastAPI app
app = FastAPI(
    title="DocOnGo - AI Doctor Consultation",
    description="Staged virtual consultation with Dr. AI and structured prescription generation.",
    version="1.0.0",
    lifespan=lifespan,
)

# add_middleware stacks LIFO: the last one added is the outermost.
# Execution order: CORSMiddleware → RequestLoggingMiddleware → JWTAuthMiddleware → route
app.add_middleware(JWTAuthMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DocOnGoError)
async def service_error_handler(request: Request, exc: DocOnGoError):
    if exc.status_code >= 500:
        logger.error(f"Error in {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.error_code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "error": "VALIDATION_ERROR"},
    )


# Register routers
app.include_router(conversation_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        db = Database.get_database()
        await db.command("ping")
        mongodb_status = "connected"
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        mongodb_status = f"error: {str(e)}"

    return {
        "status": "ok",
        "service": settings.service_name,
        "version": "1.0.0",
        "dependencies": {
            "mongodb": mongodb_status,
            "llm": "configured" if settings.llm_api_key else "per-request key",
        },
    }


@app.get("/")
async def root():
    return {
        "message": "DocOnGo API is running",
        "version": "1.0.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.environment == "development",
    )

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import uuid
from contextlib import asynccontextmanager
from database import database
from auth import JWT_SECRET, DEV_JWT_SECRET
from solvenote.models.credits import DEFAULT_DAILY_CREDITS, CREDIT_RESET_TIMEZONE
from utils import llm_chat

from solvenote.routes import auth as solvenote_auth
from solvenote.routes import credits as solvenote_credits
from solvenote.routes import suggestions as solvenote_suggestions
from solvenote.routes import webhooks as solvenote_webhooks

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def _warn_on_incomplete_config():
    """Log what runs in degraded mode with the current environment."""
    if not (os.environ.get("STRIPE_WEBHOOK_SECRET") or "").strip():
        logger.warning("STRIPE_WEBHOOK_SECRET is not set. Payment webhooks are accepted without signature verification.")
    if not llm_chat.is_configured():
        logger.warning("LLM_API_KEY is not set. Suggestions use the built-in fallback.")
    if JWT_SECRET == DEV_JWT_SECRET and os.getenv("ENVIRONMENT") == "production":
        logger.error("JWT_SECRET is the development placeholder in production")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting SolveNote API (daily credits=%d, reset timezone=%s)",
        DEFAULT_DAILY_CREDITS, CREDIT_RESET_TIMEZONE,
    )
    await database.connect()
    _warn_on_incomplete_config()

    yield

    logger.info("Shutting down SolveNote API")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="SolveNote API",
    description="Notes with AI suggestions - credits and premium entitlement",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(solvenote_auth.router)
app.include_router(solvenote_credits.router)
app.include_router(solvenote_suggestions.router)
app.include_router(solvenote_webhooks.router)

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "SolveNote",
        "version": "1.0.0",
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }

# Validation error handler: log request_id + full errors (loc path)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(errors), "request_id": request_id},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )

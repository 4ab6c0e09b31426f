from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import agreement, dropbox, kyc, email, sellers
from services.errors import DropboxAuthError, ProviderAPIError

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

APP_VERSION = "1.0.0"


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting 3PL Vision Seller Onboarding API")
    if os.getenv("PYTEST_RUNNING"):
        logger.info("PYTEST_RUNNING set - skipping MongoDB connection")
    else:
        await database.connect()

    if not os.getenv("DROPBOX_APP_KEY") or not os.getenv("DROPBOX_APP_SECRET"):
        logger.warning("DROPBOX_APP_KEY / DROPBOX_APP_SECRET not set. KYC upload links will be unavailable.")

    yield

    # Shutdown
    logger.info("Shutting down 3PL Vision Seller Onboarding API")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="3PL Vision Seller Onboarding API",
    description="Seller intake, KYC upload links and service agreements - 3PLVisions LLC",
    version=APP_VERSION,
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
app.include_router(sellers.router)  # Seller intake + STE codes
app.include_router(agreement.router)  # Agreement PDF
app.include_router(dropbox.router)  # Dropbox OAuth
app.include_router(kyc.router)  # KYC upload links
app.include_router(email.router)  # Agreement email

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "3PL Vision Seller Onboarding",
        "owner": "3PLVisions LLC",
        "version": APP_VERSION,
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Version/build stamp for deployment verification (commit SHA set by CI/CD, e.g. GIT_COMMIT_SHA)
@app.get("/api/version")
async def version_info():
    return {
        "commit_sha": os.getenv("GIT_COMMIT_SHA", os.getenv("BUILD_SHA", "unknown")),
        "environment": os.getenv("ENVIRONMENT", "development"),
    }

# Validation error handler: log request_id + full errors (loc path)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    path = getattr(request, "url", None) and getattr(request.url, "path", "") or ""
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(errors), "request_id": request_id},
    )


# Dropbox auth errors that escape a route: the caller must re-authorize
@app.exception_handler(DropboxAuthError)
async def dropbox_auth_exception_handler(request: Request, exc: DropboxAuthError):
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc), "requires_auth": True}
    )


@app.exception_handler(ProviderAPIError)
async def provider_exception_handler(request: Request, exc: ProviderAPIError):
    logger.error(f"Dropbox API error on {exc.endpoint}: {exc.status_code} {exc.error_summary}")
    return JSONResponse(
        status_code=502,
        content={"detail": exc.error_summary}
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

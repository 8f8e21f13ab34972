from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from database import database
from routes import public_forms, onboarding
from services.form_link_service import FormLinkError
from services.form_template_registry import list_builtin_templates

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


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Broker Intake API")
    await database.connect()

    yield

    # Shutdown
    logger.info("Shutting down Broker Intake API")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Broker Intake API",
    description="Public form links and client onboarding for brokers",
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
app.include_router(public_forms.router)  # Shareable form links
app.include_router(onboarding.router)  # Per-client onboarding links

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "Broker Intake",
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


# Quick-start templates available to every broker
@app.get("/api/form-templates/quick-start")
async def quick_start_templates():
    return {"templates": list_builtin_templates()}


# Link and submission errors: the wizard shows `error` to the client verbatim
@app.exception_handler(FormLinkError)
async def form_link_exception_handler(request: Request, exc: FormLinkError):
    content = {"error": exc.message}
    if exc.missing:
        content["missing"] = exc.missing
    return JSONResponse(status_code=exc.status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )

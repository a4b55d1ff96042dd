from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from crm.routers import customers, email, inventory, invoices, messages, pdf, profile
from crm.config import settings
from crm.services.storage_service import storage_service
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

# Log startup information
logger.info("="*60)
logger.info("Starting CRM Invoicing API")
logger.info("="*60)
logger.info(f"MailerSend API key configured: {bool(settings.mailersend_api_key)}")
logger.info(f"Public base URL (tracking beacon): {settings.public_base_url}")
logger.info(f"S3 logo storage configured: {storage_service.s3_client is not None}")
logger.info(f"Debug tools enabled: {settings.debug_tools_enabled}")
logger.info("="*60)

# Schema is managed by alembic (see backend/alembic)

app = FastAPI(
    title="CRM Invoicing API",
    description="API for customers, invoices, estimates, inventory and invoice email tracking",
    version="1.0.0"
)


def parse_cors_origins(origins_str: str) -> list:
    """Parse a comma-separated CORS origins string into a list"""
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


cors_origins = parse_cors_origins(settings.cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Include routers
app.include_router(customers.router)
app.include_router(invoices.router)
app.include_router(inventory.router)
app.include_router(messages.router)
app.include_router(profile.router)
app.include_router(email.router)  # /send-email, /track-email-open, /debug-email-tracking
app.include_router(pdf.router)  # /generate-pdf


@app.get("/")
def root():
    return {"message": "CRM Invoicing API", "version": "1.0.0"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/storage/{file_path:path}")
def serve_storage_file(file_path: str):
    """Serve logos kept in local storage (used when no S3 bucket is configured)"""
    try:
        content = storage_service.download_file(file_path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    return Response(content=content, media_type=storage_service.content_type_for(file_path))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled errors and return a JSON 500 instead of a bare traceback"""
    logging.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

"""
TaxDesk API
Storefront for document and tax-processing packages: catalog, dynamic order
forms, Midtrans payments and order fulfilment.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import (
    auth, profile, packages, admin_packages, orders, admin_orders,
    admin_users, webhooks, payment, uploads,
)
from services.errors import ServiceError, ValidationError
from services.payment_gateway import get_client_key, get_server_key, is_production

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

ROUTERS = (
    auth, profile, packages, admin_packages, orders, admin_orders,
    admin_users, webhooks, payment, uploads,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting TaxDesk API {APP_VERSION}")
    if os.getenv("PYTEST_RUNNING"):
        logger.info("PYTEST_RUNNING set - skipping MongoDB connection")
    else:
        await database.connect()
        if not get_server_key() or not get_client_key():
            logger.error("MIDTRANS_SERVER_KEY / MIDTRANS_CLIENT_KEY not set: payments and webhooks will be refused")
        else:
            logger.info(f"Midtrans mode: {'production' if is_production() else 'sandbox'}")
    
    yield
    
    logger.info("Shutting down TaxDesk API")
    await database.close()


app = FastAPI(
    title="TaxDesk API",
    description="Document and tax-processing storefront",
    version=APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=[o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',')],
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in ROUTERS:
    app.include_router(module.router)


@app.get("/api")
async def root():
    return {"service": "TaxDesk", "version": APP_VERSION}


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    """Domain errors carry their own status code and response body."""
    if isinstance(exc, ValidationError):
        logger.info(f"Validation failed on {request.url.path}: {exc.field_errors}")
    elif exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies: 422 with the pydantic error list and a request id to grep logs by."""
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Request validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(errors), "request_id": request_id},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = str(uuid.uuid4())
    logger.error(f"Unhandled exception request_id={request_id} on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8001")),
        reload=os.getenv("ENVIRONMENT") == "development"
    )

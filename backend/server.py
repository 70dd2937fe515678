from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from datetime import datetime
import logging

import config
from database import build_allocator, client, db, create_indexes

from core.errors import LedgerError
from finance_routes import finance_router
from project_routes import project_router
from directory_routes import directory_router

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Error kind -> HTTP status
ERROR_STATUS = {
    "NOT_FOUND": 404,
    "INVALID_REFERENCE": 400,
    "ALLOCATION_FAILED": 503,
    "VALIDATION_ERROR": 400,
    "RESET_REFUSED": 409,
    "IMMUTABLE_RECORD": 403,
}

# Create the main app
app = FastAPI(
    title="Business Ledger",
    version="1.0.0",
    description="Project ledger with atomic serial numbering and financial reporting"
)

# Create router with /api prefix
api_router = APIRouter(prefix="/api")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = ERROR_STATUS.get(exc.kind, 400)
    if status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"success": False, **exc.to_dict()})


@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow(),
        "version": "1.0.0"
    }


# Include routers in main app
app.include_router(api_router)
app.include_router(finance_router)
app.include_router(project_router)
app.include_router(directory_router)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def create_db_indexes():
    await build_allocator(db).create_unique_constraints()
    await create_indexes(db)


@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()

import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

import settings
from database import MemoryDB, db
from errors import CRMError, UnexpectedError
from routers import auth, events, inventory, leads, mail, reminders, showings, users

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Realty CRM API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Register Routers ---
app.include_router(auth.router)       # /api/auth/*
app.include_router(users.router)      # /api/users/*
app.include_router(leads.router)      # /api/leads/*
app.include_router(showings.router)   # /api/leads/{id}/showings, /api/showings
app.include_router(events.router)     # /api/events/*
app.include_router(reminders.router)  # /api/reminder/*
app.include_router(inventory.router)  # /api/inventory/*, /api/favorites
app.include_router(mail.router)       # /api/email/*


# ---------------------------
# Error mapping
# ---------------------------
@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())}, status_code=400)


@app.exception_handler(PydanticValidationError)
async def payload_validation_handler(request: Request, exc: PydanticValidationError):
    return JSONResponse(
        {"detail": "Invalid request", "errors": jsonable_encoder(exc.errors(include_url=False, include_context=False))},
        status_code=400,
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = UnexpectedError()
    return JSONResponse({"detail": error.message}, status_code=error.status_code)


# ---------------------------
# Health + Test endpoints
# ---------------------------
@app.get("/")
def read_root():
    return {"message": "Realty CRM Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": getattr(db, "name", None),
        "connection_status": "Not Connected",
        "collections": [],
    }

    try:
        response["collections"] = db.list_collection_names()[:10]
        response["connection_status"] = "Connected"
        response["database"] = "⚠️  In-memory store" if isinstance(db, MemoryDB) else "✅ Connected & Working"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)

"""
Main application entry point for the address book API.

This module builds the FastAPI application: it opens the database for
the lifetime of the process, configures CORS, turns repository and
authorization failures into the ``{success: false, message}`` envelope,
serves uploaded images and includes the contacts and users routers.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- addressbook.database: Storage handle
- addressbook.contacts: Contacts router
- addressbook.users: Users router
- addressbook.uploads: Image storage and the images router
- addressbook.core: Application settings and logging
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from addressbook import contacts, uploads, users
from addressbook.core import configure_logging, get_settings
from addressbook.database import Database
from addressbook.errors import ContactsError, StorageError

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Open the database at startup and close it at shutdown.

    The open :class:`Database` is kept on ``app.state.database`` where
    request dependencies pick it up.
    """
    configure_logging()
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    app.state.database = Database(settings.DATABASE_URL).open()
    logger.info("address book API started")
    try:
        yield
    finally:
        app.state.database.close()


# Initialize FastAPI application
app = FastAPI(title="Address Book API", lifespan=lifespan)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def failure(status_code: int, message: str, headers=None) -> JSONResponse:
    """Build the JSON body every failed request answers with."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


@app.exception_handler(ContactsError)
async def contacts_error_handler(request: Request, exc: ContactsError):
    """
    Report a repository failure with its message unchanged.

    Returns:
        JSONResponse: HTTP 500 failure envelope.
    """
    if isinstance(exc, StorageError):
        logger.warning("%s %s failed", request.method, request.url.path, exc_info=exc)
    else:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return failure(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Keep the status code of HTTP errors but use the failure envelope."""
    return failure(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed query, path or form parameters."""
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.warning("%s %s rejected: %s", request.method, request.url.path, message)
    return failure(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


# Include routers for application areas
app.include_router(contacts.router)
app.include_router(users.router)
app.include_router(uploads.router)


@app.get("/")
def root():
    """
    Root endpoint for the API, used as a liveness check.

    Returns:
        str: ``"ok"``
    """
    return "ok"

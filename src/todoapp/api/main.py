import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..logging_utils import configure_logging
from .routers import auth as auth_router
from .routers import todos as todos_router
from .settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title="Todo API",
    description=(
        "Personal task manager backend. Register, log in for a bearer token, then "
        "manage your own todos under /api/todos."
    ),
    version=__version__,
    openapi_tags=[
        {"name": "health", "description": "Liveness probe."},
        {"name": "auth", "description": "Account registration and token issuance."},
        {"name": "todos", "description": "The caller's todos: CRUD, filters, sorting and paging."},
    ],
)

# A wildcard origin cannot be combined with credentialed requests
_wildcard = not settings.cors_allow_origins or settings.cors_allow_origins == ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if _wildcard else settings.cors_allow_origins,
    allow_credentials=not _wildcard,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report body/query validation failures as

        {"error": "ValidationError", "message": "Request validation failed", "detail": [...]}

    with status 422. `detail` is pydantic's error list made JSON-safe.
    """
    logger.debug("Rejected %s %s: %d validation errors", request.method, request.url.path, len(exc.errors()))
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """Answers as long as the process is up; also reports the persistence backend in use."""
    return {"message": "Todo API is running", "backend": settings.persistence_backend}


app.include_router(auth_router.router)
app.include_router(todos_router.router)


def main() -> None:
    """Entry point of the `todoapp-api` console script."""
    import uvicorn

    configure_logging()
    port = int(os.getenv("PORT", "8000"))
    logger.info("Todo API listening on port %d with the %s backend", port, settings.persistence_backend)
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


if __name__ == "__main__":
    main()

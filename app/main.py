import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import configure_logging, cors_origins, settings
from app.core.errors import MarketplaceError
from app.database import Base, check_database_connection, engine
from app.models import audit, comment, proposal, submission, user  # noqa: F401  (register tables)
from app.routes.admin import router as admin_router
from app.routes.proposals import router as proposals_router
from app.routes.submissions import router as submissions_router

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, docs_url=None if settings.is_production else "/docs")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(proposals_router)
app.include_router(submissions_router)
app.include_router(admin_router)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request failed: %s %s code=%s", request.method, request.url.path, exc.code)
    else:
        logger.info(
            "request refused: %s %s code=%s message=%s",
            request.method, request.url.path, exc.code, exc.message,
        )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.on_event("startup")
def startup() -> None:
    configure_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("startup: app=%s env=%s", settings.APP_NAME, settings.ENV)


@app.get("/health")
def health() -> dict[str, str]:
    database = "connected"
    status_value = "healthy"
    try:
        check_database_connection()
    except Exception:
        database = "disconnected"
        status_value = "degraded"

    return {
        "status": status_value,
        "database": database,
        "env": settings.ENV,
    }

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.clinic.api.v1.routes_availability import router as availability_router_v1
from src.clinic.api.v1.routes_roles import router as roles_router_v1
from src.clinic.api.v1.routes_system import router as system_router_v1
from src.clinic.api.v1.routes_team import router as team_router_v1
from src.clinic.api.v1.routes_users import router as users_router_v1
from src.clinic.config import settings
from src.clinic.errors import ClinicError
from src.clinic.infra.db.bootstrap import init_sql_repositories
from src.clinic.services.roles.seed import seed_defaults

app = FastAPI(title="Clinic Access & Availability API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    Configures logging, switches to SQL-backed repositories when
    USE_SQL_REPOS and DATABASE_URL are set, and seeds the default permission
    catalog and roles. In tests the in-memory repositories stay active.
    """

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    init_sql_repositories()
    if settings.seed_defaults:
        seed_defaults()


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError) -> JSONResponse:
    content = {"detail": exc.detail}
    if isinstance(exc.payload, dict):
        content.update(exc.payload)
    return JSONResponse(status_code=exc.status_code, content=content)


# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(users_router_v1, prefix="/api/v1")
app.include_router(roles_router_v1, prefix="/api/v1")
app.include_router(team_router_v1, prefix="/api/v1")
app.include_router(availability_router_v1, prefix="/api/v1")

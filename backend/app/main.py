"""
FastAPI application: signed internal auth on /api, CORS, health and routers.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_api_settings

settings = get_api_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from app.auth import bind_user_id, unbind_user_id, verify_signed_request  # noqa: E402
from app.database import Base, engine  # noqa: E402
from app.dependencies import build_alias_cache  # noqa: E402
from app.routes import api_router  # noqa: E402

logger = logging.getLogger(__name__)

PUBLIC_API_PATHS = {"/api/health"}

# Dev helper; production schemas come from migrations
if settings.auto_create_tables:
    logger.warning("AUTO_CREATE_TABLES is enabled; creating tables from SQLAlchemy metadata")
    Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Subtrack API",
    description="Subscription tracking: bank statement import and renewal reminders",
    version="0.1.0",
    docs_url="/docs" if settings.api_docs_enabled else None,
    redoc_url="/redoc" if settings.api_docs_enabled else None,
    openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)

# One alias cache per process, shared by every request
app.state.alias_cache = build_alias_cache()


def _requires_signature(request: Request) -> bool:
    path = request.url.path
    return request.method != "OPTIONS" and path.startswith("/api/") and path not in PUBLIC_API_PATHS


@app.middleware("http")
async def internal_auth_middleware(request: Request, call_next):
    if not _requires_signature(request):
        return await call_next(request)

    path_with_query = request.url.path
    if request.url.query:
        path_with_query += f"?{request.url.query}"

    try:
        user_id = verify_signed_request(request.method, path_with_query, request.headers)
    except HTTPException as exc:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    except Exception:
        logger.exception("Unexpected internal auth error")
        return JSONResponse(status_code=500, content={"detail": "Internal authentication failure."})

    token = bind_user_id(user_id)
    try:
        return await call_next(request)
    finally:
        unbind_user_id(token)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/")
def root():
    return {"message": "Subtrack API", "docs": "/docs" if settings.api_docs_enabled else None}


@app.get("/health")
@app.get("/api/health")
def health():
    return {"status": "healthy"}

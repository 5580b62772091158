"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from filehost.config import settings
from filehost.database import async_session, engine, get_db
from filehost.models import Base
from filehost.services.authorization import AuthorizationClient
from filehost.services.errors import FileServiceError
from filehost.services.file_service import FileCoordinator
from filehost.services.metadata_store import MetadataStore
from filehost.services.remote_store import create_remote_store
from filehost.services.ttl_cache import TTLCache

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, wire the file coordinator and the authorization client."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    remote_store = create_remote_store(settings)
    app.state.file_coordinator = FileCoordinator(
        remote_store,
        MetadataStore(async_session),
        TTLCache(default_ttl=settings.LOOKUP_CACHE_TTL),
        server_url=settings.SERVER_URL,
        lookup_ttl=settings.LOOKUP_CACHE_TTL,
        list_ttl=settings.LIST_CACHE_TTL,
        file_size_limit=settings.FILE_SIZE_LIMIT,
    )
    authorization_client = AuthorizationClient(
        settings.AUTHORIZATION_SERVICE_URL, timeout=settings.AUTHORIZATION_TIMEOUT,
    )
    await authorization_client.open()
    app.state.authorization_client = authorization_client
    logger.info("File host ready (storage=%s)", settings.FILE_STORAGE_TYPE)

    yield

    # Cleanup
    await authorization_client.close()
    await remote_store.close()
    await engine.dispose()


app = FastAPI(
    title="File Host API",
    version="1.0.0",
    description="Upload files to remote storage and share them by prefix/name address.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FileServiceError)
async def file_service_error_handler(request: Request, exc: FileServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


@app.get("/api/health")
async def health_check():
    """Database round trip; 503 while the metadata table is unreachable."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check failed: %s", e)
        return JSONResponse(status_code=503, content={"status": "error", "database": str(e)})
    return {"status": "ok", "database": "connected"}


# Register routers
from filehost.routes.files import router as files_router
app.include_router(files_router)

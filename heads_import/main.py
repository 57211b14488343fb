from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from heads_import.config import settings
from heads_import.dependencies import CoordinatorDep, close_coordinator, init_coordinator
from heads_import.exception_handlers import register_exception_handlers
from heads_import.imports.router import router as imports_router
from heads_import.logging_config import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_coordinator()
    yield
    await close_coordinator()


app = FastAPI(
    title="Heads Import Console",
    description="Chunked bulk import of family heads into the welfare registry",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(imports_router, prefix="/api/v1/imports", tags=["imports"])


@app.get("/api/v1/health")
async def health(coordinator: CoordinatorDep):
    upstream = await coordinator.service.check_health()
    return {
        "status": "healthy",
        "phase": coordinator.state.phase,
        "service": upstream.model_dump(),
    }

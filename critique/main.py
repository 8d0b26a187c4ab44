import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from critique.config import settings
from critique.database import create_tables, dispose_engine
from critique.dependencies import verify_api_key
from critique.routers.analysis import router as analysis_router
from critique.routers.maintenance import router as maintenance_router
from critique.routers.sessions import router as sessions_router
from critique.routers.stages import router as stages_router
from critique.utils.exceptions import register_exception_handlers

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info("Design critique API ready (primary analyzer: %s)", settings.primary_analyzer)
    yield
    await dispose_engine()


app = FastAPI(
    title="Design Critique API",
    description="Persona-driven UX critique of interface screenshots",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

_api_key_dep = [Depends(verify_api_key)]

app.include_router(sessions_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(stages_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(analysis_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(maintenance_router, prefix="/api/v1", dependencies=_api_key_dep)


@app.get("/health")
async def health_check():
    return {"status": "success", "data": {"service": "design-critique-api", "version": VERSION}, "message": None}

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from policysign.config import settings
from policysign.documents.router import router as documents_router
from policysign.esign.router import router as esign_router
from policysign.logging_config import configure_logging
from policysign.middleware import CorrelationIDMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(documents_router, prefix="/api/documents", tags=["Documents"])
app.include_router(esign_router, prefix="/api/signature-requests", tags=["E-Signature"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "version": settings.app_version}

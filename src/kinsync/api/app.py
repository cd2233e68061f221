"""
FastAPI application exposing the sync trigger and run status.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config import load_settings
from ..engine.sync import SyncEngine, create_sync_engine
from ..exceptions import KinsyncException
from ..models.sync import SyncRun
from ..services.firestore import FirestoreService
from ..services.secrets import SecretManagerService

logger = logging.getLogger(__name__)

# Global services (initialized in lifespan)
firestore_service: Optional[FirestoreService] = None
secret_service: Optional[SecretManagerService] = None
sync_engine: Optional[SyncEngine] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global firestore_service, secret_service, sync_engine

    project_id = os.getenv("GOOGLE_CLOUD_PROJECT")

    # Initialize Secret Manager service
    try:
        secret_service = SecretManagerService(project_id=project_id)
        logger.info("Secret Manager service initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize Secret Manager service: {e}")
        secret_service = None

    # Initialize Firestore service
    try:
        firestore_service = FirestoreService(
            project_id=project_id,
            cursor_collection=os.getenv("CURSOR_COLLECTION", "sync_cursors"),
        )
        logger.info("Firestore service initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize Firestore service: {e}")
        firestore_service = None

    # Initialize sync engine
    if firestore_service is not None:
        try:
            credentials = secret_service.get_api_credentials() if secret_service else None
            settings = load_settings(credentials)
            sync_engine = create_sync_engine(settings, cursors=firestore_service, history=firestore_service)
            logger.info("Sync engine initialized successfully")
        except KinsyncException as e:
            logger.error(f"Failed to initialize sync engine: {e}")
            sync_engine = None

    logger.info("Application startup complete")

    yield

    # Cleanup on shutdown
    logger.info("Application shutdown")


app = FastAPI(
    title="kinsync API",
    description="Planning Center People and Fibery synchronization",
    version=__version__,
    lifespan=lifespan
)

# Get allowed origins from environment variable
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

if not allowed_origins:
    # Default to allowing all for local dev if not set
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency injection
def get_firestore_service() -> FirestoreService:
    if firestore_service is None:
        raise HTTPException(status_code=500, detail="Firestore service not initialized")
    return firestore_service


def get_sync_engine() -> SyncEngine:
    if sync_engine is None:
        raise HTTPException(status_code=500, detail="Sync engine not initialized")
    return sync_engine


# Health check endpoint
@app.get("/health")
async def health_check():
    """Check the health of the application and its services."""
    return {
        "status": "healthy",
        "version": __version__,
        "services": {
            "firestore": firestore_service is not None,
            "secret_manager": secret_service is not None,
            "sync_engine": sync_engine is not None,
        }
    }


@app.post("/api/v1/sync/run", response_model=SyncRun)
def run_sync(triggered_by: str = "scheduler", engine: SyncEngine = Depends(get_sync_engine)):
    """
    Run one sync pass and wait for it to finish.
    Called by Cloud Scheduler. A failed run answers 502 so the scheduler records the failure.
    """
    run = engine.run(triggered_by=triggered_by)
    if not run.succeeded:
        logger.error(f"Sync run {run.id} failed: {run.error_type}: {run.error_message}")
        return JSONResponse(status_code=502, content=run.model_dump(mode="json"))
    return run


@app.get("/api/v1/cursors")
def get_cursors(engine: SyncEngine = Depends(get_sync_engine)) -> Dict[str, Any]:
    """Current cursor tokens for both pull directions."""
    try:
        return {"cursors": engine.cursors.get_all()}
    except KinsyncException as e:
        logger.error(f"Failed to read cursors: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/runs", response_model=List[SyncRun])
def list_runs(limit: int = 50, firestore: FirestoreService = Depends(get_firestore_service)):
    """List recent sync runs, most recent first."""
    try:
        return firestore.list_runs(limit=limit)
    except Exception as e:
        logger.error(f"An unexpected error occurred while listing sync runs: {e}")
        raise HTTPException(status_code=500, detail="An unexpected error occurred.")


@app.get("/api/v1/runs/{run_id}", response_model=SyncRun)
def get_run(run_id: str, firestore: FirestoreService = Depends(get_firestore_service)):
    """Get a specific sync run by ID."""
    try:
        run = firestore.get_run(run_id)
    except Exception as e:
        logger.error(f"An unexpected error occurred while getting sync run {run_id}: {e}")
        raise HTTPException(status_code=500, detail="An unexpected error occurred.")
    if run is None:
        raise HTTPException(status_code=404, detail=f"Sync run {run_id} not found")
    return run


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

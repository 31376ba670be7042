"""FastAPI main application."""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import text

from ..config import settings
from ..core.directionalizer import DirectionalizeOptions
from ..datasource.base import FlowpathDataSource
from ..datasource.geopackage import GeoPackageDataSource
from ..datasource.postgis import PostGISDataSource
from ..db.connection import db
from ..db.models import DirectionalizeJob
from ..engine import DirectionalizeEngine
from ..utils.logging import configure_logging

configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger()

app = FastAPI(
    title="Flowpath Directionalize API",
    description="Assigns flow direction to flowpath networks",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class DirectionalizeRequest(BaseModel):
    """Request to directionalize a processing area or a GeoPackage."""

    aoi_id: Optional[uuid.UUID] = Field(None, description="PostGIS processing area to directionalize")
    input_path: Optional[str] = Field(None, description="GeoPackage to read flowpaths from")
    output_path: Optional[str] = Field(None, description="GeoPackage to write results to")
    short_segment: Optional[float] = Field(None, gt=0, description="Short junction edge length threshold")
    angle_diff: Optional[float] = Field(None, ge=0, le=180, description="Degrees needed to reverse a loop path")

    @model_validator(mode="after")
    def check_source(self):
        if (self.aoi_id is None) == (not self.input_path):
            raise ValueError("Provide exactly one of aoi_id or input_path")
        if self.input_path and not self.output_path:
            raise ValueError("output_path is required with input_path")
        return self


class JobResponse(BaseModel):
    """Response with job information."""

    job_id: str
    status: str
    progress_percent: int
    message: str
    flipped_count: Optional[int] = None
    processed_count: Optional[int] = None
    error_message: Optional[str] = None


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info("Starting Flowpath Directionalize API")
    db.initialize()
    logger.info("API startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Flowpath Directionalize API")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Flowpath Directionalize API",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        with db.get_session() as session:
            session.execute(text("SELECT 1"))

        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(status_code=503, detail="Service unhealthy")


@app.post("/directionalize", response_model=JobResponse)
async def start_directionalize(request: DirectionalizeRequest, background_tasks: BackgroundTasks):
    """
    Start a directionalize job.

    Returns immediately with job ID. Use /jobs/{job_id} to check status.
    """
    logger.info("Directionalize requested", request=request.model_dump(mode="json"))

    job_id = uuid.uuid4()
    with db.get_session() as session:
        job = DirectionalizeJob(
            id=job_id,
            aoi_id=request.aoi_id,
            input_path=request.input_path,
            output_path=request.output_path,
            short_segment=request.short_segment,
            angle_diff=request.angle_diff,
            status="pending",
            progress_percent=0,
        )
        session.add(job)

    background_tasks.add_task(run_directionalize, str(job_id), request)

    return JobResponse(
        job_id=str(job_id),
        status="pending",
        progress_percent=0,
        message="Directionalize job started",
    )


@app.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job_status(job_id: str):
    """Get status of a directionalize job."""
    try:
        key = uuid.UUID(job_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Job not found")

    with db.get_session() as session:
        job = session.query(DirectionalizeJob).filter(DirectionalizeJob.id == key).first()
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

        return JobResponse(
            job_id=str(job.id),
            status=job.status,
            progress_percent=job.progress_percent or 0,
            message=f"Job {job.status}",
            flipped_count=job.flipped_count,
            processed_count=job.processed_count,
            error_message=job.error_message,
        )


def _open_source(request: DirectionalizeRequest) -> FlowpathDataSource:
    if request.aoi_id is not None:
        return PostGISDataSource(db, request.aoi_id)
    GeoPackageDataSource.prepare_output(request.input_path, request.output_path)
    return GeoPackageDataSource(request.output_path)


def _update_job(job_id: str, **values) -> None:
    with db.get_session() as session:
        job = session.get(DirectionalizeJob, uuid.UUID(job_id))
        for key, value in values.items():
            setattr(job, key, value)


# Background task functions
def run_directionalize(job_id: str, request: DirectionalizeRequest):
    """
    Background task to directionalize a data source.
    """
    logger.info("Starting directionalize", job_id=job_id)

    try:
        _update_job(job_id, status="running", started_at=datetime.utcnow(), progress_percent=10)

        options = DirectionalizeOptions.from_settings(settings)
        if request.short_segment is not None:
            options.short_segment = request.short_segment
        if request.angle_diff is not None:
            options.angle_diff = request.angle_diff

        with _open_source(request) as source:
            _update_job(job_id, progress_percent=30)
            result = DirectionalizeEngine(source, options).do_work()

        _update_job(
            job_id,
            status="completed",
            progress_percent=100,
            flipped_count=len(result.features_to_flip),
            processed_count=len(result.processed_features),
            completed_at=datetime.utcnow(),
        )
        logger.info("Directionalize completed", job_id=job_id)

    except Exception as e:
        logger.error("Directionalize failed", job_id=job_id, error=str(e))
        _update_job(job_id, status="failed", error_message=str(e), completed_at=datetime.utcnow())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

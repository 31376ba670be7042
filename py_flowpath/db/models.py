"""Database models for flowpath data storage."""

import uuid
from datetime import datetime

from geoalchemy2 import Geometry
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Aoi(Base):
    """Processing area; every layer row belongs to one."""

    __tablename__ = "aois"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True)
    geometry = Column(Geometry("POLYGON"))
    created_at = Column(DateTime, default=datetime.utcnow)

    flowpaths = relationship("Flowpath", back_populates="aoi", cascade="all, delete-orphan")


class Flowpath(Base):
    """Elementary flowpaths (EFlowpaths)."""

    __tablename__ = "eflowpaths"

    id = Column(Integer, primary_key=True, autoincrement=True)
    aoi_id = Column(UUID(as_uuid=True), ForeignKey("aois.id"), nullable=False, index=True)
    internal_id = Column(String(64))  # Identifier carried over from the source data
    ef_type = Column(Integer, nullable=False)  # EfType code
    direction_known = Column(Integer, default=-1)  # DirectionType code
    geometry = Column(Geometry("LINESTRING"), nullable=False)

    aoi = relationship("Aoi", back_populates="flowpaths")


class TerminalNodePoint(Base):
    """Terminal nodes on the processing area boundary."""

    __tablename__ = "terminal_nodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    aoi_id = Column(UUID(as_uuid=True), ForeignKey("aois.id"), nullable=False, index=True)
    flow_direction = Column(Integer, nullable=False)  # FlowDirection code
    geometry = Column(Geometry("POINT"), nullable=False)


class ConstructionPoint(Base):
    """Skeleton construction points with their flow direction."""

    __tablename__ = "construction_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    aoi_id = Column(UUID(as_uuid=True), ForeignKey("aois.id"), nullable=False, index=True)
    flow_direction = Column(Integer, nullable=False)
    geometry = Column(Geometry("POINT"), nullable=False)


class Shoreline(Base):
    """Coastline segments; flowpaths ending on them drain to the sea."""

    __tablename__ = "shorelines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    aoi_id = Column(UUID(as_uuid=True), ForeignKey("aois.id"), nullable=False, index=True)
    geometry = Column(Geometry("LINESTRING"), nullable=False)


class Catchment(Base):
    """Elementary catchments (ECatchments)."""

    __tablename__ = "ecatchments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    aoi_id = Column(UUID(as_uuid=True), ForeignKey("aois.id"), nullable=False, index=True)
    ec_type = Column(Integer, nullable=False)  # EcType code
    geometry = Column(Geometry("POLYGON"), nullable=False)


class ProcessingError(Base):
    """Errors and warnings found while processing, with their location."""

    __tablename__ = "processing_errors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    aoi_id = Column(UUID(as_uuid=True), ForeignKey("aois.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False)  # ERROR or WARNING
    message = Column(Text, nullable=False)
    process = Column(String(50), default="direction")
    geometry = Column(Geometry("GEOMETRY"))
    created_at = Column(DateTime, default=datetime.utcnow)


class DirectionalizeJob(Base):
    """Track directionalize jobs for async processing."""

    __tablename__ = "directionalize_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    aoi_id = Column(UUID(as_uuid=True), ForeignKey("aois.id"), nullable=True)

    status = Column(String(20), default="pending")  # pending, running, completed, failed
    progress_percent = Column(Integer, default=0)
    error_message = Column(Text)

    # Request parameters
    input_path = Column(Text)  # GeoPackage input, when not processing an AOI
    output_path = Column(Text)
    short_segment = Column(Float)
    angle_diff = Column(Float)

    # Results
    flipped_count = Column(Integer)
    processed_count = Column(Integer)

    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Enum, Float, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from labtenancy.db.base import Base, UTCDateTime
from labtenancy.models.mixins import LabOwnedMixin, SoftDeleteMixin, TrackedMixin


class SampleType(str, enum.Enum):
    DRINKING_WATER = "drinking_water"
    WASTEWATER = "wastewater"
    SURFACE_WATER = "surface_water"
    GROUNDWATER = "groundwater"
    INDUSTRIAL_WATER = "industrial_water"


class SampleStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TestMethod(str, enum.Enum):
    __test__ = False

    TITRATION = "titration"
    SPECTROPHOTOMETRY = "spectrophotometry"
    CHROMATOGRAPHY = "chromatography"
    MICROSCOPY = "microscopy"
    ELECTRODE = "electrode"
    CULTURE = "culture"
    OTHER = "other"


class ComplianceStatus(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"


class TestResultStatus(str, enum.Enum):
    __test__ = False

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    VOIDED = "voided"


class Sample(TrackedMixin, SoftDeleteMixin, LabOwnedMixin, Base):
    __tablename__ = "samples"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sample_type: Mapped[SampleType] = mapped_column(Enum(SampleType, native_enum=False, length=32), nullable=False)
    collection_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    collector_name: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[SampleStatus] = mapped_column(
        Enum(SampleStatus, native_enum=False, length=32), default=SampleStatus.PENDING, nullable=False
    )

    # Owned record: lives and dies with the sample row.
    location: Mapped["SampleLocation | None"] = relationship(
        back_populates="sample", uselist=False, cascade="all, delete-orphan"
    )
    test_results: Mapped[list["TestResult"]] = relationship(back_populates="sample", cascade="all, delete-orphan")


class SampleLocation(Base):
    __tablename__ = "sample_locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sample_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("samples.id"), nullable=False, unique=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    hierarchy: Mapped[str | None] = mapped_column(String(500), nullable=True)

    sample: Mapped[Sample] = relationship(back_populates="location")

    @validates("latitude")
    def _check_latitude(self, key: str, value: float) -> float:
        if not -90 <= value <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return value

    @validates("longitude")
    def _check_longitude(self, key: str, value: float) -> float:
        if not -180 <= value <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return value


class TestResult(TrackedMixin, SoftDeleteMixin, LabOwnedMixin, Base):
    __tablename__ = "test_results"
    __test__ = False

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sample_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("samples.id"), nullable=False, index=True)
    parameter_name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    test_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    technician_name: Mapped[str] = mapped_column(String(100), nullable=False)
    test_method: Mapped[TestMethod] = mapped_column(Enum(TestMethod, native_enum=False, length=32), nullable=False)
    compliance_status: Mapped[ComplianceStatus] = mapped_column(
        Enum(ComplianceStatus, native_enum=False, length=16), nullable=False
    )
    status: Mapped[TestResultStatus] = mapped_column(
        Enum(TestResultStatus, native_enum=False, length=16), default=TestResultStatus.DRAFT, nullable=False
    )

    sample: Mapped[Sample] = relationship(back_populates="test_results")


class Parameter(TrackedMixin, Base):
    """Measured quantity catalogue; shared by all labs, hard-deletable."""

    __tablename__ = "parameters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    min_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

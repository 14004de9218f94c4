from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from labtenancy.models.lab_data import (
    ComplianceStatus,
    SampleStatus,
    SampleType,
    TestMethod,
    TestResultStatus,
)


class SampleLocationIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    description: str | None = Field(default=None, max_length=200)
    hierarchy: str | None = Field(default=None, max_length=500)


class SampleLocationOut(SampleLocationIn):
    model_config = ConfigDict(from_attributes=True)


class SampleCreate(BaseModel):
    # Only the system admin (no lab selected) has to name the lab.
    lab_id: UUID | None = None
    sample_type: SampleType
    collection_date: datetime
    collector_name: str = Field(max_length=100)
    notes: str | None = Field(default=None, max_length=1000)
    location: SampleLocationIn | None = None


class SampleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lab_id: UUID
    sample_type: SampleType
    collection_date: datetime
    collector_name: str
    notes: str | None
    status: SampleStatus
    location: SampleLocationOut | None
    created_at: datetime
    created_by: str


class TestResultCreate(BaseModel):
    __test__ = False

    sample_id: UUID
    parameter_name: str = Field(max_length=100)
    value: float
    unit: str = Field(max_length=20)
    test_date: datetime
    technician_name: str = Field(max_length=100)
    test_method: TestMethod
    compliance_status: ComplianceStatus


class TestResultUpdate(BaseModel):
    __test__ = False

    value: float | None = None
    unit: str | None = Field(default=None, max_length=20)
    compliance_status: ComplianceStatus | None = None
    status: TestResultStatus | None = None


class TestResultOut(BaseModel):
    __test__ = False

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lab_id: UUID
    sample_id: UUID
    parameter_name: str
    value: float
    unit: str
    test_date: datetime
    technician_name: str
    test_method: TestMethod
    compliance_status: ComplianceStatus
    status: TestResultStatus

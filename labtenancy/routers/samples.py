from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from labtenancy.db.session import get_db
from labtenancy.models.lab_data import Sample, SampleLocation
from labtenancy.schemas.lab_data import SampleCreate, SampleOut
from labtenancy.security.authorization import ensure_resource_in_lab
from labtenancy.security.context import Role, SecurityContext
from labtenancy.security.decorators import require_role
from labtenancy.security.dependencies import get_security_context

router = APIRouter(prefix="/samples", tags=["samples"])


def _get_sample_or_404(db: Session, sample_id: UUID) -> Sample:
    # Rows of other labs are filtered out, so they look exactly like missing rows.
    sample = db.scalars(select(Sample).where(Sample.id == sample_id)).first()
    if sample is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sample not found")
    return sample


@router.get("", response_model=list[SampleOut])
def list_samples(db: Session = Depends(get_db)) -> list[Sample]:
    return list(db.scalars(select(Sample).order_by(Sample.collection_date.desc())).all())


@router.post("", response_model=SampleOut, status_code=status.HTTP_201_CREATED)
@require_role(Role.TECHNICIAN)
def create_sample(
    payload: SampleCreate,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context),
) -> Sample:
    lab_id = payload.lab_id or context.lab_id
    if lab_id is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="lab_id is required")
    ensure_resource_in_lab(context, lab_id)

    sample = Sample(
        lab_id=lab_id,
        sample_type=payload.sample_type,
        collection_date=payload.collection_date,
        collector_name=payload.collector_name,
        notes=payload.notes,
    )
    if payload.location is not None:
        sample.location = SampleLocation(**payload.location.model_dump())
    db.add(sample)
    db.commit()
    db.refresh(sample)
    return sample


@router.get("/{sample_id}", response_model=SampleOut)
def get_sample(sample_id: UUID, db: Session = Depends(get_db)) -> Sample:
    return _get_sample_or_404(db, sample_id)


@router.delete("/{sample_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sample(
    sample_id: UUID,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context),
) -> Response:
    sample = _get_sample_or_404(db, sample_id)
    ensure_resource_in_lab(context, sample.lab_id)
    # Rewritten into a soft delete (and audited as Delete) at flush time.
    db.delete(sample)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)

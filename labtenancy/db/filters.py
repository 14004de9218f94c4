from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria

from labtenancy.db.base import Base
from labtenancy.db.unit_of_work import get_context
from labtenancy.models.mixins import LabScoped, SoftDeleteMixin

INCLUDE_DELETED = "include_deleted"


@event.listens_for(Session, "do_orm_execute")
def _apply_read_filters(execute_state: ORMExecuteState) -> None:
    """
    Transparent read scoping.

    Plain ``db.scalars(select(Sample))`` returns only live rows of the current
    lab. Soft-deleted rows come back only with
    ``execution_options(include_deleted=True)``.

    Column loads (refresh/unexpire) and relationship loads are left alone:
    the criteria added to the parent statement already propagate to them.
    """

    if (
        not execute_state.is_select
        or execute_state.is_column_load
        or execute_state.is_relationship_load
    ):
        return

    stmt = execute_state.statement

    if not execute_state.execution_options.get(INCLUDE_DELETED, False):
        stmt = stmt.options(
            with_loader_criteria(SoftDeleteMixin, lambda cls: cls.is_deleted.is_(False), include_aliases=True)
        )

    security = get_context(execute_state.session).security
    if security.is_lab_bound and not security.is_system_admin:
        lab_id = security.lab_id
        stmt = stmt.options(
            *(
                with_loader_criteria(model, lambda cls: cls.lab_id == lab_id, include_aliases=True)
                for model in _lab_scoped_models()
            )
        )

    execute_state.statement = stmt


def _lab_scoped_models() -> list[type]:
    # Criteria go on each mapped class; the LabScoped marker itself has no lab_id column.
    return [mapper.class_ for mapper in Base.registry.mappers if issubclass(mapper.class_, LabScoped)]

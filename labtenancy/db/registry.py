"""
Static registration table for the audit and soft-delete hooks.

Every mapped class is declared once, at startup, as one of:

- auditable: has an ``EntityType`` tag, a fixed tuple of audited fields and
  (optionally) owned relationships walked on soft delete
- owned: a record that lives inside another entity's aggregate; not audited
  on its own, restored together with its owner
- sink: the audit tables themselves; never captured

The hooks only consult this table; they never introspect models at flush
time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import Boolean, DateTime, inspect
from sqlalchemy.orm import DeclarativeBase, Mapper
from sqlalchemy.types import TypeDecorator

from labtenancy.errors import AuditEntityTypeUnmapped, ConfigurationError, SoftDeleteContractViolation
from labtenancy.models.audit import EntityType

logger = logging.getLogger(__name__)

SOFT_DELETE_FLAG = "is_deleted"
SOFT_DELETE_TIMESTAMP = "deleted_at"
SOFT_DELETE_ACTOR = "deleted_by"


@dataclass(frozen=True)
class EntityRegistration:
    model: type
    entity_type: EntityType
    fields: tuple[str, ...]
    soft_delete: bool = False
    owns: tuple[str, ...] = ()
    lab_field: str | None = None


@dataclass(frozen=True)
class OwnedRegistration:
    model: type
    owns: tuple[str, ...] = ()


def _column_type(mapper: Mapper, key: str):
    if key not in mapper.column_attrs:
        return None
    column_type = mapper.column_attrs[key].columns[0].type
    if isinstance(column_type, TypeDecorator):
        return column_type.impl
    return column_type


def _check_soft_delete(model: type, mapper: Mapper, claimed: bool) -> bool:
    flag_type = _column_type(mapper, SOFT_DELETE_FLAG)
    ts_type = _column_type(mapper, SOFT_DELETE_TIMESTAMP)
    has_flag = isinstance(flag_type, Boolean)
    has_ts = isinstance(ts_type, DateTime)

    if claimed or has_flag or has_ts:
        if not has_flag:
            raise SoftDeleteContractViolation(model, SOFT_DELETE_FLAG)
        if not has_ts:
            raise SoftDeleteContractViolation(model, SOFT_DELETE_TIMESTAMP)
        return True
    return False


class EntityRegistry:
    def __init__(self) -> None:
        self._entities: dict[type, EntityRegistration] = {}
        self._owned: dict[type, OwnedRegistration] = {}
        self._sinks: set[type] = set()

    def register(
        self,
        model: type,
        entity_type: EntityType,
        *,
        soft_delete: bool | None = None,
        owns: tuple[str, ...] = (),
        lab_field: str | None = None,
        exclude: tuple[str, ...] = (),
    ) -> EntityRegistration:
        """
        Register an auditable model.

        ``soft_delete=None`` means "whatever the model declares"; passing True
        asserts the contract and fails if either column is missing.
        """

        mapper = inspect(model)
        claimed = bool(soft_delete) if soft_delete is not None else _claims_soft_delete(model)
        is_soft = _check_soft_delete(model, mapper, claimed)
        if soft_delete is False and is_soft:
            raise ConfigurationError(f"{model.__name__} has soft-delete columns but was registered as hard-delete")

        for key in owns:
            if key not in mapper.relationships.keys():
                raise ConfigurationError(f"{model.__name__}.{key} is not a relationship")

        if lab_field is None and "lab_id" in mapper.column_attrs.keys():
            lab_field = "lab_id"

        fields = tuple(prop.key for prop in mapper.column_attrs if prop.key not in exclude)
        registration = EntityRegistration(
            model=model,
            entity_type=EntityType(entity_type),
            fields=fields,
            soft_delete=is_soft,
            owns=tuple(owns),
            lab_field=lab_field,
        )
        self._entities[model] = registration
        return registration

    def register_owned(self, model: type, *, owns: tuple[str, ...] = ()) -> OwnedRegistration:
        registration = OwnedRegistration(model=model, owns=tuple(owns))
        self._owned[model] = registration
        return registration

    def register_sink(self, model: type) -> None:
        self._sinks.add(model)

    def lookup(self, model: type) -> EntityRegistration:
        for cls in model.__mro__:
            registration = self._entities.get(cls)
            if registration is not None:
                return registration
        raise AuditEntityTypeUnmapped(model)

    def classify(self, model: type) -> EntityRegistration | OwnedRegistration | None:
        """
        Registration for a model seen by the flush hooks; None for audit sinks.

        Anything unregistered is a configuration defect and raises.
        """

        for cls in model.__mro__:
            if cls in self._sinks:
                return None
            if cls in self._owned:
                return self._owned[cls]
            if cls in self._entities:
                return self._entities[cls]
        raise AuditEntityTypeUnmapped(model)

    def owned_relationships(self, model: type) -> tuple[str, ...]:
        registration = self.classify(model)
        return registration.owns if registration is not None else ()

    def validate_models(self, base: type[DeclarativeBase]) -> None:
        """Fail if any mapped class, or any owned relationship target, is unregistered."""

        for mapper in base.registry.mappers:
            self.classify(mapper.class_)

        for registration in [*self._entities.values(), *self._owned.values()]:
            mapper = inspect(registration.model)
            for key in registration.owns:
                target = mapper.relationships[key].mapper.class_
                if target not in self._owned:
                    raise ConfigurationError(
                        f"{registration.model.__name__}.{key} targets {target.__name__}, which is not registered as owned"
                    )

        logger.info(
            "Entity registry validated auditable=%d owned=%d sinks=%d",
            len(self._entities),
            len(self._owned),
            len(self._sinks),
        )


def _claims_soft_delete(model: type) -> bool:
    from labtenancy.models.mixins import SoftDeleteMixin

    return issubclass(model, SoftDeleteMixin)


def build_default_registry() -> EntityRegistry:
    from labtenancy.models.audit import AuditLog, AuditLogArchive
    from labtenancy.models.lab_data import Parameter, Sample, SampleLocation, TestResult
    from labtenancy.models.tenancy import Lab, User, UserLab

    registry = EntityRegistry()
    registry.register(Lab, EntityType.LAB, lab_field="id")
    registry.register(User, EntityType.USER)
    registry.register(UserLab, EntityType.USER_LAB)
    registry.register(Sample, EntityType.SAMPLE, owns=("location",))
    registry.register_owned(SampleLocation)
    registry.register(TestResult, EntityType.TEST_RESULT)
    registry.register(Parameter, EntityType.PARAMETER, soft_delete=False)
    registry.register_sink(AuditLog)
    registry.register_sink(AuditLogArchive)
    return registry


@lru_cache
def get_registry() -> EntityRegistry:
    return build_default_registry()

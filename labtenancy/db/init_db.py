from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from labtenancy.db.base import Base
from labtenancy.db.session import SessionLocal, engine, open_session
from labtenancy.db.unit_of_work import UnitOfWorkContext
from labtenancy.models.lab_data import Parameter
from labtenancy.models.tenancy import Lab, User
from labtenancy.security.context import SecurityContext
from labtenancy.settings import Settings, get_settings

_DEFAULT_PARAMETERS = [
    ("pH", "pH", 6.5, 8.5, "Acidity / alkalinity"),
    ("Turbidity", "NTU", 0.0, 4.0, "Cloudiness"),
    ("Chlorine", "mg/L", 0.2, 4.0, "Free residual chlorine"),
    ("Nitrate", "mg/L", 0.0, 50.0, "Nitrate as NO3"),
    ("E. coli", "CFU/100mL", 0.0, 0.0, "Escherichia coli"),
]


def init_db(factory: sessionmaker = SessionLocal, settings: Settings | None = None) -> None:
    """
    Create tables + seed a default lab, the parameter catalogue and (when
    configured) the system admin user.

    Seeding runs as "System" and goes through the normal flush hooks, so the
    seed rows are audited like any other write.
    """

    Base.metadata.create_all(bind=factory.kw.get("bind", engine))

    with open_session(UnitOfWorkContext(security=SecurityContext.unscoped()), factory) as db:
        if _has_seed_data(db):
            return
        _seed(db, settings or get_settings())


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Lab.id).limit(1)).first() is not None


def _seed(db: Session, settings: Settings) -> None:
    db.add(Lab(name="Default Lab", location="Main site", is_active=True))

    for name, unit, min_value, max_value, description in _DEFAULT_PARAMETERS:
        db.add(Parameter(name=name, unit=unit, min_value=min_value, max_value=max_value, description=description))

    admin_id = settings.system_admin_user_id
    if admin_id is not None and db.get(User, admin_id) is None:
        db.add(User(id=admin_id, email="system.admin@localhost", user_name="system-admin", is_active=True))

    db.commit()

# coding: utf-8
"""
SQLAlchemy declarative base for the credential/configuration store.

The lot ledger itself lives in a JSON snapshot (cf. inventory.snapshot);
only exchange credentials and metrics configuration are kept here.
"""

# stdlib imports
from contextlib import contextmanager


# 3rd party imports
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, declared_attr
from sqlalchemy.sql.schema import MetaData


def init_db(db_uri, **kwargs):
    engine = create_engine(db_uri, **kwargs)
    Base.metadata.create_all(bind=engine)
    Session.configure(bind=engine)
    return engine


Session = sessionmaker()


@contextmanager
def sessionmanager(**kwargs):
    """Provide a transactional scope around a series of operations."""
    session = Session(**kwargs)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


#  Naming convention for constraints
#  https://docs.sqlalchemy.org/en/13/core/constraints.html#configuring-constraint-naming-conventions
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)


class _Base(object):
    """
    SQLAlchemy declarative base for model classes in this package.
    """

    @declared_attr
    def __tablename__(cls):
        return cls.__name__.lower()

    #  Columns masked by repr(), e.g. API secrets
    redacted = ()

    def __repr__(self):
        """
        Lists all non-NULL instance attributes.
        """
        attrs = [col.name for col in self.__table__.c if getattr(self, col.name) is not None]
        return "<%s(%s)>" % (
            self.__class__.__name__,
            ", ".join(
                "%s=%r" % (attr, "***" if attr in self.redacted else str(getattr(self, attr)))
                for attr in attrs
            ),
        )


Base = declarative_base(cls=_Base, metadata=metadata)

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Every model must inherit from this class so it is registered in the
    shared metadata used by `init_db` and the test fixtures.
    """
    pass

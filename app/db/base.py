from sqlalchemy.orm import DeclarativeBase

class Base(DeclarativeBase):
    """
    The base class for all of our SQLAlchemy (database) models.

    Every table in models.py (User, Task, TaskCodeCounter) inherits
    from this class, so Base.metadata knows the whole schema.
    """
    pass

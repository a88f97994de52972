from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """ this is the base class for all models """
    pass

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import as_declarative, declared_attr

from app.utils.helpers import utcnow


@as_declarative()
class Base:
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower()

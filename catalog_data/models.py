"""
Database models for the catalog data layer.

This module defines the SQLAlchemy ORM models for the catalog entities.
Every entity derives from BaseEntity, which owns the integer identifier
assigned by the store on first insert.
"""

from typing import Any, Dict

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base, relationship

from .config import settings

Base: Any = declarative_base()


class BaseEntity(Base):
    """
    Abstract base for all catalog entities.

    Attributes:
        id: Primary key, assigned by the store and never reused
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    def to_dict(self) -> Dict[str, Any]:
        """Return the column values of this entity."""
        return {column.key: getattr(self, column.key) for column in self.__table__.columns}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


class Ban(BaseEntity):
    """
    Vehicle body type (sedan, hatchback, ...).

    Attributes:
        name: Display name
        media: Images attached to this body type
    """

    __tablename__ = "bans"

    name = Column(String(settings.NAME_MAX_LENGTH), nullable=False)

    media = relationship("Media", back_populates="ban", cascade="all, delete-orphan")


class City(BaseEntity):
    """City a listing can be located in."""

    __tablename__ = "cities"

    name = Column(String(settings.NAME_MAX_LENGTH), nullable=False)


class Fuel(BaseEntity):
    """Fuel type (diesel, petrol, ...)."""

    __tablename__ = "fuels"

    name = Column(String(settings.NAME_MAX_LENGTH), nullable=False)


class Media(BaseEntity):
    """
    Uploaded media file.

    Attributes:
        media_type: MIME type of the file
        file_size: Size in bytes
        file_name: Stored file name
        ban_id: Optional owning body type
    """

    __tablename__ = "media"

    media_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_name = Column(String(settings.FILE_NAME_MAX_LENGTH), nullable=False)

    ban_id = Column(Integer, ForeignKey("bans.id"), nullable=True, index=True)

    ban = relationship("Ban", back_populates="media")

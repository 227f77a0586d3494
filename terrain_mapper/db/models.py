"""Database models for terrain storage."""

from sqlalchemy import Column, Integer, String, Boolean, Text, ForeignKey, DateTime, JSON
from sqlalchemy.orm import declarative_base, relationship
import uuid
from datetime import datetime

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


class TerrainItem(Base):
    """Hidden container item holding every terrain record."""

    __tablename__ = "terrain_items"

    id = Column(String(16), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    img = Column(String(255))
    type = Column(String(50), default="base")
    flags = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    effects = relationship(
        "TerrainEffect",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="TerrainEffect.sort",
    )


class TerrainEffect(Base):
    """Backing record for a single terrain, comparable to an active effect."""

    __tablename__ = "terrain_effects"

    id = Column(String(16), primary_key=True, default=_new_id)
    item_id = Column(String(16), ForeignKey("terrain_items.id"), nullable=True)  # Null until attached

    name = Column(String(255), nullable=False, default="Terrain")
    description = Column(Text, default="")
    icon = Column(String(255))
    disabled = Column(Boolean, default=False)
    sort = Column(Integer, default=0)

    # Module-scoped configuration, {module_id: {key: value}}
    flags = Column(JSON, default=dict)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    item = relationship("TerrainItem", back_populates="effects")


class ModuleSetting(Base):
    """Persisted value of a registered module setting."""

    __tablename__ = "module_settings"

    key = Column(String(100), primary_key=True)
    scope = Column(String(20), nullable=False, default="world")
    value = Column(JSON)

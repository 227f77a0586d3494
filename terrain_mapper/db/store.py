"""
Database-backed attribute store.

Implements the attribute store capability on top of ``TerrainItem`` (the
container) and ``TerrainEffect`` (one backing record per terrain). Each
operation runs in its own session, so a write is either committed or rolled
back before the call returns.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import PersistenceError
from .connection import Database, db
from .models import TerrainEffect, TerrainItem

logger = structlog.get_logger()

RECORD_FIELDS = ("name", "description", "icon", "disabled", "sort")


class DatabaseAttributeStore:
    """
    Attribute store persisting terrain records with SQLAlchemy.

    Keys are either a top-level record field (``name``, ``description``,
    ``icon``, ``disabled``, ``sort``) or a dotted path into the record's
    flags (``flags.<scope>.<key>``).
    """

    def __init__(self, database: Optional[Database] = None):
        self.database = database or db

    @contextmanager
    def _session(self, operation: str, **context: Any) -> Iterator[Session]:
        try:
            with self.database.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Attribute store operation failed", operation=operation, error=str(e), **context)
            raise PersistenceError(f"{operation} failed: {e}") from e

    # Attribute access

    def get(self, record_ref: str, key: str) -> Any:
        """Return the value stored under a key, or None when unset."""
        with self._session("get", record_ref=record_ref, key=key) as session:
            effect = self._effect(session, record_ref)
            return _read_key(effect, key)

    async def set(self, record_ref: str, key: str, value: Any) -> None:
        """Persist a value under a key."""
        with self._session("set", record_ref=record_ref, key=key) as session:
            effect = self._effect(session, record_ref)
            _write_key(effect, key, value)

    # Records

    async def create_many(self, container_ref: str, records: Sequence[Mapping[str, Any]]) -> List[str]:
        """Create records in a container and return their refs in order."""
        with self._session("create_many", container_ref=container_ref, count=len(records)) as session:
            self._item(session, container_ref)
            start = self._next_sort(session, container_ref)
            effects = []
            for offset, record in enumerate(records):
                effect = _build_effect(record)
                effect.item_id = container_ref
                effect.sort = start + offset
                session.add(effect)
                effects.append(effect)
            session.flush()
            refs = [effect.id for effect in effects]

        logger.info("Created terrain records", container_ref=container_ref, count=len(refs))
        return refs

    async def delete_many(self, container_ref: str, record_refs: Sequence[str]) -> int:
        """Delete records from a container and return how many were removed."""
        if not record_refs:
            return 0
        with self._session("delete_many", container_ref=container_ref, count=len(record_refs)) as session:
            effects = (
                session.query(TerrainEffect)
                .filter(TerrainEffect.item_id == container_ref, TerrainEffect.id.in_(list(record_refs)))
                .all()
            )
            for effect in effects:
                session.delete(effect)
            deleted = len(effects)

        logger.info("Deleted terrain records", container_ref=container_ref, count=deleted)
        return deleted

    def records(self, container_ref: str) -> List[str]:
        """Return the refs of every record in a container, in stored order."""
        with self._session("records", container_ref=container_ref) as session:
            self._item(session, container_ref)
            rows = (
                session.query(TerrainEffect.id)
                .filter(TerrainEffect.item_id == container_ref)
                .order_by(TerrainEffect.sort, TerrainEffect.id)
                .all()
            )
            return [row[0] for row in rows]

    def to_portable(self, record_ref: str) -> Dict[str, Any]:
        """Return a JSON-compatible snapshot of a record."""
        with self._session("to_portable", record_ref=record_ref) as session:
            effect = self._effect(session, record_ref)
            data: Dict[str, Any] = {"_id": effect.id}
            for field in RECORD_FIELDS:
                data[field] = getattr(effect, field)
            data["flags"] = copy.deepcopy(effect.flags or {})
            return data

    async def from_portable(self, document: Mapping[str, Any], container_ref: Optional[str] = None) -> str:
        """Create a record from a snapshot and return its ref. The snapshot's ``_id`` is ignored."""
        with self._session("from_portable", container_ref=container_ref) as session:
            effect = _build_effect(document)
            if container_ref is not None:
                self._item(session, container_ref)
                effect.item_id = container_ref
                effect.sort = self._next_sort(session, container_ref)
            session.add(effect)
            session.flush()
            return effect.id

    async def update_from_portable(self, record_ref: str, document: Mapping[str, Any]) -> None:
        """Overwrite record fields from a snapshot and merge its flags."""
        with self._session("update_from_portable", record_ref=record_ref) as session:
            effect = self._effect(session, record_ref)
            for field in RECORD_FIELDS:
                if field in document and field != "sort":
                    setattr(effect, field, document[field])
            if document.get("flags"):
                flags = copy.deepcopy(effect.flags or {})
                _merge(flags, document["flags"])
                effect.flags = flags

    # Containers

    async def create_container(self, name: str, img: Optional[str] = None, type: str = "base") -> str:
        """Create a container item and return its ref."""
        with self._session("create_container", name=name) as session:
            item = TerrainItem(name=name, img=img, type=type, flags={})
            session.add(item)
            session.flush()
            item_id = item.id

        logger.info("Created terrain container", container_ref=item_id, name=name)
        return item_id

    def container_exists(self, container_ref: Optional[str]) -> bool:
        """Whether a container with this ref exists."""
        if not container_ref:
            return False
        with self._session("container_exists", container_ref=container_ref) as session:
            return session.get(TerrainItem, container_ref) is not None

    # Helpers

    @staticmethod
    def _effect(session: Session, record_ref: str) -> TerrainEffect:
        effect = session.get(TerrainEffect, record_ref)
        if effect is None:
            raise PersistenceError(f"Record {record_ref} not found.")
        return effect

    @staticmethod
    def _item(session: Session, container_ref: str) -> TerrainItem:
        item = session.get(TerrainItem, container_ref)
        if item is None:
            raise PersistenceError(f"Container {container_ref} not found.")
        return item

    @staticmethod
    def _next_sort(session: Session, container_ref: str) -> int:
        highest = (
            session.query(func.max(TerrainEffect.sort))
            .filter(TerrainEffect.item_id == container_ref)
            .scalar()
        )
        return 0 if highest is None else highest + 1


def _build_effect(document: Mapping[str, Any]) -> TerrainEffect:
    return TerrainEffect(
        name=document.get("name") or "Terrain",
        description=document.get("description") or "",
        icon=document.get("icon"),
        disabled=bool(document.get("disabled", False)),
        flags=copy.deepcopy(dict(document.get("flags") or {})),
    )


def _split_key(key: str) -> List[str]:
    parts = key.split(".")
    if parts[0] == "flags" and len(parts) > 1 and all(parts):
        return parts
    if len(parts) == 1 and key in RECORD_FIELDS:
        return parts
    raise PersistenceError(f"Unknown attribute key {key!r}.")


def _read_key(effect: TerrainEffect, key: str) -> Any:
    parts = _split_key(key)
    if len(parts) == 1:
        return getattr(effect, key)

    node: Any = effect.flags or {}
    for part in parts[1:]:
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return copy.deepcopy(node)


def _write_key(effect: TerrainEffect, key: str, value: Any) -> None:
    parts = _split_key(key)
    if len(parts) == 1:
        setattr(effect, key, value)
        return

    # Assign a fresh dict so the JSON column registers the change
    flags = copy.deepcopy(effect.flags or {})
    node = flags
    for part in parts[1:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value
    effect.flags = flags


def _merge(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)

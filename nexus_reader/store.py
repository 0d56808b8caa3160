"""Persistent key-value storage for reader preferences."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Set

from sqlalchemy import Column, DateTime, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)

FAVORITES_KEY = "nexus_favorites"
LOCALE_KEY = "nexus_language"


class Base(DeclarativeBase):
    pass


class PreferenceModel(Base):
    """Stored preference value."""

    __tablename__ = "preferences"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine."""
    if not connection_string:
        return None

    logger.info("Initializing preference store: %s", connection_string)
    engine = create_engine(connection_string)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine)


class KeyValueStore:
    """String key-value store backed by a single SQL table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, connection_string: str) -> "KeyValueStore":
        engine = init_engine(connection_string)
        if engine is None:
            raise ValueError("A database connection string is required.")
        return cls(get_session_factory(engine))

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            stmt = select(PreferenceModel).where(PreferenceModel.key == key)
            result = session.execute(stmt).scalar_one_or_none()
            return result.value if result else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as session:
            stmt = select(PreferenceModel).where(PreferenceModel.key == key)
            existing = session.execute(stmt).scalar_one_or_none()
            if existing:
                existing.value = value
                existing.updated_at = datetime.now(timezone.utc)
            else:
                session.add(PreferenceModel(key=key, value=value))

            try:
                session.commit()
            except Exception:
                session.rollback()
                raise


def load_favorites(store: KeyValueStore) -> Set[str]:
    """Read the stored favorite ids, ignoring unreadable values."""
    raw = store.get(FAVORITES_KEY)
    if not raw:
        return set()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Could not parse stored favorites: %s", exc)
        return set()
    if not isinstance(payload, list):
        logger.warning("Stored favorites are not a list; ignoring them")
        return set()
    return {str(value) for value in payload}


def save_favorites(store: KeyValueStore, favorites: Iterable[str]) -> None:
    store.set(FAVORITES_KEY, json.dumps(sorted(favorites)))


def load_locale(store: KeyValueStore, default: str) -> str:
    return store.get(LOCALE_KEY) or default


def save_locale(store: KeyValueStore, locale: str) -> None:
    store.set(LOCALE_KEY, locale)


class FavoriteSet:
    """Favorite item ids, written through to the store on every toggle."""

    def __init__(self, store: KeyValueStore, ids: Optional[Iterable[str]] = None):
        self._store = store
        self._ids: Set[str] = set(ids or ())

    @classmethod
    def load(cls, store: KeyValueStore) -> "FavoriteSet":
        favorites = cls(store, load_favorites(store))
        logger.info("Loaded %d favorites", len(favorites))
        return favorites

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def toggle(self, item_id: str) -> bool:
        """Flip membership of ``item_id``; return whether it is now a favorite."""
        if item_id in self._ids:
            self._ids.remove(item_id)
            added = False
        else:
            self._ids.add(item_id)
            added = True
        save_favorites(self._store, self._ids)
        return added

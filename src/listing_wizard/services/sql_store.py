"""
SQL-backed key-value store (any SQLAlchemy URL)
"""
import logging
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..db import Base, KeyValueRecord, create_db_engine, create_session_factory
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class SqlKeyValueStore(KeyValueStore):
    """Stores documents in the kv_records table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, create_tables: bool = True) -> "SqlKeyValueStore":
        """
        Build a store for a database URL

        Args:
            database_url: SQLAlchemy URL (postgresql://..., sqlite:///...)
            create_tables: Create kv_records if it does not exist yet
        """
        engine = create_db_engine(database_url)
        return cls.from_engine(engine, create_tables=create_tables)

    @classmethod
    def from_engine(cls, engine: Engine, create_tables: bool = True) -> "SqlKeyValueStore":
        if create_tables:
            Base.metadata.create_all(bind=engine)
        return cls(create_session_factory(engine))

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self.session_factory() as db:
            record = db.get(KeyValueRecord, key)
            return dict(record.value) if record is not None else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        with self.session_factory() as db:
            record = db.get(KeyValueRecord, key)
            if record is None:
                db.add(KeyValueRecord(key=key, value=value))
            else:
                record.value = value
            db.commit()

    def delete(self, key: str) -> bool:
        with self.session_factory() as db:
            record = db.get(KeyValueRecord, key)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True

    def scan(self, prefix: str) -> Iterator[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self.session_factory() as db:
            keys = db.execute(
                select(KeyValueRecord.key)
                .where(KeyValueRecord.key.like(f"{escaped}%", escape="\\"))
                .order_by(KeyValueRecord.key)
            ).scalars().all()
        yield from keys

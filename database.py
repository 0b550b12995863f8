from sqlalchemy import Column, String, Text, TIMESTAMP, create_engine, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import json
import logging

logger = logging.getLogger(__name__)

# Declare base for using SQLAlchemy
Base = declarative_base()


# Every record lives here as JSON under a string key
class KeyValue(Base):
    __tablename__ = 'kv_store'

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())


class Database:
    """Key-value store adapter: get/put/delete JSON records by key.

    There are no transactions spanning calls and no atomic increment, so every
    mutation built on top of this class is a read-modify-write.
    """

    def __init__(self, db_url):
        if db_url in ('sqlite://', 'sqlite:///:memory:'):
            # One shared connection, otherwise each connection gets its own empty database
            self.engine = create_engine(db_url, connect_args={'check_same_thread': False}, poolclass=StaticPool)
        else:
            self.engine = create_engine(db_url)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

    def get(self, key: str):
        session = self.Session()
        try:
            row = session.get(KeyValue, key)
            return json.loads(row.value) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error reading key {key}: {e}")
            raise
        finally:
            session.close()

    def put(self, key: str, value):
        session = self.Session()
        try:
            session.merge(KeyValue(key=key, value=json.dumps(value, ensure_ascii=False)))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Error writing key {key}: {e}")
            raise
        finally:
            session.close()

    def delete(self, key: str):
        session = self.Session()
        try:
            row = session.get(KeyValue, key)
            if row:
                session.delete(row)
                session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Error deleting key {key}: {e}")
            raise
        finally:
            session.close()

    # Helpers for the manually maintained index lists
    def get_list(self, key: str) -> list:
        value = self.get(key)
        return value if isinstance(value, list) else []

    def prepend_unique(self, key: str, item, cap: int = None) -> list:
        items = [x for x in self.get_list(key) if x != item]
        items.insert(0, item)
        if cap:
            items = items[:cap]
        self.put(key, items)
        return items

    def remove_from_list(self, key: str, item) -> list:
        items = [x for x in self.get_list(key) if x != item]
        self.put(key, items)
        return items

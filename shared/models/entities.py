"""SQLAlchemy ORM database models."""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StorageEntry(Base):
    """Key-value table - one JSON document per storage key."""
    __tablename__ = "storage_entries"

    key = Column(String, primary_key=True)
    value_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

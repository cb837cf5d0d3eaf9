from sqlalchemy import create_engine, Column, String, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
from config import settings


def make_engine(url: str):
    """Create an engine; SQLite connections are shared across worker threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Database Models
class CacheEntry(Base):
    __tablename__ = "cache_entries"

    key = Column(String(255), primary_key=True)
    value = Column(JSON, nullable=True)

    # Expiry (NULL never expires)
    expires_at = Column(DateTime, nullable=True, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class PluginLicense(Base):
    __tablename__ = "plugin_licenses"

    handle = Column(String(100), primary_key=True)
    license_key = Column(Text, nullable=True)

    # Last status reported by the licensing authority
    license_key_status = Column(String(20), nullable=True)
    status_synced_at = Column(DateTime)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def init_db(bind=None):
    """Create all tables in one transaction; nothing is created if any step fails."""
    bind = bind if bind is not None else engine
    with bind.begin() as connection:
        Base.metadata.create_all(bind=connection)

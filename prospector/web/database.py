"""Database models for quota bookkeeping."""

from datetime import datetime

from sqlalchemy import create_engine, Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class Subscription(Base):
    """Monthly search credits for one user."""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, unique=True, index=True)
    plan = Column(String(50), default="free")
    quota_monthly = Column(Integer, default=0)
    used_this_month = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Subscription {self.user_id}: {self.used_this_month}/{self.quota_monthly}>"


class UsageEvent(Base):
    """One reserved quota charge. The idempotency key makes retries free."""
    __tablename__ = "usage_events"
    __table_args__ = (UniqueConstraint("idempotency_key", name="uq_usage_events_idempotency_key"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    kind = Column(String(50), nullable=False)  # prospect_search, prospect_preview
    idempotency_key = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


def create_session_factory(database_url: str) -> sessionmaker:
    """
    Create the engine and session factory, and make sure tables exist.

    An in-memory SQLite URL gets a single shared connection so every session
    sees the same database.
    """
    connect_args = {}
    engine_kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)
    init_db(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Generator

from sqlalchemy import DateTime, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker


class Base(DeclarativeBase):
    pass


class FulfillmentRecord(Base):
    __tablename__ = "fulfillments"

    id: Mapped[int] = mapped_column(primary_key=True)
    program_id: Mapped[str] = mapped_column(String(64), index=True)
    request_tx: Mapped[str] = mapped_column(String(100), index=True)
    response_tx: Mapped[str | None] = mapped_column(String(100), index=True)
    vrf_account: Mapped[str | None] = mapped_column(String(64))
    seed_hex: Mapped[str | None] = mapped_column(String(80))
    proof_hex: Mapped[str | None] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(16), index=True)  # fulfilled|ignored|failed
    source: Mapped[str] = mapped_column(String(16), default="live")  # live|backfill
    error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


def make_engine(database_url: str):
    return create_engine(database_url, pool_pre_ping=True, future=True)


def make_session_factory(database_url: str):
    engine = make_engine(database_url)
    # Migrations are managed via Alembic. We intentionally avoid create_all here.
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


@contextmanager
def session_scope(SessionFactory) -> Generator[Session, None, None]:
    session: Session = SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def was_fulfilled(SessionFactory, request_tx: str) -> bool:
    with session_scope(SessionFactory) as s:
        found = s.execute(
            select(FulfillmentRecord.id)
            .where(FulfillmentRecord.request_tx == request_tx, FulfillmentRecord.status == "fulfilled")
            .limit(1)
        ).first()
        return found is not None

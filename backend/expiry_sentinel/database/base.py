"""Database engine, session factory, and base model."""

import logging
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import QueuePool

from ..config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.effective_database_url,
    poolclass=QueuePool,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(bind=engine)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables. Every model module must be imported first."""
    from ..automation import models as _automation  # noqa: F401
    from ..catalog import models as _catalog  # noqa: F401
    from ..channels import models as _channels  # noqa: F401
    from ..integrations import models as _integrations  # noqa: F401
    from ..messaging import models as _messaging  # noqa: F401
    from ..notifications import models as _notifications  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Tables verified: %s", ", ".join(Base.metadata.tables.keys()))

from __future__ import annotations

import logging

from services.api.app.db.database import env_flag, get_engine
from services.api.app.db.models import Base
from sqlalchemy import inspect

logger = logging.getLogger(__name__)


def init_db() -> list[str]:
    """Create any missing tables and return the names of the ones created.

    Skipped entirely when BOUQUET_DB_AUTO_CREATE is off, e.g. when the schema is managed
    outside the service.
    """
    if not env_flag("BOUQUET_DB_AUTO_CREATE", "true"):
        logger.info("[DB] Table auto-create disabled")
        return []

    engine = get_engine()
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    created = sorted(set(Base.metadata.tables) - existing)
    if created:
        logger.info("[DB] Created tables: %s", ", ".join(created))
    return created

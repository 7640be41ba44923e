from __future__ import annotations

import logging

from services.api.app.db.database import database_url, get_engine
from services.api.app.db.models import Base
from services.api.app.settings import db_auto_create_enabled

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create the key-value tables unless WAIVERDESK_DB_AUTO_CREATE is off."""

    if not db_auto_create_enabled():
        logger.info("init_db: auto-create disabled")
        return

    Base.metadata.create_all(bind=get_engine())
    logger.info(f"init_db: tables ready on {database_url().split('://', 1)[0]}")

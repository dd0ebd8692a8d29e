"""Create all tables. Run on app startup."""
import logging

from sqlalchemy.engine import Engine

from poultry.db.base import Base
from poultry.db.session import engine as default_engine
from poultry import models  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def init_db(engine: Engine = None):
    bind = engine if engine is not None else default_engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"Database ready ({bind.url.get_backend_name()})")

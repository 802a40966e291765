"""Create the messaging tables on the configured database."""

import logging

from marketchat.database import Base, engine
from marketchat.models import Conversation, Message, UserPresence  # noqa: F401

logger = logging.getLogger(__name__)


def init_db() -> None:
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created successfully")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()

"""Dependency wiring for the repository layer."""

from typing import Optional

from ..config import get_config
from ..db.database import create_database_engine, create_session_factory, init_schema
from ..utils.logging_config import get_logger
from .interfaces import RepositoryContainer
from .memory_impl import create_memory_container
from .sqlalchemy_impl import create_sqlalchemy_container

logger = get_logger('database')


def get_repository_container(
    database_url: Optional[str] = None, create_schema: bool = True
) -> RepositoryContainer:
    """
    Create a repository container for ``database_url``.

    ``memory://`` selects the in-memory backend; any other URL is handed to
    SQLAlchemy. Defaults to the configured database URL.
    """
    database_url = database_url or get_config().database.url

    if database_url.startswith("memory://"):
        logger.info("Using in-memory record store")
        return create_memory_container()

    engine = create_database_engine(database_url)
    if create_schema:
        init_schema(engine)
    logger.info(f"Using SQL record store at {engine.url.render_as_string(hide_password=True)}")
    return create_sqlalchemy_container(create_session_factory(engine))

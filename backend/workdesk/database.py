import logging
import time
from collections.abc import Callable, Generator
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from workdesk.config import settings
from workdesk.errors import BackendUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

engine = create_engine(settings.database_url, echo=False)


def init_db() -> None:
    import workdesk.models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def run_with_retry(session: Session, operation: Callable[[], T]) -> T:
    """Run a unit of database work, retrying transient failures.

    The session is rolled back between attempts. Once the attempts are
    exhausted the failure surfaces as BackendUnavailable so the caller can
    offer a retry instead of hanging.
    """
    attempts = max(1, settings.backend_retry_attempts)
    attempt = 1
    while True:
        try:
            return operation()
        except OperationalError as e:
            session.rollback()
            logger.warning(
                f"Database operation failed (attempt {attempt}/{attempts}): {e}"
            )
            if attempt >= attempts:
                raise BackendUnavailable(
                    "The server could not reach the database. Please try again."
                ) from e
            time.sleep(settings.backend_retry_delay_seconds * attempt)
            attempt += 1

"""Database dependencies."""

from typing import Callable

from sqlalchemy.orm import Session

from gestionale_import.db.session import get_fresh_session


def get_session_factory() -> Callable[[], Session]:
    """FastAPI dependency returning the factory import jobs open sessions with.

    Jobs own their transaction, so routes hand over a factory instead of a
    request-scoped session.
    """
    return get_fresh_session

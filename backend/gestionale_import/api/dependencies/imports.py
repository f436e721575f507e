"""Import pipeline dependencies."""

from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from gestionale_import.api.dependencies.db import get_session_factory
from gestionale_import.core.config import Settings, get_settings
from gestionale_import.services.import_runner import ImportRunner
from gestionale_import.services.job_store import JobStore, get_job_store


def get_import_runner(
    settings: Settings = Depends(get_settings),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    job_store: JobStore = Depends(get_job_store),
) -> ImportRunner:
    return ImportRunner.from_settings(settings, session_factory, job_store)

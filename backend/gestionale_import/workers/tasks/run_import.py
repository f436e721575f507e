"""Celery task running an import job staged by the upload endpoint."""

from __future__ import annotations

import logging

from gestionale_import.core.config import get_settings
from gestionale_import.db.session import get_fresh_session
from gestionale_import.services.csv_parser import decode_upload
from gestionale_import.services.import_runner import ImportRunner
from gestionale_import.services.job_store import get_job_store
from gestionale_import.storage.file_storage import delete_upload, fetch_upload
from gestionale_import.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

MISSING_UPLOAD_MESSAGE = "File di import non trovato o scaduto"


def execute_staged_import(runner: ImportRunner, job_id: str) -> dict:
    """Fetch the staged upload for ``job_id``, run it and drop the staged copy."""
    content = fetch_upload(job_id)
    if content is None:
        runner.mark_failed(job_id, MISSING_UPLOAD_MESSAGE)
        raise FileNotFoundError(
            f"Upload for import {job_id} not found in Redis; it may have expired."
        )
    try:
        job = runner.run(job_id, decode_upload(content))
    finally:
        delete_upload(job_id)
    return {
        "import_id": job.id,
        "stage": job.progress.stage.value,
        "processed": job.result.processed,
        "errors": len(job.result.errors),
    }


@celery_app.task(bind=True, name="gestionale_import.run_import")
def run_import_task(self, job_id: str) -> dict:
    """Run a queued import job end to end."""
    logger.info(f"Worker {self.request.hostname} picked up import job {job_id}")
    runner = ImportRunner.from_settings(get_settings(), get_fresh_session, get_job_store())
    return execute_staged_import(runner, job_id)

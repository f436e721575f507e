"""Endpoints for the unified CSV import: upload, progress, result, cancel."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from gestionale_import.api.dependencies.imports import get_import_runner
from gestionale_import.api.schemas.imports import (
    ApiResponse,
    CancelAccepted,
    SupportedTypes,
    UploadAccepted,
)
from gestionale_import.core.config import Settings, get_settings
from gestionale_import.services.classifier import SUPPORTED_TYPES
from gestionale_import.services.csv_parser import decode_upload, parse_csv
from gestionale_import.services.import_runner import ImportRunner
from gestionale_import.services.import_state import ImportOptions, ImportProgress, ImportResult
from gestionale_import.services.job_store import JobStore, get_job_store
from gestionale_import.storage.file_storage import delete_upload, store_upload
from gestionale_import.workers.tasks.run_import import run_import_task

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_FOUND_MESSAGE = "Import non trovato"


def parse_options(raw: str | None) -> ImportOptions:
    """Turn the ``options`` form field into ImportOptions; absent means defaults."""
    if raw is None or not raw.strip():
        return ImportOptions()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Opzioni non valide: {exc.msg}",
        ) from exc
    if payload is None:
        return ImportOptions()
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Opzioni non valide: atteso un oggetto JSON",
        )
    try:
        return ImportOptions.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Opzioni non valide: {exc.errors()[0]['msg']}",
        ) from exc


@router.get(
    "/supported-types",
    summary="List importable record types",
    response_model=ApiResponse[SupportedTypes],
)
async def supported_types() -> ApiResponse[SupportedTypes]:
    return ApiResponse[SupportedTypes](data=SupportedTypes(types=[t.value for t in SUPPORTED_TYPES]))


@router.post(
    "/upload",
    summary="Upload a CSV and run the import",
    response_model=ApiResponse[UploadAccepted],
)
async def upload(
    file: UploadFile | None = File(None),
    options: str | None = Form(None),
    runner: ImportRunner = Depends(get_import_runner),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[UploadAccepted]:
    """Create an import job for the uploaded CSV.

    In sync mode the job runs to completion before the response is sent; in
    background mode it is handed to the Celery worker and the response only
    acknowledges the job. Row failures never fail the request: they show up
    in the result endpoint.
    """
    content = await file.read() if file is not None else b""
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File CSV mancante.")
    import_options = parse_options(options)
    file_name = file.filename or "file.csv"
    text = decode_upload(content)

    job = runner.create_job(file_name, import_options)

    if settings.import_run_mode == "background":
        total_rows = len(parse_csv(text).records)
        if not store_upload(job.id, content):
            runner.mark_failed(job.id, "Impossibile mettere in coda il file")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Impossibile mettere in coda il file",
            )
        try:
            run_import_task.apply_async(args=(job.id,), queue="imports")
        except Exception as exc:
            logger.error(f"Error enqueueing import job {job.id}: {exc}", exc_info=True)
            delete_upload(job.id)
            runner.mark_failed(job.id, "Impossibile avviare l'import")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Impossibile avviare l'import",
            ) from exc
        logger.info(f"Queued import job {job.id} ({total_rows} rows) for background processing")
        return ApiResponse[UploadAccepted](
            data=UploadAccepted(import_id=job.id, message="Import in coda", total_rows=total_rows)
        )

    try:
        finished = await run_in_threadpool(runner.run, job.id, text)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc) or "Errore interno upload",
        ) from exc

    return ApiResponse[UploadAccepted](
        data=UploadAccepted(
            import_id=finished.id,
            message="Import avviato",
            total_rows=finished.result.total_rows,
        )
    )


@router.get(
    "/progress/{import_id}",
    summary="Current progress of an import",
    response_model=ApiResponse[ImportProgress],
)
async def progress(import_id: str, job_store: JobStore = Depends(get_job_store)) -> ApiResponse[ImportProgress]:
    job = job_store.get(import_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)
    return ApiResponse[ImportProgress](data=job.progress)


@router.get(
    "/result/{import_id}",
    summary="Counters, errors and warnings of an import",
    response_model=ApiResponse[ImportResult],
)
async def result(import_id: str, job_store: JobStore = Depends(get_job_store)) -> ApiResponse[ImportResult]:
    job = job_store.get(import_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)
    return ApiResponse[ImportResult](data=job.result)


@router.post(
    "/cancel/{import_id}",
    summary="Ask a running import to stop",
    response_model=ApiResponse[CancelAccepted],
)
async def cancel(import_id: str, job_store: JobStore = Depends(get_job_store)) -> ApiResponse[CancelAccepted]:
    job = job_store.get(import_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)
    if job.progress.stage.is_terminal:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Import già concluso")
    if not job_store.request_cancel(import_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)
    logger.info(f"Cancellation requested for import job {import_id}")
    return ApiResponse[CancelAccepted](data=CancelAccepted(import_id=import_id))

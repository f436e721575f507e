"""Drive one CSV import job from raw text to committed rows.

The whole job runs in a single transaction with a savepoint per row, so a
failing row is rolled back and reported while the rest of the file goes on.
Later rows may reference customers created by earlier rows of the same file,
which is why rows are processed strictly in order.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.exc import DBAPIError, DisconnectionError, PendingRollbackError, SQLAlchemyError
from sqlalchemy.orm import Session

from gestionale_import.core.config import Settings
from gestionale_import.core.errors import ImportCancelledError, JobNotFoundError
from gestionale_import.services.classifier import RecordType, classify
from gestionale_import.services.consent import DEFAULT_CONSENT, ConsentPolicy
from gestionale_import.services.contract_kinds import GAS, LUCE, ContractKind
from gestionale_import.services.csv_parser import parse_csv
from gestionale_import.services.field_aliases import (
    AGENT_EMAIL_FIELDS,
    AGENT_ID_FIELDS,
    ImportRecord,
    first_value,
)
from gestionale_import.services.import_state import (
    ImportJob,
    ImportOptions,
    ImportResult,
    ImportStage,
    InsertedCounts,
    RowError,
    utcnow,
)
from gestionale_import.services.job_store import JobStore
from gestionale_import.services.resolver import find_customer, find_user_by_email
from gestionale_import.services.validation import validate_record
from gestionale_import.services.writer import (
    DEFAULT_CONTRACT_STATE,
    assign_agent,
    insert_customer,
    upsert_contract,
)

logger = logging.getLogger(__name__)

PARSING_PROGRESS = 5
PROCESSING_PROGRESS = 10
MAX_RUNNING_PROGRESS = 95

CONTRACT_KINDS = {
    RecordType.CONTRATTO_LUCE: LUCE,
    RecordType.CONTRATTO_GAS: GAS,
}


@dataclass
class RowOutcome:
    inserted: InsertedCounts = field(default_factory=InsertedCounts)
    warnings: list[str] = field(default_factory=list)
    skipped: bool = False


def is_infrastructure_error(exc: BaseException) -> bool:
    """Errors that mean the store itself is unusable, not that the row is bad."""
    if isinstance(exc, (DisconnectionError, PendingRollbackError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def running_progress(processed: int, total: int) -> int:
    """Percentage shown while rows are processed, interpolated from 10 to 95."""
    if total <= 0:
        return PROCESSING_PROGRESS
    value = int(PROCESSING_PROGRESS + (processed / total) * (MAX_RUNNING_PROGRESS - PROCESSING_PROGRESS))
    return min(MAX_RUNNING_PROGRESS, value)


class ImportRunner:
    """Owns the import job state machine: queued, parsing, processing, completed."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        job_store: JobStore,
        *,
        actor_email: str | None = None,
        consent: ConsentPolicy = DEFAULT_CONSENT,
        default_contract_state: str = DEFAULT_CONTRACT_STATE,
    ):
        self._session_factory = session_factory
        self._store = job_store
        self._actor_email = actor_email
        self._consent = consent
        self._default_contract_state = default_contract_state

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: Callable[[], Session],
        job_store: JobStore,
    ) -> "ImportRunner":
        return cls(
            session_factory,
            job_store,
            actor_email=settings.import_actor_email,
            consent=ConsentPolicy.from_settings(settings),
            default_contract_state=settings.default_contract_state,
        )

    def create_job(self, file_name: str, options: ImportOptions) -> ImportJob:
        job = ImportJob(
            id=str(uuid.uuid4()),
            options=options,
            result=ImportResult(file_name=file_name),
        )
        self._store.save(job)
        logger.info(f"Created import job {job.id} for file {file_name}")
        return job

    def run(self, job_id: str, content: str) -> ImportJob:
        """Process ``content`` for an existing job and return its final state.

        Row failures are collected on the result. Anything else rolls the
        whole job back, marks it failed and is re-raised.
        """
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Import {job_id} non trovato")

        session = self._session_factory()
        try:
            self._execute(job, content, session)
        except ImportCancelledError:
            self._rollback(job, session)
            logger.info(f"Import job {job.id} cancelled after {job.result.processed} rows")
            job.result.success = False
            self._set_progress(
                job,
                ImportStage.CANCELLED,
                job.progress.progress,
                f"Import annullato ({job.result.processed}/{job.result.total_rows})",
            )
        except Exception as exc:
            logger.error(f"Import job {job.id} failed: {exc}", exc_info=True)
            self._rollback(job, session)
            job.result.success = False
            self._set_progress(job, ImportStage.FAILED, job.progress.progress, f"Import fallito: {exc}")
            raise
        finally:
            session.close()
        return job

    def mark_failed(self, job_id: str, message: str) -> None:
        """Fail a job that never reached the runner (staging or enqueue failed)."""
        job = self._store.get(job_id)
        if job is None:
            return
        job.result.success = False
        self._set_progress(job, ImportStage.FAILED, job.progress.progress, message)

    def _rollback(self, job: ImportJob, session: Session) -> None:
        try:
            session.rollback()
        except SQLAlchemyError as exc:
            logger.error(f"Rollback failed for import job {job.id}: {exc}")

    def _set_progress(self, job: ImportJob, stage: ImportStage, progress: int, message: str) -> None:
        job.progress.stage = stage
        job.progress.progress = progress
        job.progress.message = message
        if stage.is_terminal:
            job.progress.completed_at = utcnow()
        self._store.save(job)

    def _execute(self, job: ImportJob, content: str, session: Session) -> None:
        options = job.options
        self._set_progress(job, ImportStage.PARSING, PARSING_PROGRESS, "Parsing CSV")
        records = parse_csv(content).records
        total = len(records)
        job.result.total_rows = total

        created_by = find_user_by_email(session, self._actor_email).value
        self._set_progress(job, ImportStage.PROCESSING, PROCESSING_PROGRESS, "Elaborazione records")
        if self._store.is_cancel_requested(job.id):
            raise ImportCancelledError(job.id)

        processed = 0
        for row_number, record in enumerate(records, start=1):
            savepoint = session.begin_nested()
            try:
                outcome = self._process_row(session, row_number, record, options, created_by)
            except Exception as exc:
                if savepoint.is_active:
                    savepoint.rollback()
                if is_infrastructure_error(exc):
                    raise
                message = str(exc) or exc.__class__.__name__
                logger.warning(f"Import job {job.id} row {row_number} failed: {message}")
                job.result.errors.append(RowError(row=row_number, error=message))
                continue
            savepoint.commit()

            job.result.warnings.extend(outcome.warnings)
            if outcome.skipped:
                continue
            job.result.inserted.add(outcome.inserted)
            processed += 1
            if processed % options.batch_size == 0:
                job.result.processed = processed
                self._set_progress(
                    job,
                    ImportStage.PROCESSING,
                    running_progress(processed, total),
                    f"Elaborazione records ({processed}/{total})",
                )
                # past the last row there is nothing left to cancel
                if row_number < total and self._store.is_cancel_requested(job.id):
                    raise ImportCancelledError(job.id)

        if options.dry_run:
            session.rollback()
        else:
            session.commit()

        job.result.processed = processed
        job.result.success = not job.result.errors
        self._set_progress(job, ImportStage.COMPLETED, 100, f"Import completato ({processed}/{total})")
        logger.info(
            f"Import job {job.id} completed: {processed}/{total} rows, "
            f"{len(job.result.errors)} errors, dry_run={options.dry_run}"
        )

    def _resolve_agent(self, session: Session, record: ImportRecord) -> str | None:
        direct = first_value(record, AGENT_ID_FIELDS)
        if direct:
            return direct
        return find_user_by_email(session, first_value(record, AGENT_EMAIL_FIELDS)).value

    def _process_row(
        self,
        session: Session,
        row_number: int,
        record: ImportRecord,
        options: ImportOptions,
        created_by: str | None,
    ) -> RowOutcome:
        outcome = RowOutcome()
        record_type = classify(record, auto_detect=options.auto_detect_type)

        if record_type == RecordType.UNKNOWN:
            outcome.warnings.append(f"Riga {row_number}: tipo_record non rilevato")
            outcome.skipped = True
            return outcome
        if not isinstance(record_type, RecordType):
            outcome.warnings.append(f"Riga {row_number}: tipo_record '{record_type}' non supportato")
            outcome.skipped = True
            return outcome

        if not options.skip_validation:
            outcome.warnings.extend(
                f"Riga {row_number}: {problem}" for problem in validate_record(record, record_type)
            )

        agent_id = None if options.skip_association else self._resolve_agent(session, record)
        actor = created_by or agent_id

        if record_type == RecordType.CLIENTE_AZIENDA:
            outcome.warnings.append(
                f"Riga {row_number}: import clienti_azienda non implementato in questa versione"
            )
            return outcome

        customer_id = self._ensure_customer(session, row_number, record, options, actor, agent_id, outcome)

        if record_type == RecordType.CLIENTE_PRIVATO:
            kinds = [kind for kind in (LUCE, GAS) if first_value(record, kind.trigger_fields)]
        else:
            kinds = [CONTRACT_KINDS[record_type]]
        for kind in kinds:
            self._write_contract(session, row_number, record, kind, customer_id, options, actor, outcome)
        return outcome

    def _ensure_customer(
        self,
        session: Session,
        row_number: int,
        record: ImportRecord,
        options: ImportOptions,
        actor: str | None,
        agent_id: str | None,
        outcome: RowOutcome,
    ) -> str:
        existing = find_customer(session, record)
        if not existing.found:
            customer_id = insert_customer(
                session,
                record,
                created_by=actor,
                assigned_agent_id=agent_id,
                dry_run=options.dry_run,
                consent=self._consent,
            )
            outcome.inserted.clienti_privati += 1
            return customer_id

        customer_id = existing.value
        if agent_id and not options.dry_run:
            try:
                changed = assign_agent(session, customer_id, agent_id)
            except SQLAlchemyError as exc:
                outcome.warnings.append(
                    f"Riga {row_number}: impossibile aggiornare assegnazione agente ({exc})"
                )
            else:
                if changed is None:
                    logger.info(f"Row {row_number}: assigned_agent_id column missing, skip update")
                else:
                    logger.debug(f"Row {row_number}: assigned agent {agent_id} to customer {customer_id}")
        return customer_id

    def _write_contract(
        self,
        session: Session,
        row_number: int,
        record: ImportRecord,
        kind: ContractKind,
        customer_id: str,
        options: ImportOptions,
        actor: str | None,
        outcome: RowOutcome,
    ) -> None:
        written = upsert_contract(
            session,
            record,
            kind,
            customer_id=customer_id,
            created_by=actor,
            dry_run=options.dry_run,
            default_state=self._default_contract_state,
        )
        if written.action.is_insert:
            setattr(outcome.inserted, kind.table, getattr(outcome.inserted, kind.table) + 1)
        else:
            outcome.warnings.append(
                f"Riga {row_number}: {kind.name} {written.id} aggiornato ({written.action.value})"
            )

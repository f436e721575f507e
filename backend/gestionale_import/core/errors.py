"""Exceptions raised by the import pipeline."""


class ImportPipelineError(Exception):
    """Base class for import pipeline failures."""


class SchemaCompatibilityError(ImportPipelineError):
    """The live table offers no usable destination column for an insert."""


class JobNotFoundError(ImportPipelineError, LookupError):
    """No import job is known under the requested id."""


class ImportCancelledError(ImportPipelineError):
    """The job was cancelled while processing rows."""

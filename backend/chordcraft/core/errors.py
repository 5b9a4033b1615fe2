from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error the processing pipeline raises on purpose."""


class ValidationError(PipelineError):
    """Bad format, size or source identifier. Raised before any processing starts."""

    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class AcquisitionError(PipelineError):
    """Every download strategy failed. Keeps the (strategy, message) pairs."""

    def __init__(self, message: str, failures: list[tuple[str, str]] | None = None):
        self.failures = list(failures or [])
        if self.failures:
            detail = "; ".join(f"{name}: {msg}" for name, msg in self.failures)
            message = f"{message} ({detail})"
        super().__init__(message)


class ConversionError(PipelineError):
    """Media tool failure while normalizing or sampling audio."""


class MediaToolError(ConversionError):
    """A required external binary is missing. Configuration problem, never retried."""


class AnalysisError(PipelineError):
    """A single analysis stage failed. Absorbed by the orchestrator."""


class CacheError(PipelineError):
    """Result store unavailable. Absorbed by the orchestrator."""


class JobNotFoundError(PipelineError):
    pass


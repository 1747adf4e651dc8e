"""
Error Taxonomy
Domain errors raised by the generation pipeline and its collaborators
"""

from typing import Any, Dict, Optional


class CertForgeError(Exception):
    """Base class for all domain errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(CertForgeError):
    """Malformed or missing input, reported before any rendering starts"""


class NotFoundError(CertForgeError):
    """Template, version, file or job does not exist"""


class StorageError(CertForgeError):
    """Binary storage backend failure"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, conflict: bool = False):
        super().__init__(message, details)
        self.conflict = conflict


class PerItemRenderError(CertForgeError):
    """One recipient failed; recorded against its input index and never propagated past the batch loop"""

    def __init__(self, index: int, message: str):
        super().__init__(message, {"index": index})
        self.index = index

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "error": self.message}


class PipelineError(CertForgeError):
    """Failure outside the per-item loop; moves the job to `failed`"""

    kind = "pipeline"


class BatchTimeoutError(PipelineError):
    """The batch deadline passed before every recipient was processed"""

    kind = "timeout"

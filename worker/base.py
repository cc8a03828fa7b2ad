"""
Pipeline error taxonomy and shared worker helpers
"""
from typing import Dict, Optional


class ProcessingError(Exception):
    """Base exception for pipeline errors."""
    pass


class UnreadableMediaError(ProcessingError):
    """Source is missing, not decodable, or has no video stream."""
    pass


class EncoderBackendFailure(ProcessingError):
    """The hardware encoder failed; the rendition may be retried in software."""

    def __init__(self, label: str, message: str):
        super().__init__(f"{label}: {message}")
        self.label = label
        self.message = message


class RenditionFailed(ProcessingError):
    """A rendition failed permanently."""

    def __init__(self, label: str, message: str):
        super().__init__(f"{label}: {message}")
        self.label = label
        self.message = message


class NoRenditionsProducedError(ProcessingError):
    """Every rendition of the ladder failed."""

    def __init__(self, failures: Optional[Dict[str, str]] = None):
        self.failures = dict(failures or {})
        detail = "; ".join(f"{label}: {error}" for label, error in self.failures.items())
        super().__init__(f"No renditions produced ({detail})" if detail else "No renditions produced")


class PublishError(ProcessingError):
    """Uploading the packaged tree or recording its metadata failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key

from __future__ import annotations


class ProcessingError(RuntimeError):
    """Raised when a batch stage fails in a way that must stop the batch."""

    pass


class ConversionError(ProcessingError):
    """chdman reported an error line or exited non-zero while creating an archive."""

    pass


class InspectionError(ProcessingError):
    """chdman wrote to stderr while querying archive info."""

    pass


class DiscoveryError(ProcessingError):
    """A source image could not be catalogued (e.g. no identifier in the image).

    Collected per item during scans; never aborts a scan.
    """

    def __init__(self, source_path: str, message: str) -> None:
        super().__init__(f"{message}: {source_path}")
        self.source_path = source_path


class ManifestParseError(ValueError):
    pass

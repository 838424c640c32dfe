from __future__ import annotations


class CpeDbError(Exception):
    """Base class for every error raised by cpedb_aggregator."""


class ConfigError(CpeDbError, RuntimeError):
    pass


class FetchError(CpeDbError):
    """A window could not be fetched; the window's data is lost for this run."""


class UpstreamTransportError(FetchError):
    pass


class UpstreamStatusError(FetchError):
    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"non-200 response {status_code} for {url}")
        self.status_code = status_code
        self.url = url


class UpstreamDecodeError(FetchError):
    pass


class InvalidIdentifier(CpeDbError, ValueError):
    def __init__(self, cpe_name: str) -> None:
        super().__init__(f"invalid CPE string format: {cpe_name!r}")
        self.cpe_name = cpe_name


class StorageError(CpeDbError):
    """Filesystem failure during the write phase. Always fatal for the run."""

class SiteAuditError(Exception):
    """Base class for errors surfaced to callers of the audit pipeline."""


class SiteUnreachableError(SiteAuditError):
    """The target site's homepage could not be reached at all."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Site unreachable: {url} ({reason})")


class OverrideStoreError(SiteAuditError):
    """The override persistence backend is unavailable or rejected an operation."""

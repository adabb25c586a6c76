class SyncError(Exception):
    """Base class for errors raised by the sync engine."""


class InvalidLocator(SyncError):
    """A discovered link could not be turned into an absolute URL."""

    def __init__(self, href: str, reason: str = ""):
        self.href = href
        message = f"invalid link {href!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class UnclassifiableLocator(SyncError):
    """A link could not be turned into a resource at all."""


class MissingFileMetadata(SyncError):
    """A file download link was found without the extension/version markup next to it."""


class PageStructureError(SyncError):
    """A fetched page lacks markup the scraper relies on."""


class SessionExpired(SyncError):
    """The site redirected to the login page."""


class IliasError(SyncError):
    """The site rendered an error alert instead of the requested page."""

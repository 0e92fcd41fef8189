"""Exception taxonomy for the conversion pipeline.

Validation problems subclass :class:`ValueError` and runtime failures subclass
:class:`RuntimeError`, so callers can keep catching the builtin types.
"""


class SiteScribeError(Exception):
    """Base class for all SiteScribe errors."""


class UnsupportedProtocolError(SiteScribeError, ValueError):
    """The root URL does not use http or https."""


class RendererInitializationError(SiteScribeError, RuntimeError):
    """The headless browser could not be started."""


class PageFetchError(SiteScribeError, RuntimeError):
    """A single page could not be rendered (navigation error or timeout)."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class RootUnreachableError(PageFetchError):
    """The root URL of a crawl could not be rendered."""


class PageLinkDiscoveryError(SiteScribeError, RuntimeError):
    """A link found during discovery could not be probed for its title."""


class OutputWriteError(SiteScribeError, RuntimeError):
    """Writing a generated file to disk failed."""


class InvalidTransitionError(SiteScribeError, RuntimeError):
    """A job was asked to move to a state it cannot reach from its current one."""

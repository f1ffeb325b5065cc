"""Custom exception classes for the application."""


class PriceWatchException(Exception):
    """Base exception for all PriceWatch errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class InvalidURLError(PriceWatchException):
    """Raised when a product URL cannot be parsed."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid URL: {url}")


class FetchError(PriceWatchException):
    """Raised when a document could not be retrieved in a given mode."""

    def __init__(self, mode: str, url: str, reason: str):
        self.mode = mode
        self.url = url
        self.reason = reason
        super().__init__(f"{mode} fetch failed for {url}: {reason}")


class NoSelectorError(PriceWatchException):
    """Raised when no price selector can be resolved for a domain."""

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"No price selector available for domain: {domain}")


class ParseError(PriceWatchException):
    """Raised when an embedded structured-data block is malformed."""


class NotFoundError(PriceWatchException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class DuplicateMonitorError(PriceWatchException):
    """Raised when a URL is already being tracked."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Product already being tracked: {url}")

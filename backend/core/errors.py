"""Error taxonomy for ingestion, confluence and storage."""


class JewelError(Exception):
    """Base class for service errors."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class InvalidPayload(JewelError):
    """Inbound event is missing required fields or is not an object."""


class InvalidTimestamp(JewelError):
    """Inbound event carries an explicit timestamp that cannot be parsed."""


class StorageUnavailable(JewelError):
    """The signal store failed or timed out. Never retried here."""

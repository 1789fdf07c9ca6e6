"""Exception types raised by the ingestion pipeline."""


class GatewayError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(GatewayError):
    """Transport payload could not be parsed."""


class DecryptionError(GatewayError):
    """Whole-payload AES decryption failed."""


class ValidationError(GatewayError):
    """Event is missing devId or carries a non-numeric type."""


class StorageError(GatewayError):
    """A store operation failed."""


class NotificationError(GatewayError):
    """A notification channel rejected or failed a delivery."""

    def __init__(self, channel: str, reason: str):
        super().__init__(f"{channel}: {reason}")
        self.channel = channel
        self.reason = reason

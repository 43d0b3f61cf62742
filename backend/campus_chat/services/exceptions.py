"""Error taxonomy for the messaging services."""


class MessagingError(Exception):
    """Base class for errors surfaced to callers with a machine-readable kind."""

    kind = "messaging_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InvalidArgument(MessagingError):
    """Malformed or empty identifier or message body."""

    kind = "invalid_argument"


class PersistenceFailure(MessagingError):
    """Storage write or read failed."""

    kind = "persistence_failure"

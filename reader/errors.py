"""Error taxonomy shared by the store, normaliser and view layer."""


class ReaderError(Exception):
    """Base class for every error raised by the reader core."""


class TransportError(ReaderError):
    """The network or the content store could not be reached."""


class NotFound(ReaderError):
    """The store returned nothing for a requested id."""

    def __init__(self, url: str, kind: str = "Note") -> None:
        super().__init__(f"{kind} not found: {url}")
        self.url = url
        self.kind = kind


class DiscriminationError(ReaderError):
    """An Activity was supplied where a Note was expected."""

    def __init__(self, message: str = "Expected a Note but received an Activity") -> None:
        super().__init__(message)


class MalformedRecord(ReaderError):
    """A record is missing a required field."""

    def __init__(self, field: str, record_id: str = "") -> None:
        where = f" in {record_id}" if record_id else ""
        super().__init__(f"Record is missing required field {field!r}{where}")
        self.field = field
        self.record_id = record_id

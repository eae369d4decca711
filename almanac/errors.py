"""Error kinds raised by the event store and query layer."""


class AlmanacError(Exception):
    """Base class for all catalog errors."""


class ValidationError(AlmanacError):
    """Caller input is malformed (bad id, missing field, empty query)."""


class NotFoundError(AlmanacError):
    """No event exists with the requested id."""

    def __init__(self, event_id: int):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class StorageError(AlmanacError):
    """The underlying database could not be opened, read, or written."""

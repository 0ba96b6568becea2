"""Error taxonomy shared by the repositories and the HTTP layer."""


class ContactsError(Exception):
    """Base class for failures surfaced to API callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ContactsError):
    """Missing or malformed input."""


class NotFoundError(ContactsError):
    """No row matched, including rows owned by someone else."""


class StorageError(ContactsError):
    """The database rejected or failed a statement."""

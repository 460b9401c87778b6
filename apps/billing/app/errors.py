"""Failure taxonomy shared by the billing engine, stores and HTTP layer."""


class BillingError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BillingError):
    """Bad or missing input; user-correctable."""


class NotFound(BillingError):
    pass


class StorageError(BillingError):
    """The persistence backend failed. The message is for logs, not callers."""


class Timeout(StorageError):
    """A store call exceeded its time bound."""

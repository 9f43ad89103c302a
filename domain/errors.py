class DomainError(Exception):
    """Business rule violation raised by domain and repository code."""


class NotFoundError(DomainError):
    pass


class StorageError(DomainError):
    """Base class for failures of the replicated store itself."""


class StoreClosedError(StorageError):
    pass


class StoreUnavailableError(StorageError):
    """Writes are refused because the primary store could not be recovered."""


class UnrecoverableStoreError(StorageError):
    """Primary is corrupted and no replica could be promoted."""


class RecoveryInProgressError(StorageError):
    pass

# coding: utf-8
"""
Exceptions raised by the ledger for requests the caller can recover from.

Every fallible ledger call raises one of the LedgerError subclasses below, carrying
enough context to tell a human what went wrong.  Internal bookkeeping faults are a
different matter; cf. inventory.functions.ConservationError.
"""

__all__ = [
    "LedgerError",
    "SnapshotIOError",
    "AccountAlreadyExists",
    "AccountDoesNotExist",
    "PendingOperationNotFound",
    "PendingDepositNotFound",
    "PendingWithdrawalNotFound",
    "PendingTransferNotFound",
    "PendingSwapNotFound",
    "InsufficientBalance",
    "OpenOrderNotFound",
    "LotSwapFailed",
    "LotMoveFailed",
    "LotDeleteFailed",
    "ImportFailed",
]


class LedgerError(Exception):
    """ Base class for Exceptions defined in this module """


class SnapshotIOError(LedgerError):
    """Exception raised when the ledger snapshot can't be read or written.

    Attributes:
        path: filesystem path of the snapshot.
        msg: Error message detailing the failure.
    """

    def __init__(self, path: str, msg: str) -> None:
        self.path = path
        self.msg = msg
        super(SnapshotIOError, self).__init__(f"{path}: {msg}")


class AccountAlreadyExists(LedgerError):
    def __init__(self, address: str, token: str) -> None:
        self.address = address
        self.token = token
        super(AccountAlreadyExists, self).__init__(
            f"Account already exists: {address} ({token})"
        )


class AccountDoesNotExist(LedgerError):
    def __init__(self, address: str, token: str) -> None:
        self.address = address
        self.token = token
        super(AccountDoesNotExist, self).__init__(
            f"Account does not exist: {address} ({token})"
        )


class PendingOperationNotFound(LedgerError):
    """No unresolved pending operation matches the idempotency key.

    Attributes:
        key: transaction signature, withdrawal tag, etc.
    """

    operation = "operation"

    def __init__(self, key: str) -> None:
        self.key = key
        super(PendingOperationNotFound, self).__init__(
            f"Pending {self.operation} not found: {key}"
        )


class PendingDepositNotFound(PendingOperationNotFound):
    operation = "deposit"


class PendingWithdrawalNotFound(PendingOperationNotFound):
    operation = "withdrawal"


class PendingTransferNotFound(PendingOperationNotFound):
    operation = "transfer"


class PendingSwapNotFound(PendingOperationNotFound):
    operation = "swap"


class InsufficientBalance(LedgerError):
    """Extraction exceeds what an account holds.

    Attributes:
        address: account address.
        token: account token.
        amount: amount requested.
        available: amount eligible for extraction.
    """

    def __init__(self, address: str, token: str, amount: int, available: int) -> None:
        self.address = address
        self.token = token
        self.amount = amount
        self.available = available
        super(InsufficientBalance, self).__init__(
            f"Insufficient balance in {address} ({token}): "
            f"requested {amount}, available {available}"
        )


class OpenOrderNotFound(LedgerError):
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super(OpenOrderNotFound, self).__init__(f"Open order not found: {order_id}")


class _RepairFailed(LedgerError):
    """Base for administrative repair failures.

    Attributes:
        reason: human-readable explanation.
    """

    operation = "Repair"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super(_RepairFailed, self).__init__(f"{self.operation} failed: {reason}")


class LotSwapFailed(_RepairFailed):
    operation = "Lot swap"


class LotMoveFailed(_RepairFailed):
    operation = "Lot move"


class LotDeleteFailed(_RepairFailed):
    operation = "Lot delete"


class ImportFailed(_RepairFailed):
    operation = "Import"

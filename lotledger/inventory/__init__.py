# coding: utf-8
from .types import (
    EpochReward,
    TransactionAcquisition,
    ExchangeAcquisition,
    NotAvailable,
    FiatAcquisition,
    SwapAcquisition,
    AcquisitionKind,
    LotAcquisition,
    Lot,
    ExchangeDisposal,
    SwapDisposal,
    WithdrawalFee,
    FiatDisposal,
    OtherDisposal,
    DisposalKind,
    DisposedLot,
    TrackedAccount,
    PendingDeposit,
    PendingWithdrawal,
    PendingTransfer,
    PendingSwap,
    PendingType,
    OpenOrder,
    TaxRate,
    SweepStakeAccount,
)
from .errors import (
    LedgerError,
    SnapshotIOError,
    AccountAlreadyExists,
    AccountDoesNotExist,
    PendingOperationNotFound,
    PendingDepositNotFound,
    PendingWithdrawalNotFound,
    PendingTransferNotFound,
    PendingSwapNotFound,
    InsufficientBalance,
    OpenOrderNotFound,
    LotSwapFailed,
    LotMoveFailed,
    LotDeleteFailed,
    ImportFailed,
)
from .api import Ledger, Pocket, open_ledger
from .predicates import PredicateType, lotNumberIn, acquiredBy
from .sortkeys import (
    SortType,
    sort_oldest,
    sort_cheapest,
    sort_dearest,
    FIFO,
    LIFO,
    LOWEST_BASIS,
    HIGHEST_BASIS,
)
from .functions import (
    ConservationError,
    select_lots,
    part_units,
    merge_lots,
    check_conservation,
)

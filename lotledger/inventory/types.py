# coding: utf-8
"""
Data structures for tracking the cost history of crypto assets.

Each Lot tracks a quantity of a single asset acquired at a single point in time at a
single cost basis.  Lots are held by TrackedAccounts, each identified by an
(address, token) pair.  While an external operation (a blockchain transfer, an
exchange withdrawal, a swap) is in flight, the Lots it moves are held by exactly one
pending record instead - never by an account and a pending record at once.

Lot amounts are integers denominated in the asset's smallest unit; prices are
Decimal amounts of quote currency per whole unit of the asset.

A Lot's acquisition record (date, price, kind) is its identity for cost-basis
purposes: two Lots in the same account with equal acquisition records are the same
Lot, and are merged.  When a Lot leaves the ledger for good it becomes a DisposedLot,
which binds the Lot to its disposal date, realized price and reason.

To compute realized capital gains from a DisposedLot:
    * Proceeds - ui_amount(disposed.lot.amount) * disposed.price
    * Basis - ui_amount(disposed.lot.amount) * disposed.lot.acquisition.price
    * Holding period start - disposed.lot.acquisition.when
    * Holding period end - disposed.when

All records here are immutable.  The ledger reflects every change in a new record.
"""

__all__ = [
    "EpochReward",
    "TransactionAcquisition",
    "ExchangeAcquisition",
    "NotAvailable",
    "FiatAcquisition",
    "SwapAcquisition",
    "AcquisitionKind",
    "LotAcquisition",
    "Lot",
    "ExchangeDisposal",
    "SwapDisposal",
    "WithdrawalFee",
    "FiatDisposal",
    "OtherDisposal",
    "DisposalKind",
    "DisposedLot",
    "TrackedAccount",
    "PendingDeposit",
    "PendingWithdrawal",
    "PendingTransfer",
    "PendingSwap",
    "PendingType",
    "OpenOrder",
    "TaxRate",
    "SweepStakeAccount",
]


# stdlib imports
from dataclasses import dataclass
from decimal import Decimal
import datetime as _datetime
from typing import NamedTuple, Tuple, Optional, Union


# local imports
from lotledger.models import Exchange, OrderSide, LotSelectionMethod, PendingState


#  Acquisition/disposal kinds are frozen dataclasses rather than NamedTuples, so that
#  variants with equal field values (e.g. NotAvailable() and FiatAcquisition()) don't
#  compare equal.
@dataclass(frozen=True)
class EpochReward:
    """Staking reward credited at an epoch boundary."""

    epoch: int
    slot: int


@dataclass(frozen=True)
class TransactionAcquisition:
    """Asset received by an on-chain transaction."""

    slot: int
    signature: str


@dataclass(frozen=True)
class ExchangeAcquisition:
    """Asset bought by an exchange order fill."""

    exchange: Exchange
    pair: str
    order_id: str


@dataclass(frozen=True)
class NotAvailable:
    """Provenance unknown; booked as income at the recorded price."""


@dataclass(frozen=True)
class FiatAcquisition:
    """Asset bought directly with fiat."""


@dataclass(frozen=True)
class SwapAcquisition:
    """Asset received from a token swap.

    Attributes:
        signature: transaction signature of the swap.
        token: asset given up in the swap.
        amount: amount of `token` given up.
    """

    signature: str
    token: str
    amount: int


AcquisitionKind = Union[
    EpochReward,
    TransactionAcquisition,
    ExchangeAcquisition,
    NotAvailable,
    FiatAcquisition,
    SwapAcquisition,
]


class LotAcquisition(NamedTuple):
    """When, at what cost, and how a Lot was acquired.

    Attributes:
        when: acquisition date; starts the holding period.
        price: per-unit cost basis in quote currency.
        kind: one of the AcquisitionKind variants.
    """

    when: _datetime.date
    price: Decimal
    kind: AcquisitionKind


class Lot(NamedTuple):
    """Cost basis/holding data container for a quantity of one asset.

    Attributes:
        lot_number: ledger-unique identifier; never reused.
        acquisition: the LotAcquisition shared by every unit of the Lot.
        amount: quantity in the asset's smallest unit (positive while held).
    """

    lot_number: int
    acquisition: LotAcquisition
    amount: int


@dataclass(frozen=True)
class ExchangeDisposal:
    """Sold by an exchange order fill.

    Attributes:
        exchange: where the order filled.
        pair: market symbol, e.g. "SOLUSD".
        order_id: exchange order identifier.
        fee: optional (amount, currency) charged for the fill.
    """

    exchange: Exchange
    pair: str
    order_id: str
    fee: Optional[Tuple[Decimal, str]] = None


@dataclass(frozen=True)
class SwapDisposal:
    """Given up in a token swap.

    Attributes:
        signature: transaction signature of the swap.
        token: asset received in the swap.
        amount: amount of `token` received.
    """

    signature: str
    token: str
    amount: int


@dataclass(frozen=True)
class WithdrawalFee:
    """Consumed by an exchange withdrawal fee."""


@dataclass(frozen=True)
class FiatDisposal:
    """Converted to fiat, e.g. a fiat-fungible stablecoin deposited to an exchange."""


@dataclass(frozen=True)
class OtherDisposal:
    """Spent for a reason the caller describes."""

    description: str


DisposalKind = Union[
    ExchangeDisposal,
    SwapDisposal,
    WithdrawalFee,
    FiatDisposal,
    OtherDisposal,
]


class DisposedLot(NamedTuple):
    """Binds a Lot to the event that removed it from the ledger.

    Attributes:
        lot: the Lot as it was when disposed.
        when: disposal date; ends the holding period.
        price: per-unit realized price in quote currency.
        kind: one of the DisposalKind variants.
        token: asset of the disposed Lot.
    """

    lot: Lot
    when: _datetime.date
    price: Decimal
    kind: DisposalKind
    token: str


class TrackedAccount(NamedTuple):
    """The (address, token) pair owning a collection of Lots.

    Invariant: last_update_balance == sum(lot.amount for lot in lots)

    Attributes:
        address: on-chain address (or exchange deposit address).
        token: asset symbol.
        description: free text for humans.
        last_update_epoch: last externally-observed sync point.
        last_update_balance: cached balance in the asset's smallest unit.
        lots: Lots held, sorted by acquisition date.
        no_sync: if True, external sync loops skip the account.
    """

    address: str
    token: str
    description: str
    last_update_epoch: int
    last_update_balance: int
    lots: Tuple[Lot, ...] = ()
    no_sync: bool = False


class PendingDeposit(NamedTuple):
    """Lots in flight from a wallet to an exchange deposit address.

    Attributes:
        exchange: receiving exchange.
        deposit_address: exchange deposit address (destination account address).
        signature: deposit transaction signature; the idempotency key.
        last_valid_block_height: the transaction can't land after this height.
        from_address: source account address.
        token: asset deposited.
        amount: total deposited.
        lots: Lots extracted from the source account.
        state: PendingState of the saga.
    """

    exchange: Exchange
    deposit_address: str
    signature: str
    last_valid_block_height: int
    from_address: str
    token: str
    amount: int
    lots: Tuple[Lot, ...]
    state: PendingState = PendingState.PENDING


class PendingWithdrawal(NamedTuple):
    """Lots in flight from an exchange to a wallet.

    The withdrawal fee is withheld up front: `lots` sum to `amount - fee` and reach
    the destination, while `fee_lots` sum to `fee` and are disposed on confirmation.

    Attributes:
        exchange: sending exchange.
        tag: exchange withdrawal identifier; the idempotency key.
        from_address: exchange deposit address (source account address).
        to_address: destination account address.
        token: asset withdrawn.
        amount: total debited by the exchange, fee included.
        fee: portion of `amount` consumed by the exchange.
        lots: Lots bound for the destination account.
        fee_lots: Lots consumed by the fee.
        state: PendingState of the saga.
    """

    exchange: Exchange
    tag: str
    from_address: str
    to_address: str
    token: str
    amount: int
    fee: int
    lots: Tuple[Lot, ...]
    fee_lots: Tuple[Lot, ...] = ()
    state: PendingState = PendingState.PENDING


class PendingTransfer(NamedTuple):
    """Lots in flight between two tracked accounts of the same token.

    Attributes:
        signature: transfer transaction signature; the idempotency key.
        last_valid_block_height: the transaction can't land after this height.
        from_address: source account address.
        to_address: destination account address.
        token: asset transferred.
        lots: Lots extracted from the source account.
        state: PendingState of the saga.
    """

    signature: str
    last_valid_block_height: int
    from_address: str
    to_address: str
    token: str
    lots: Tuple[Lot, ...]
    state: PendingState = PendingState.PENDING


class PendingSwap(NamedTuple):
    """Lots offered in a swap of one token for another at a single address.

    The amount actually swapped out, and the amount swapped in, are only known once
    the transaction lands; `lot_selection_method` picks which held Lots were used.

    Attributes:
        signature: swap transaction signature; the idempotency key.
        last_valid_block_height: the transaction can't land after this height.
        address: owner of both the source and destination accounts.
        from_token: asset given up.
        from_token_price: observed price of `from_token` before the swap.
        to_token: asset received.
        to_token_price: observed price of `to_token` after the swap.
        lot_selection_method: LotSelectionMethod applied on confirmation.
        lots: Lots extracted from the (address, from_token) account.
        state: PendingState of the saga.
    """

    signature: str
    last_valid_block_height: int
    address: str
    from_token: str
    from_token_price: Decimal
    to_token: str
    to_token_price: Decimal
    lot_selection_method: LotSelectionMethod
    lots: Tuple[Lot, ...]
    state: PendingState = PendingState.PENDING


PendingType = Union[PendingDeposit, PendingWithdrawal, PendingTransfer, PendingSwap]


class OpenOrder(NamedTuple):
    """An exchange limit order that hasn't closed yet.

    Sell orders reserve the Lots being offered; buy orders own nothing yet and carry
    only the target `amount`.

    Attributes:
        exchange: exchange holding the order.
        pair: market symbol, e.g. "SOLUSD".
        side: OrderSide.BUY or OrderSide.SELL.
        price: limit price in quote currency per whole unit.
        order_id: exchange order identifier.
        deposit_address: exchange deposit address of the traded token's account.
        token: asset bought/sold.
        creation_time: date the order was placed.
        amount: order size in the asset's smallest unit.
        lots: for sell orders, the reserved Lots.
    """

    exchange: Exchange
    pair: str
    side: OrderSide
    price: Decimal
    order_id: str
    deposit_address: str
    token: str
    creation_time: _datetime.date
    amount: int
    lots: Tuple[Lot, ...] = ()


class TaxRate(NamedTuple):
    """Informational tax rates; never applied inside the ledger."""

    income: Decimal
    short_term_gain: Decimal
    long_term_gain: Decimal


class SweepStakeAccount(NamedTuple):
    """Stake account that automation loops sweep rewards into."""

    address: str
    stake_authority: str

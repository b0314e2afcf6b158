# coding: utf-8
"""Flatten ledger holdings and disposals into tablib.Dataset containers for export.

Held Lots are reported as FlatLot rows; DisposedLots as FlatGain rows.  Values are
converted from the asset's smallest unit to whole units, priced in the configured
quote currency, and rounded for display only when export()ed.

Every site that decides whether a Lot is income, or what a disposal cost in fees,
dispatches on the acquisition/disposal kind with functools.singledispatch.  The
fallback implementations raise, so a new kind can't slip through a report unpriced.

This module doesn't perform the actual writing; callers handle that by working with
the tablib.Dataset instances returned by these functions.
"""
__all__ = [
    "FlatLot",
    "FlatGain",
    "is_income",
    "income",
    "disposal_fee",
    "flatten_accounts",
    "flatten_lot",
    "export_flatlot",
    "flatten_disposed",
    "flatten_gain",
    "export_flatgain",
]

# stdlib imports
from decimal import Decimal
import datetime as _datetime
import functools
import itertools
from typing import Iterable, NamedTuple, Optional, Tuple

# 3rd party imports
import tablib

# local imports
from lotledger import tokens, utils
from lotledger.config import CONFIG
from .types import (
    Lot,
    DisposedLot,
    TrackedAccount,
    EpochReward,
    TransactionAcquisition,
    ExchangeAcquisition,
    NotAvailable,
    FiatAcquisition,
    SwapAcquisition,
    ExchangeDisposal,
    SwapDisposal,
    WithdrawalFee,
    FiatDisposal,
    OtherDisposal,
)


class FlatLot(NamedTuple):
    """Un-nested container for held Lot data, suitable for serialization.

    Order of attributes defines column order of serialized data.

    Attributes:
        address: account address holding the Lot.
        token: asset symbol.
        lot_number: ledger lot number.
        acquired: acquisition date.
        kind: name of the acquisition kind.
        units: whole units of the asset.
        price: per-unit cost basis.
        cost: total cost basis.
        income: portion of cost basis that was ordinary income.
    """

    address: Optional[str]
    token: str
    lot_number: Optional[int]
    acquired: Optional[_datetime.date]
    kind: Optional[str]
    units: Decimal
    price: Optional[Decimal]
    cost: Decimal
    income: Decimal


class FlatGain(NamedTuple):
    """Un-nested container for DisposedLot data, suitable for serialization.

    Order of attributes defines column order of serialized data.

    Attributes:
        token: asset symbol.
        lot_number: ledger lot number.
        acquired: acquisition date; starts the holding period.
        disposed: disposal date; ends the holding period.
        kind: name of the disposal kind.
        units: whole units of the asset.
        proceeds: realized amount in quote currency.
        cost: cost basis in quote currency.
        fee: fee charged in quote currency.
        gain: proceeds - cost - fee.
        longterm: if True, signals long-term treatment for capital gain/loss.
    """

    token: str
    lot_number: Optional[int]
    acquired: Optional[_datetime.date]
    disposed: Optional[_datetime.date]
    kind: Optional[str]
    units: Decimal
    proceeds: Decimal
    cost: Decimal
    fee: Decimal
    gain: Decimal
    longterm: Optional[bool]


###############################################################################
# ACQUISITION KINDS
###############################################################################
@functools.singledispatch
def is_income(kind) -> bool:
    """True if acquiring a Lot of this kind realized ordinary income."""
    raise ValueError(f"Unknown acquisition kind {kind!r}")


@is_income.register(EpochReward)
@is_income.register(NotAvailable)
def _is_income(kind) -> bool:
    return True


@is_income.register(TransactionAcquisition)
@is_income.register(ExchangeAcquisition)
@is_income.register(FiatAcquisition)
@is_income.register(SwapAcquisition)
def _is_purchase(kind) -> bool:
    return False


def income(lot: Lot, token: str) -> Decimal:
    """Ordinary income realized on acquiring a Lot, in quote currency."""
    if not is_income(lot.acquisition.kind):
        return Decimal(0)
    return tokens.ui_amount(token, lot.amount) * lot.acquisition.price


###############################################################################
# DISPOSAL KINDS
###############################################################################
@functools.singledispatch
def disposal_fee(kind, quote_currency: str) -> Decimal:
    """Fee charged on a disposal, in quote currency.

    Fees charged in any other currency aren't converted; they're reported as zero.
    """
    raise ValueError(f"Unknown disposal kind {kind!r}")


@disposal_fee.register
def _exchange_fee(kind: ExchangeDisposal, quote_currency: str) -> Decimal:
    if kind.fee is None:
        return Decimal(0)
    amount, currency = kind.fee
    return amount if currency == quote_currency else Decimal(0)


@disposal_fee.register(SwapDisposal)
@disposal_fee.register(WithdrawalFee)
@disposal_fee.register(FiatDisposal)
@disposal_fee.register(OtherDisposal)
def _no_fee(kind, quote_currency: str) -> Decimal:
    return Decimal(0)


###############################################################################
# HELD LOTS
###############################################################################
def flatten_accounts(
    accounts: Iterable[TrackedAccount], *, consolidate: Optional[bool] = False
) -> tablib.Dataset:
    """Convert TrackedAccounts' Lots into tablib.Dataset prepared for serialization.

    Columns are the fields of FlatLot; rows represent Lots.

    Args:
        accounts: TrackedAccount instances.
        consolidate: if True, sum all Lots for each token across accounts.
    """
    flatlots = [
        flatten_lot(account, lot) for account in accounts for lot in account.lots
    ]

    if consolidate:

        def keyfunc(flatlot):
            return flatlot.token

        def accum(flatlot0, flatlot1):
            return FlatLot(
                address=None,
                token=flatlot0.token,
                lot_number=None,
                acquired=None,
                kind=None,
                units=flatlot0.units + flatlot1.units,
                price=None,
                cost=flatlot0.cost + flatlot1.cost,
                income=flatlot0.income + flatlot1.income,
            )

        flatlots = [
            functools.reduce(accum, group)
            for token, group in itertools.groupby(
                sorted(flatlots, key=keyfunc), key=keyfunc
            )
        ]

    dataset = tablib.Dataset(headers=FlatLot._fields)
    for flatlot in flatlots:
        dataset.append(export_flatlot(flatlot))
    return dataset


def flatten_lot(account: TrackedAccount, lot: Lot) -> FlatLot:
    units = tokens.ui_amount(account.token, lot.amount)
    return FlatLot(
        address=account.address,
        token=account.token,
        lot_number=lot.lot_number,
        acquired=lot.acquisition.when,
        kind=type(lot.acquisition.kind).__name__,
        units=units,
        price=lot.acquisition.price,
        cost=units * lot.acquisition.price,
        income=income(lot, account.token),
    )


def export_flatlot(flatlot: FlatLot) -> Tuple:
    """Convert FlatLot into a row (tuple) ready for serialization.

    Do the minimum work such that the values look right when tablib.Dataset
    type-converts them during serialization.
    """
    attrs = flatlot._asdict()
    attrs.update(
        {
            "acquired": flatlot.acquired.isoformat() if flatlot.acquired else None,
            "cost": utils.round_decimal(flatlot.cost, power=-2),
            "income": utils.round_decimal(flatlot.income, power=-2),
        }
    )
    return tuple(attrs.values())


###############################################################################
# DISPOSED LOTS
###############################################################################
def flatten_disposed(
    disposed_lots: Iterable[DisposedLot],
    *,
    begin: Optional[_datetime.date] = None,
    end: Optional[_datetime.date] = None,
    consolidate: Optional[bool] = False,
) -> tablib.Dataset:
    """Convert DisposedLots into tablib.Dataset prepared for serialization.

    Columns are the fields of FlatGain; rows represent DisposedLots.

    Args:
        disposed_lots: DisposedLot instances.
        begin: report disposals on or after this date (if None, from the beginning).
        end: report disposals before this date (if None, through the end).
        consolidate: if True, sum all disposals for each token.
    """
    quote_currency = CONFIG.quote_currency
    flatgains = [
        flatten_gain(disposed, quote_currency)
        for disposed in sorted(disposed_lots, key=lambda dl: dl.when)
        if (begin is None or disposed.when >= begin)
        and (end is None or disposed.when < end)
    ]

    if consolidate:

        def keyfunc(flatgain):
            return flatgain.token

        def accum(flatgain0, flatgain1):
            return FlatGain(
                token=flatgain0.token,
                lot_number=None,
                acquired=None,
                disposed=None,
                kind=None,
                units=flatgain0.units + flatgain1.units,
                proceeds=flatgain0.proceeds + flatgain1.proceeds,
                cost=flatgain0.cost + flatgain1.cost,
                fee=flatgain0.fee + flatgain1.fee,
                gain=flatgain0.gain + flatgain1.gain,
                longterm=None,
            )

        flatgains = [
            functools.reduce(accum, group)
            for token, group in itertools.groupby(
                sorted(flatgains, key=keyfunc), key=keyfunc
            )
        ]

    dataset = tablib.Dataset(headers=FlatGain._fields)
    for flatgain in flatgains:
        dataset.append(export_flatgain(flatgain))
    return dataset


def flatten_gain(disposed: DisposedLot, quote_currency: str) -> FlatGain:
    """Construct an unnested intermediate FlatGain from a DisposedLot instance.

    Args:
        disposed: DisposedLot instance to flatten.
        quote_currency: currency in which prices are denominated.
    """
    lot = disposed.lot
    units = tokens.ui_amount(disposed.token, lot.amount)
    proceeds = units * disposed.price
    cost = units * lot.acquisition.price
    fee = disposal_fee(disposed.kind, quote_currency)
    return FlatGain(
        token=disposed.token,
        lot_number=lot.lot_number,
        acquired=lot.acquisition.when,
        disposed=disposed.when,
        kind=type(disposed.kind).__name__,
        units=units,
        proceeds=proceeds,
        cost=cost,
        fee=fee,
        gain=proceeds - cost - fee,
        longterm=utils.realize_longterm(lot.acquisition.when, disposed.when),
    )


def export_flatgain(flatgain: FlatGain) -> Tuple:
    """Convert FlatGain into a row (tuple) ready for serialization.

    Do the minimum work such that the values look right when tablib.Dataset
    type-converts them during serialization.
    """
    attrs = flatgain._asdict()
    attrs.update(
        {
            "acquired": flatgain.acquired.isoformat() if flatgain.acquired else None,
            "disposed": flatgain.disposed.isoformat() if flatgain.disposed else None,
            "proceeds": utils.round_decimal(flatgain.proceeds, power=-2),
            "cost": utils.round_decimal(flatgain.cost, power=-2),
            "fee": utils.round_decimal(flatgain.fee, power=-2),
            "gain": utils.round_decimal(flatgain.gain, power=-2),
        }
    )
    return tuple(attrs.values())

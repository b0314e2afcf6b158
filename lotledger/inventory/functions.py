# coding: utf-8
"""Base functions used by inventory.api to select, split and merge Lots.

Nothing here touches a TrackedAccount or the ledger's journals; these functions
take lists of Lots and return new lists of Lots, leaving their inputs undisturbed.
"""
from __future__ import annotations


__all__ = [
    "ConservationError",
    "select_lots",
    "part_units",
    "merge_lots",
    "sort_lots",
    "total",
    "check_conservation",
]


# stdlib imports
import functools
import itertools
from typing import TYPE_CHECKING, Tuple, List, Iterable, Callable, Optional


# local imports
from lotledger import utils
from lotledger.models import LotSelectionMethod
from .types import Lot, TrackedAccount
from . import predicates
from . import sortkeys

if TYPE_CHECKING:
    LotNumberAllocator = Callable[[], int]


class ConservationError(AssertionError):
    """The ledger's own bookkeeping is wrong; not a recoverable caller error.

    Raised when an account's cached balance disagrees with the sum of its Lots, or
    when a Lot selection doesn't sum to exactly the amount requested.

    Args:
        msg: Error message detailing the inconsistency.
    """

    def __init__(self, msg: str) -> None:
        self.msg = msg
        super(ConservationError, self).__init__(msg)


def total(lots: Iterable[Lot]) -> int:
    """Sum of Lot amounts."""
    return sum(lot.amount for lot in lots)


def sort_lots(lots: Iterable[Lot]) -> List[Lot]:
    """Return Lots in acquisition order, the canonical order for storage/output."""
    return sorted(lots, key=sortkeys.sort_oldest)


def check_conservation(account: TrackedAccount) -> None:
    """Verify that an account's cached balance equals the sum of its Lots.

    Raises:
        ConservationError: if it doesn't.
    """
    lots_total = total(account.lots)
    if account.last_update_balance != lots_total:
        msg = (
            f"Account {account.address} ({account.token}): "
            f"balance {account.last_update_balance} != sum of lots {lots_total}"
        )
        raise ConservationError(msg)


def select_lots(
    lots: Iterable[Lot],
    amount: int,
    method: LotSelectionMethod,
    allocate: LotNumberAllocator,
    lot_numbers: Optional[Iterable[int]] = None,
) -> Tuple[List[Lot], List[Lot]]:
    """Partition Lots into those extracted for `amount` and those remaining.

    Eligible Lots are ordered by the selection method and taken whole until the
    next Lot would overshoot; that Lot is split, the remaining portion keeping its
    lot number and the extracted portion getting a fresh one from `allocate`.

    Note:
        For FIFO, the single oldest Lot is moved to the end of the order.  The oldest
        Lot on an account is presumed to be its rent/minimum-balance reserve, so it's
        drawn on last.  This is a heuristic; it misfires for accounts whose oldest
        Lot isn't actually a reserve.

    Note:
        The caller must ensure the eligible Lots suffice to cover `amount`.

    Args:
        lots: Lots to choose from; needn't be sorted.
        amount: quantity to extract, in the asset's smallest unit.
        method: LotSelectionMethod ordering the eligible Lots.
        allocate: function returning a fresh lot number for each split.
        lot_numbers: if given, only Lots with these numbers are eligible; all others
                     pass straight through to the remaining Lots.

    Returns:
        (extracted Lots, remaining Lots), each sorted by acquisition date.

    Raises:
        ConservationError: if the extracted Lots don't sum to exactly `amount`.
    """
    ineligible, eligible = utils.partition(predicates.lotNumberIn(lot_numbers), lots)
    ordered = sorted(eligible, **sortkeys.sort_for(method))
    if method is LotSelectionMethod.FIFO and len(ordered) > 1:
        ordered.append(ordered.pop(0))

    taken, left = part_units(ordered, amount, allocate)

    if total(taken) != amount:
        msg = f"Selected lots sum to {total(taken)}, not the {amount} requested"
        raise ConservationError(msg)

    return sort_lots(taken), sort_lots(itertools.chain(left, ineligible))


def part_units(
    lots: List[Lot], max_units: int, allocate: LotNumberAllocator
) -> Tuple[List[Lot], List[Lot]]:
    """Take Lots from the front of a list until `max_units` is reached.

    Args:
        lots: list of Lots; must be presorted by caller.
        max_units: limit of units to take.
        allocate: function returning a fresh lot number for the taken part of a
                  split Lot.

    Returns:
        (taken Lots, left Lots)
    """
    Accumulator = Tuple[List[Lot], List[Lot], int]

    def accum_part(accum: Accumulator, lot: Lot) -> Accumulator:
        taken, left, units_remain = accum

        if units_remain == 0:
            # max_units already filled; we're done.
            left.append(lot)
        elif lot.amount <= units_remain:
            # Taking the whole Lot won't exceed max_units (but might reach it).
            units_remain -= lot.amount
            taken.append(lot)
        else:
            # The Lot more than suffices to fulfill max_units -> split the Lot
            take, leave = (
                lot._replace(lot_number=allocate(), amount=units_remain),
                lot._replace(amount=lot.amount - units_remain),
            )
            taken.append(take)
            left.append(leave)
            units_remain = 0

        return taken, left, units_remain

    initial: Accumulator = ([], [], max_units)
    taken, left, _ = functools.reduce(accum_part, lots, initial)
    return taken, left


def merge_lots(lots: Iterable[Lot], new_lots: Iterable[Lot]) -> List[Lot]:
    """Fold `new_lots` into `lots`.

    A new Lot whose acquisition record equals that of an existing Lot is summed into
    it (same cost basis => same Lot), keeping the existing lot number.  Any other new
    Lot is appended as is.

    Returns:
        Merged list of Lots, sorted by acquisition date.
    """

    def accum_merge(merged: List[Lot], new_lot: Lot) -> List[Lot]:
        for i, lot in enumerate(merged):
            if lot.acquisition == new_lot.acquisition:
                merged[i] = lot._replace(amount=lot.amount + new_lot.amount)
                break
        else:
            merged.append(new_lot)
        return merged

    return sort_lots(functools.reduce(accum_merge, new_lots, list(lots)))

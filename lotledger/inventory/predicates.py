# coding: utf-8
"""
Functions used as filter predicates to select Lots.
"""

__all__ = ["PredicateType", "lotNumberIn", "acquiredBy"]


# stdlib imports
import datetime as _datetime
from typing import Callable, Iterable, Optional


# local imports
from lotledger import utils
from .types import Lot


PredicateType = Callable[[Lot], bool]


def lotNumberIn(lot_numbers: Optional[Iterable[int]]) -> PredicateType:
    """Factory for functions that select Lots by lot number.

    Args:
        lot_numbers: eligible lot numbers.  None makes every Lot eligible.

    Returns:
        Filter function accepting a Lot instance and returning bool.
    """
    if lot_numbers is None:
        return utils.matchEverything

    eligible = frozenset(lot_numbers)

    def isEligible(lot: Lot) -> bool:
        return lot.lot_number in eligible

    return isEligible


def acquiredBy(when: _datetime.date) -> PredicateType:
    """Factory for functions that select Lots acquired on or before a date.

    Args:
        when: a datetime.date instance.

    Returns:
        Filter function accepting a Lot instance and returning bool.
    """

    def isAcquired(lot: Lot) -> bool:
        return lot.acquisition.when <= when

    return isAcquired

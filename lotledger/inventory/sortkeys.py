# coding: utf-8
"""
Functions used as keys to sort lists of Lots.
"""

__all__ = [
    "SortType",
    "sort_oldest",
    "sort_cheapest",
    "sort_dearest",
    "FIFO",
    "LIFO",
    "LOWEST_BASIS",
    "HIGHEST_BASIS",
    "sort_for",
]


# stdlib imports
from typing import Tuple, Mapping, Callable, Union


# local imports
from lotledger.models import LotSelectionMethod
from .types import Lot


SortType = Mapping[str, Union[bool, Callable[[Lot], Tuple]]]


def sort_oldest(lot: Lot) -> Tuple:
    """Sort by acquisition date, then by lot number.

    Args:
        lot: a Lot instance.

    Returns:
        (Lot.acquisition.when, Lot.lot_number)
    """
    return (lot.acquisition.when, lot.lot_number)


def sort_cheapest(lot: Lot) -> Tuple:
    """Sort by cost basis, then by acquisition date and lot number.

    Args:
        lot: a Lot instance.

    Returns:
        (Lot.acquisition.price, Lot.acquisition.when, Lot.lot_number)
    """
    return (lot.acquisition.price,) + sort_oldest(lot)


def sort_dearest(lot: Lot) -> Tuple:
    """Sort by inverse cost basis, then by acquisition date and lot number.

    Args:
        lot: a Lot instance.

    Returns:
        (-Lot.acquisition.price, Lot.acquisition.when, Lot.lot_number)
    """
    return (-lot.acquisition.price,) + sort_oldest(lot)


FIFO = {"key": sort_oldest, "reverse": False}
LIFO = {"key": sort_oldest, "reverse": True}
LOWEST_BASIS = {"key": sort_cheapest, "reverse": False}
HIGHEST_BASIS = {"key": sort_dearest, "reverse": False}


SORTS = {
    LotSelectionMethod.FIFO: FIFO,
    LotSelectionMethod.LIFO: LIFO,
    LotSelectionMethod.LOWEST_BASIS: LOWEST_BASIS,
    LotSelectionMethod.HIGHEST_BASIS: HIGHEST_BASIS,
}


def sort_for(method: LotSelectionMethod) -> SortType:
    """Map a LotSelectionMethod to the sort() kwargs implementing it."""
    return SORTS[method]

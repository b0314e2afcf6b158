"""
Utility functions used by lotledger modules
"""
import itertools
import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Tuple, Iterable, Callable, Union


def partition(
    pred: Callable[[Any], bool], iterable: Iterable
) -> Tuple[Iterable, Iterable]:
    """Use a predicate to partition entries into false entries and true entries

    https://docs.python.org/3/library/itertools.html#itertools-recipes
    """
    # partition(is_odd, range(10)) --> 0 2 4 6 8   and  1 3 5 7 9
    t1, t2 = itertools.tee(iterable)
    return itertools.filterfalse(pred, t1), filter(pred, t2)


def first_true(iterable, default=False, pred=None):
    """Returns the first true value in the iterable.

    If no true value is found, returns *default*

    If *pred* is not None, returns the first item
    for which pred(item) is true.

    https://docs.python.org/3/library/itertools.html#itertools-recipes
    """
    # first_true([a,b,c], x) --> a or b or c or x
    # first_true([a,b], x, f) --> a if f(a) else b if f(b) else x
    return next(filter(pred, iterable), default)


def matchEverything(element: Any) -> bool:
    """Degenerate predicate that always return True"""
    return True


def parse_date(value: Union[str, datetime.date]) -> datetime.date:
    """Accept a datetime.date, or an ISO 8601 string ("2023-06-01")."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(value)


def round_decimal(number: Union[int, Decimal], power: int = -4) -> Decimal:
    """Convert to Decimal; round to units if possible, else round to desired exponent.
    """
    d = Decimal(number)
    return (
        d.quantize(Decimal(1))
        if d == d.to_integral_value()
        else d.quantize(Decimal("10") ** power, rounding=ROUND_HALF_UP)
    )


def ui_amount(amount: int, decimals: int) -> Decimal:
    """Convert an integer amount of an asset's smallest unit to whole units."""
    return Decimal(amount).scaleb(-decimals)


def from_ui_amount(ui_amount: Union[float, str, Decimal], decimals: int) -> int:
    """Convert whole units of an asset to an integer amount of its smallest unit.

    Floats are taken at their shortest repr, so 1.1 is exactly 1.1 whole units.

    Raises:
        ValueError: if `ui_amount` is finer than the smallest unit, or not finite.
    """
    try:
        units = Decimal(str(ui_amount)).scaleb(decimals)
    except InvalidOperation:
        raise ValueError(f"Not an amount: {ui_amount!r}")
    if not units.is_finite() or units != units.to_integral_value():
        raise ValueError(f"{ui_amount} isn't a whole number of 1e-{decimals} units")
    return int(units)


def realize_longterm(
    opendt: Union[datetime.date, datetime.datetime],
    closedt: Union[datetime.date, datetime.datetime],
) -> bool:
    """Returns True if a realization is eligible for long-term capital gains treatment.

    IRS Pub 550
    '''
    If you hold investment property more than 1 year, any capital gain or loss is a
    long-term capital gain or loss. If you hold the property 1 year or less, any capital
    gain or loss is a short-term capital gain or loss.  To determine how long you held
    the investment property, begin counting on the date after the day you acquired the
    property. The day you disposed of the property is part of your holding period.
    '''

    Args:
        opendt: acquisition date of the Lot.
        closedt: disposal date of the Lot.
    """
    opendt_ = opendt + datetime.timedelta(days=1)

    period_months = 12 * (closedt.year - opendt_.year) + (closedt.month - opendt_.month)
    if period_months > 12 or period_months == 12 and closedt.day >= opendt_.day:
        return True

    return False

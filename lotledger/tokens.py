# coding: utf-8
"""
Asset identity helpers.

Assets are identified by symbol strings ("SOL", "USDC", "mSOL", ...).  Which asset
is the chain's native asset, which assets are fungible with fiat, and which
wrapped/native variants may stand in for one another are configuration data
(the [tokens] section of lotledger.cfg), not code.
"""
# stdlib imports
from decimal import Decimal
from typing import Iterable, FrozenSet, Optional


# local imports
from lotledger import utils
from lotledger.config import CONFIG


FungibleGroups = Iterable[FrozenSet[str]]


def native_token() -> str:
    """Symbol of the chain's native asset; the default for untagged accounts."""
    return CONFIG.native_token


def is_native(token: str) -> bool:
    return token == native_token()


def is_fiat_fungible(token: str) -> bool:
    """True if the asset is treated as fully redeemable for the quote currency.

    Deposits of such assets to an exchange are booked as a conversion to fiat
    rather than preserving lot-level basis.
    """
    return token in CONFIG.fiat_fungible_tokens


def fungible(
    token0: str, token1: str, groups: Optional[FungibleGroups] = None
) -> bool:
    """True if lots of `token0` may be exchanged for lots of `token1`.

    Args:
        token0: asset symbol.
        token1: asset symbol.
        groups: sets of mutually fungible symbols.  Defaults to the configured
                [tokens] fungible_groups.
    """
    if token0 == token1:
        return True
    if groups is None:
        groups = CONFIG.fungible_groups
    return any(token0 in group and token1 in group for group in groups)


def decimals(token: str) -> int:
    """Number of decimal places between the asset's smallest unit and a whole unit."""
    return CONFIG.token_decimals.get(token, CONFIG.default_decimals)


def ui_amount(token: str, amount: int) -> Decimal:
    """Whole units of `token` represented by `amount` smallest units."""
    return utils.ui_amount(amount, decimals(token))


def from_ui_amount(token: str, ui_amount) -> int:
    """Smallest units of `token` represented by `ui_amount` whole units.

    Raises:
        ValueError: if `ui_amount` is finer than the asset's smallest unit.
    """
    return utils.from_ui_amount(ui_amount, decimals(token))

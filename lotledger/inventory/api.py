# coding: utf-8
"""The tax-lot ledger: accounts, their Lots, disposals, orders and repairs.

To use this module, open a Ledger with Ledger.open(directory) (or create an
in-memory one with Ledger()), add TrackedAccounts, record acquisitions, and route
every later movement of value through the ledger's methods so that each Lot is held
by exactly one account, pending operation or open order at any time.

Every mutating method ends by writing a snapshot (cf. inventory.snapshot) unless the
caller has grouped several mutations with Ledger.deferred_save(), in which case the
group is written once at its end.  If a group raises, the in-memory ledger is rolled
back to its state at the start of the group and nothing is written.

The conservation invariant - each account's balance equals the sum of its Lots - is
re-checked whenever an account is read for mutation and whenever it's stored.  A
violation raises ConservationError, and the ledger refuses to write any further
snapshots; the fault must be investigated, not papered over.
"""

__all__ = ["Ledger", "Pocket", "open_ledger"]


# stdlib imports
from contextlib import contextmanager
import copy
import datetime as _datetime
from decimal import Decimal
import logging
import os
from typing import Dict, Iterable, List, Mapping, Optional, Tuple


# local imports
from lotledger import tokens, utils
from lotledger.config import CONFIG
from lotledger.models import Exchange, OrderSide, LotSelectionMethod
from . import functions, predicates, snapshot
from .errors import (
    AccountAlreadyExists,
    AccountDoesNotExist,
    InsufficientBalance,
    OpenOrderNotFound,
    LotSwapFailed,
    LotMoveFailed,
    LotDeleteFailed,
    ImportFailed,
    SnapshotIOError,
)
from .functions import ConservationError
from .pending import PendingJournal
from .types import (
    DisposalKind,
    DisposedLot,
    EpochReward,
    ExchangeAcquisition,
    ExchangeDisposal,
    Lot,
    LotAcquisition,
    OpenOrder,
    SweepStakeAccount,
    TaxRate,
    TrackedAccount,
)


Pocket = Tuple[str, str]
"""(address, token) key of a TrackedAccount."""


VALIDATOR_CREDIT_SCORE_RETENTION = 10
"""Number of most recent epochs of validator credit scores kept."""


class Ledger(PendingJournal):
    """Authoritative collection of TrackedAccounts and the journals around them.

    Args:
        path: snapshot file written on save.  If None, the ledger lives only in
              memory and save() is a no-op.

    Attributes:
        path: snapshot file path, or None.
        accounts: map of (address, token) to TrackedAccount.
        disposed: DisposedLots, in the order recorded.
        deposits: unresolved PendingDeposits.
        withdrawals: unresolved PendingWithdrawals.
        transfers: unresolved PendingTransfers.
        swaps: unresolved PendingSwaps.
        orders: OpenOrders.
        sweep_stake_account: optional SweepStakeAccount.
        tax_rate: optional TaxRate.
        validator_credit_scores: map of epoch to {vote account: credits}.
    """

    #  Attributes captured by the snapshot, and by deferred_save() checkpoints.
    #  Every value is an immutable record or a container of immutable records,
    #  so shallow copies suffice.
    STATE = (
        "lot_number_counter",
        "accounts",
        "disposed",
        "deposits",
        "withdrawals",
        "transfers",
        "swaps",
        "orders",
        "sweep_stake_account",
        "tax_rate",
        "validator_credit_scores",
    )

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self.lot_number_counter = 1
        self.accounts: Dict[Pocket, TrackedAccount] = {}
        self.disposed: List[DisposedLot] = []
        self.deposits: list = []
        self.withdrawals: list = []
        self.transfers: list = []
        self.swaps: list = []
        self.orders: List[OpenOrder] = []
        self.sweep_stake_account: Optional[SweepStakeAccount] = None
        self.tax_rate: Optional[TaxRate] = None
        self.validator_credit_scores: Dict[int, Dict[str, int]] = {}
        self._auto_save = True
        self._dirty = False
        self._faulted = False

    @classmethod
    def open(cls, directory: Optional[str] = None) -> "Ledger":
        """Load the ledger kept in `directory`, creating an empty one if absent.

        If no snapshot exists but a legacy key/value store does, the legacy store is
        converted (read-only) and the result written as the first snapshot.

        Args:
            directory: ledger directory.  Defaults to [ledger] default_dir.

        Raises:
            SnapshotIOError: if the directory or snapshot can't be read.
        """
        directory = directory or CONFIG.ledger_dir
        snapshot.ensure_directory(directory)

        ledger = cls(os.path.join(directory, CONFIG.get("ledger", "snapshot")))
        if ledger._read(directory) == "legacy":
            ledger.save()
        return ledger

    @classmethod
    def load(cls, directory: str) -> "Ledger":
        """Read the ledger kept in an existing `directory` without writing anything.

        The result is an in-memory Ledger (path None); saving it is a no-op.

        Raises:
            SnapshotIOError: if `directory` holds no snapshot or legacy store, or
                             it can't be read.
        """
        if not os.path.isdir(directory):
            raise SnapshotIOError(directory, "no such ledger directory")
        ledger = cls()
        if ledger._read(directory) is None:
            raise SnapshotIOError(directory, "no ledger snapshot or legacy store")
        return ledger

    def _read(self, directory: str) -> Optional[str]:
        """Load the snapshot in `directory`, else the first legacy store found.

        Returns:
            "snapshot", "legacy", or None if `directory` holds neither.
        """
        path = os.path.join(directory, CONFIG.get("ledger", "snapshot"))
        if os.path.exists(path):
            snapshot.load(self, path)
            return "snapshot"
        for name in CONFIG.legacy_stores:
            legacy_path = os.path.join(directory, name)
            if os.path.exists(legacy_path):
                logging.info("Converting legacy store {}".format(legacy_path))
                snapshot.load_legacy(self, legacy_path)
                return "legacy"
        logging.info("No ledger found in {}".format(directory))
        return None

    ###########################################################################
    # Persistence
    ###########################################################################
    def save(self) -> None:
        """Write the whole ledger to its snapshot file atomically.

        Raises:
            ConservationError: if the ledger has seen a conservation fault.
            SnapshotIOError: if the snapshot can't be written.
        """
        if self._faulted:
            raise ConservationError("Ledger is inconsistent; refusing to save")
        if self.path is not None:
            snapshot.write(self.path, snapshot.encode_ledger(self))
            logging.debug("Saved ledger to {}".format(self.path))
        self._dirty = False

    def auto_save(self, enabled: bool) -> None:
        """Turn saving after each mutation on/off.

        Turning it back on saves any mutations made in the meantime.
        """
        self._auto_save = enabled
        if enabled and self._dirty:
            self.save()

    @contextmanager
    def deferred_save(self):
        """Group mutations so that they're saved together (or not at all).

        On normal exit, auto-save is restored to its previous setting, which saves
        the group if it was on.  If the block raises, the in-memory ledger is rolled
        back to its state on entry.
        """
        previous = self._auto_save
        checkpoint = {attr: copy.copy(getattr(self, attr)) for attr in self.STATE}
        self._auto_save = False
        try:
            yield self
        except BaseException:
            for attr, value in checkpoint.items():
                setattr(self, attr, value)
            self._auto_save = previous
            raise
        self.auto_save(previous)

    def _commit(self) -> None:
        self._dirty = True
        if self._auto_save:
            self.save()

    def next_lot_number(self) -> int:
        """Allocate a fresh lot number.  Lot numbers are never reused."""
        lot_number = self.lot_number_counter
        self.lot_number_counter += 1
        self._dirty = True
        return lot_number

    @property
    def default_lot_selection_method(self) -> LotSelectionMethod:
        return LotSelectionMethod[CONFIG.get("ledger", "lot_selection_method")]

    ###########################################################################
    # Accounts
    ###########################################################################
    def _check(self, account: TrackedAccount) -> None:
        try:
            functions.check_conservation(account)
        except ConservationError:
            self._faulted = True
            raise

    def _select(
        self,
        lots: Iterable[Lot],
        amount: int,
        method: LotSelectionMethod,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> Tuple[List[Lot], List[Lot]]:
        """functions.select_lots(), allocating lot numbers from this ledger."""
        try:
            return functions.select_lots(
                lots, amount, method, self.next_lot_number, lot_numbers
            )
        except ConservationError:
            self._faulted = True
            raise

    def _get(self, address: str, token: str) -> TrackedAccount:
        try:
            account = self.accounts[(address, token)]
        except KeyError:
            raise AccountDoesNotExist(address, token)
        self._check(account)
        return account

    def _put(self, account: TrackedAccount) -> None:
        self._check(account)
        self.accounts[(account.address, account.token)] = account

    def add_account(self, account: TrackedAccount) -> None:
        """Start tracking an (address, token) pair.

        Raises:
            AccountAlreadyExists: if the pair is already tracked.
            ConservationError: if the account's balance doesn't match its Lots.
        """
        if (account.address, account.token) in self.accounts:
            raise AccountAlreadyExists(account.address, account.token)
        #  Preloaded Lots with equal acquisition records are one Lot
        self._put(account._replace(lots=tuple(functions.merge_lots([], account.lots))))
        if account.lots:
            self.lot_number_counter = max(
                self.lot_number_counter,
                max(lot.lot_number for lot in account.lots) + 1,
            )
        logging.info("Added account {} ({})".format(account.address, account.token))
        self._commit()

    def remove_account(self, address: str, token: str) -> TrackedAccount:
        """Stop tracking an (address, token) pair, discarding its Lots.

        Raises:
            AccountDoesNotExist: if the pair isn't tracked.
        """
        account = self._get(address, token)
        del self.accounts[(address, token)]
        if account.lots:
            logging.warning(
                "Removed account {} ({}) holding {} lots".format(
                    address, token, len(account.lots)
                )
            )
        self._commit()
        return account

    def update_account(
        self,
        address: str,
        token: str,
        *,
        description: Optional[str] = None,
        last_update_epoch: Optional[int] = None,
        no_sync: Optional[bool] = None,
    ) -> TrackedAccount:
        """Change account metadata.  Balances only change through Lot operations.

        Raises:
            AccountDoesNotExist: if the pair isn't tracked.
        """
        account = self._get(address, token)
        changes = {
            "description": description,
            "last_update_epoch": last_update_epoch,
            "no_sync": no_sync,
        }
        account = account._replace(
            **{attr: value for attr, value in changes.items() if value is not None}
        )
        self._put(account)
        self._commit()
        return account

    def get_account(self, address: str, token: str) -> Optional[TrackedAccount]:
        return self.accounts.get((address, token))

    def get_accounts(self) -> List[TrackedAccount]:
        return list(self.accounts.values())

    def get_accounts_by_address(self, address: str) -> List[TrackedAccount]:
        return [acct for (addr, _), acct in self.accounts.items() if addr == address]

    def get_account_addresses(self) -> List[str]:
        return sorted({address for address, _ in self.accounts})

    ###########################################################################
    # Lot Store
    ###########################################################################
    def _extract(
        self,
        address: str,
        token: str,
        amount: int,
        method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> List[Lot]:
        if amount <= 0:
            raise ValueError(f"amount must be positive, not {amount}")
        account = self._get(address, token)

        if lot_numbers is not None:
            lot_numbers = frozenset(lot_numbers)
            eligible = filter(predicates.lotNumberIn(lot_numbers), account.lots)
            available = functions.total(eligible)
        else:
            available = account.last_update_balance
        if available < amount:
            raise InsufficientBalance(address, token, amount, available)

        extracted, remaining = self._select(
            account.lots,
            amount,
            method or self.default_lot_selection_method,
            lot_numbers,
        )
        self._put(
            account._replace(
                lots=tuple(remaining),
                last_update_balance=account.last_update_balance - amount,
            )
        )
        return extracted

    def _merge(self, address: str, token: str, lots: Iterable[Lot]) -> None:
        lots = list(lots)
        account = self._get(address, token)
        self._put(
            account._replace(
                lots=tuple(functions.merge_lots(account.lots, lots)),
                last_update_balance=account.last_update_balance
                + functions.total(lots),
            )
        )

    def extract(
        self,
        address: str,
        token: str,
        amount: int,
        method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> List[Lot]:
        """Remove Lots totalling exactly `amount` from an account.

        The caller takes ownership of the returned Lots and must merge or dispose
        them; cf. the pending operations for the usual ways of doing so.

        Args:
            address: account address.
            token: account token.
            amount: quantity to extract.
            method: LotSelectionMethod; defaults to [ledger] lot_selection_method.
            lot_numbers: if given, only these Lots are eligible donors.

        Raises:
            AccountDoesNotExist: if the account isn't tracked.
            InsufficientBalance: if the (eligible) Lots sum to less than `amount`.
            ValueError: if `amount` isn't positive.
        """
        extracted = self._extract(address, token, amount, method, lot_numbers)
        self._commit()
        return extracted

    def merge(self, address: str, token: str, lots: Iterable[Lot]) -> None:
        """Re-insert Lots into an account, combining equal acquisition records.

        Raises:
            AccountDoesNotExist: if the account isn't tracked.
        """
        self._merge(address, token, lots)
        self._commit()

    def record_acquisition(
        self, address: str, token: str, amount: int, acquisition: LotAcquisition
    ) -> Lot:
        """Book a newly acquired Lot into an account.

        Raises:
            AccountDoesNotExist: if the account isn't tracked.
            ValueError: if `amount` isn't positive.
        """
        if amount <= 0:
            raise ValueError(f"amount must be positive, not {amount}")
        with self.deferred_save():
            lot = Lot(
                lot_number=self.next_lot_number(),
                acquisition=acquisition,
                amount=amount,
            )
            self._merge(address, token, [lot])
            self._commit()
        logging.info(
            "Acquired {} {} into {} as lot {}".format(
                amount, token, address, lot.lot_number
            )
        )
        return lot

    def record_epoch_rewards(
        self,
        epoch: int,
        slot: int,
        when: _datetime.date,
        price: Decimal,
        rewards: Mapping[str, int],
        token: Optional[str] = None,
    ) -> List[Lot]:
        """Book staking rewards for one epoch across several accounts.

        Args:
            epoch: epoch paying the rewards.
            slot: slot at which the rewards were credited.
            when: date of the epoch boundary.
            price: asset price at `when`.
            rewards: map of account address to reward amount.
            token: rewarded asset; defaults to the native token.

        Raises:
            AccountDoesNotExist: if any address isn't tracked (nothing is booked).
        """
        token = token or tokens.native_token()
        acquisition = LotAcquisition(
            when=when, price=price, kind=EpochReward(epoch=epoch, slot=slot)
        )
        lots = []
        with self.deferred_save():
            for address, amount in rewards.items():
                if amount > 0:
                    lots.append(
                        self.record_acquisition(address, token, amount, acquisition)
                    )
                account = self._get(address, token)
                self._put(account._replace(last_update_epoch=epoch))
            self._commit()
        return lots

    ###########################################################################
    # Disposal Journal
    ###########################################################################
    def _dispose(
        self,
        lots: Iterable[Lot],
        token: str,
        when: _datetime.date,
        price: Decimal,
        kind: DisposalKind,
    ) -> List[DisposedLot]:
        disposed = [
            DisposedLot(lot=lot, when=when, price=price, kind=kind, token=token)
            for lot in lots
        ]
        self.disposed.extend(disposed)
        for dl in disposed:
            logging.info(
                "Disposed lot {} ({} {}) at {} on {}: {}".format(
                    dl.lot.lot_number, dl.lot.amount, token, price, when, kind
                )
            )
        return disposed

    def record_disposal(
        self,
        address: str,
        token: str,
        amount: int,
        kind: DisposalKind,
        when: _datetime.date,
        price: Decimal,
        method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> List[DisposedLot]:
        """Extract Lots from an account and journal them as disposed.

        This is the direct path for value that leaves outside any pending operation,
        e.g. a network fee paid from a wallet.

        Raises:
            AccountDoesNotExist: if the account isn't tracked.
            InsufficientBalance: if the account can't cover `amount`.
        """
        with self.deferred_save():
            lots = self._extract(address, token, amount, method, lot_numbers)
            disposed = self._dispose(lots, token, when, price, kind)
            self._commit()
        return disposed

    def disposed_lots(self) -> List[DisposedLot]:
        """All DisposedLots, sorted by disposal date."""
        return sorted(self.disposed, key=lambda dl: dl.when)

    ###########################################################################
    # Open orders
    ###########################################################################
    def open_order(
        self,
        side: OrderSide,
        exchange: Exchange,
        pair: str,
        price: Decimal,
        order_id: str,
        deposit_address: str,
        token: str,
        amount: int,
        creation_time: _datetime.date,
        method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> OpenOrder:
        """Record an exchange limit order.

        Sell orders reserve `amount` worth of Lots from the (deposit_address, token)
        account until the order closes.

        Raises:
            AccountDoesNotExist: if (deposit_address, token) isn't tracked.
            InsufficientBalance: if a sell order exceeds the account's Lots.
            ValueError: if an open order already has `order_id`.
        """
        if any(order.order_id == order_id for order in self.orders):
            raise ValueError(f"Order {order_id} is already open")
        with self.deferred_save():
            if side is OrderSide.SELL:
                lots = self._extract(deposit_address, token, amount, method, lot_numbers)
            else:
                self._get(deposit_address, token)
                lots = []
            order = OpenOrder(
                exchange=exchange,
                pair=pair,
                side=side,
                price=price,
                order_id=order_id,
                deposit_address=deposit_address,
                token=token,
                creation_time=creation_time,
                amount=amount,
                lots=tuple(lots),
            )
            self.orders.append(order)
            self._commit()
        logging.info("Opened {} order {} on {}".format(side.name, order_id, pair))
        return order

    def close_order(
        self,
        order_id: str,
        filled_amount: int,
        when: _datetime.date,
        fee: Optional[Tuple[Decimal, str]] = None,
        method: Optional[LotSelectionMethod] = None,
    ) -> OpenOrder:
        """Apply the outcome of a closed (filled, partially filled or cancelled) order.

        For sells, the filled portion of the reserved Lots is disposed at the order
        price and the rest returns to the deposit account.  For buys, a Lot of
        `filled_amount` is acquired at the order price.

        Args:
            order_id: exchange order identifier.
            filled_amount: quantity actually traded; zero for a cancelled order.
            when: date the order closed.
            fee: optional (amount, currency) charged for the fill.
            method: LotSelectionMethod picking the filled Lots of a sell.

        Returns:
            The closed OpenOrder.

        Raises:
            OpenOrderNotFound: if no open order has `order_id`.
            ValueError: if `filled_amount` is negative or exceeds the order amount.
        """
        order = utils.first_true(
            self.orders, default=None, pred=lambda o: o.order_id == order_id
        )
        if order is None:
            raise OpenOrderNotFound(order_id)
        if not (0 <= filled_amount <= order.amount):
            msg = f"filled amount {filled_amount} outside [0, {order.amount}]"
            raise ValueError(msg)

        with self.deferred_save():
            self.orders.remove(order)
            if order.side is OrderSide.SELL:
                filled, unfilled = self._select(
                    order.lots,
                    filled_amount,
                    method or self.default_lot_selection_method,
                )
                kind = ExchangeDisposal(
                    exchange=order.exchange,
                    pair=order.pair,
                    order_id=order.order_id,
                    fee=fee,
                )
                self._dispose(filled, order.token, when, order.price, kind)
                self._merge(order.deposit_address, order.token, unfilled)
            elif filled_amount:
                lot = Lot(
                    lot_number=self.next_lot_number(),
                    acquisition=LotAcquisition(
                        when=when,
                        price=order.price,
                        kind=ExchangeAcquisition(
                            exchange=order.exchange,
                            pair=order.pair,
                            order_id=order.order_id,
                        ),
                    ),
                    amount=filled_amount,
                )
                self._merge(order.deposit_address, order.token, [lot])
            self._commit()
        logging.info("Closed order {}: filled {}".format(order_id, filled_amount))
        return order

    def open_orders(
        self, exchange: Optional[Exchange] = None, side: Optional[OrderSide] = None
    ) -> List[OpenOrder]:
        return [
            order
            for order in self.orders
            if (exchange is None or order.exchange is exchange)
            and (side is None or order.side is side)
        ]

    ###########################################################################
    # Repairs
    ###########################################################################
    def _find_held(self, lot_number: int) -> Optional[Tuple[TrackedAccount, Lot]]:
        for account in self.accounts.values():
            for lot in account.lots:
                if lot.lot_number == lot_number:
                    return account, lot
        return None

    def _find_disposed(self, lot_number: int) -> Optional[DisposedLot]:
        return utils.first_true(
            self.disposed, default=None, pred=lambda dl: dl.lot.lot_number == lot_number
        )

    def _replace_lots(
        self, pocket: Pocket, remove: Iterable[int], add: Iterable[Lot]
    ) -> None:
        account = self._get(*pocket)
        remove = frozenset(remove)
        kept = [lot for lot in account.lots if lot.lot_number not in remove]
        self._put(
            account._replace(lots=tuple(functions.merge_lots(kept, add)))
        )

    def _equalize(self, lot: Lot, amount: int) -> Tuple[Lot, Optional[Lot]]:
        """Cut a Lot down to `amount`, splitting off any excess under a fresh number.
        """
        if lot.amount <= amount:
            return lot, None
        return (
            lot._replace(amount=amount),
            lot._replace(lot_number=self.next_lot_number(), amount=lot.amount - amount),
        )

    def swap_lots(self, lot_number0: int, lot_number1: int) -> None:
        """Exchange the identity (lot number and acquisition) of two Lots.

        Repairs Lots booked against the wrong holding.  One of the two may be an
        already-disposed Lot, in which case the held Lot must have been acquired no
        later than the disposal date.  If amounts differ, the larger Lot is split and
        its excess keeps its original acquisition under a fresh lot number.

        Raises:
            LotSwapFailed: if either Lot is unknown, both are disposed, their tokens
                           aren't fungible, or the acquisition date is too late.
        """
        if lot_number0 == lot_number1:
            raise LotSwapFailed(f"Lot {lot_number0} can't be swapped with itself")

        held0, held1 = self._find_held(lot_number0), self._find_held(lot_number1)
        disposed0 = None if held0 else self._find_disposed(lot_number0)
        disposed1 = None if held1 else self._find_disposed(lot_number1)
        for lot_number, held, disposed in (
            (lot_number0, held0, disposed0),
            (lot_number1, held1, disposed1),
        ):
            if held is None and disposed is None:
                raise LotSwapFailed(f"Unknown lot {lot_number}")
        if disposed0 and disposed1:
            raise LotSwapFailed(
                f"Lots {lot_number0} and {lot_number1} are both disposed"
            )

        def adopt(lot: Lot, donor: Lot) -> Lot:
            return lot._replace(
                lot_number=donor.lot_number, acquisition=donor.acquisition
            )

        with self.deferred_save():
            if held0 and held1:
                (account0, lot0), (account1, lot1) = held0, held1
                if not tokens.fungible(account0.token, account1.token):
                    raise LotSwapFailed(
                        f"Token mismatch: {account0.token} != {account1.token}"
                    )
                amount = min(lot0.amount, lot1.amount)
                part0, rest0 = self._equalize(lot0, amount)
                part1, rest1 = self._equalize(lot1, amount)
                pocket0 = (account0.address, account0.token)
                pocket1 = (account1.address, account1.token)
                if pocket0 == pocket1:
                    self._replace_lots(
                        pocket0,
                        [lot0.lot_number, lot1.lot_number],
                        [adopt(part0, part1), adopt(part1, part0)]
                        + [lot for lot in (rest0, rest1) if lot],
                    )
                else:
                    self._replace_lots(
                        pocket0,
                        [lot0.lot_number],
                        [adopt(part0, part1)] + ([rest0] if rest0 else []),
                    )
                    self._replace_lots(
                        pocket1,
                        [lot1.lot_number],
                        [adopt(part1, part0)] + ([rest1] if rest1 else []),
                    )
            else:
                account, held = held0 or held1  # type: ignore
                disposed = disposed0 or disposed1
                assert disposed is not None
                if not tokens.fungible(account.token, disposed.token):
                    raise LotSwapFailed(
                        f"Token mismatch: {account.token} != {disposed.token}"
                    )
                if not predicates.acquiredBy(disposed.when)(held):
                    raise LotSwapFailed(
                        f"Lot {held.lot_number} was acquired on "
                        f"{held.acquisition.when}, after the disposal date "
                        f"{disposed.when} of lot {disposed.lot.lot_number}"
                    )
                amount = min(held.amount, disposed.lot.amount)
                held_part, held_rest = self._equalize(held, amount)
                disposed_part, disposed_rest = self._equalize(disposed.lot, amount)
                self._replace_lots(
                    (account.address, account.token),
                    [held.lot_number],
                    [adopt(held_part, disposed_part)]
                    + ([held_rest] if held_rest else []),
                )
                index = self.disposed.index(disposed)
                replacements = [disposed._replace(lot=adopt(disposed_part, held_part))]
                if disposed_rest:
                    replacements.append(disposed._replace(lot=disposed_rest))
                self.disposed[index:index + 1] = replacements
            self._commit()
        logging.info("Swapped lots {} and {}".format(lot_number0, lot_number1))

    def move_lot(self, lot_number: int, to_address: str) -> None:
        """Relocate a held Lot to another tracked account of the same token.

        Raises:
            LotMoveFailed: if the Lot isn't held by any account, the destination is
                           the source, or the destination isn't tracked.
        """
        found = self._find_held(lot_number)
        if found is None:
            raise LotMoveFailed(f"Unknown lot {lot_number}")
        account, lot = found
        if to_address == account.address:
            raise LotMoveFailed(f"Lot {lot_number} is already held by {to_address}")
        if (to_address, account.token) not in self.accounts:
            raise LotMoveFailed(
                f"Destination account does not exist: {to_address} ({account.token})"
            )

        with self.deferred_save():
            self._extract(account.address, account.token, lot.amount, lot_numbers=[lot_number])
            self._merge(to_address, account.token, [lot])
            self._commit()
        logging.info(
            "Moved lot {} from {} to {}".format(lot_number, account.address, to_address)
        )

    def delete_lot(self, lot_number: int) -> Lot:
        """Remove a held Lot without recording a disposal.

        For correcting erroneous entries only; real disposals go through
        record_disposal() or a pending operation.

        Raises:
            LotDeleteFailed: if the Lot isn't held by any account.
        """
        found = self._find_held(lot_number)
        if found is None:
            raise LotDeleteFailed(f"Unknown lot {lot_number}")
        account, lot = found

        with self.deferred_save():
            self._extract(account.address, account.token, lot.amount, lot_numbers=[lot_number])
            self._commit()
        logging.warning(
            "Deleted lot {} ({} {}) from {}".format(
                lot_number, lot.amount, account.token, account.address
            )
        )
        return lot

    ###########################################################################
    # Import
    ###########################################################################
    def import_db(self, other: "Ledger") -> None:
        """Merge another ledger's accounts and disposed Lots into this one.

        Every imported Lot gets a fresh lot number.  Accounts tracked by both ledgers
        have the other ledger's Lots merged in.

        Raises:
            ImportFailed: if `other` has unresolved pending operations or open orders.
        """
        if other.deposits or other.withdrawals or other.transfers or other.swaps:
            raise ImportFailed("source ledger has unresolved pending operations")
        if other.orders:
            raise ImportFailed("source ledger has open orders")

        def renumber(lot: Lot) -> Lot:
            return lot._replace(lot_number=self.next_lot_number())

        with self.deferred_save():
            for account in other.get_accounts():
                lots = [renumber(lot) for lot in account.lots]
                if (account.address, account.token) in self.accounts:
                    self._merge(account.address, account.token, lots)
                else:
                    lots = functions.merge_lots([], lots)
                    self._put(account._replace(lots=tuple(lots)))
            self.disposed.extend(
                dl._replace(lot=renumber(dl.lot)) for dl in other.disposed
            )
            self._commit()
        logging.info(
            "Imported {} accounts and {} disposed lots".format(
                len(other.accounts), len(other.disposed)
            )
        )

    ###########################################################################
    # Ancillary records
    ###########################################################################
    def get_tax_rate(self) -> Optional[TaxRate]:
        return self.tax_rate

    def set_tax_rate(self, tax_rate: Optional[TaxRate]) -> None:
        self.tax_rate = tax_rate
        self._commit()

    def get_sweep_stake_account(self) -> Optional[SweepStakeAccount]:
        return self.sweep_stake_account

    def set_sweep_stake_account(
        self, sweep_stake_account: Optional[SweepStakeAccount]
    ) -> None:
        self.sweep_stake_account = sweep_stake_account
        self._commit()

    def get_validator_credit_scores(self, epoch: int) -> Optional[Dict[str, int]]:
        return self.validator_credit_scores.get(epoch)

    def set_validator_credit_scores(self, epoch: int, scores: Mapping[str, int]) -> None:
        """Cache credit scores for an epoch, dropping epochs outside the retention
        window of the newest VALIDATOR_CREDIT_SCORE_RETENTION epochs.
        """
        cache = dict(self.validator_credit_scores)
        cache[epoch] = dict(scores)
        newest = max(cache)
        self.validator_credit_scores = {
            e: s
            for e, s in sorted(cache.items())
            if e > newest - VALIDATOR_CREDIT_SCORE_RETENTION
        }
        self._commit()


def open_ledger(directory: Optional[str] = None) -> Ledger:
    """Load (or initialize) the ledger kept in `directory`; cf. Ledger.open()."""
    return Ledger.open(directory)

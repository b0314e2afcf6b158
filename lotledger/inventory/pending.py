# coding: utf-8
"""Two-phase operations that hold Lots in escrow until external settlement.

Each of deposit, withdrawal, transfer and swap is a saga keyed by an external
idempotency key (a transaction signature or an exchange withdrawal tag):

    * record_*  - extract Lots from the source account into a pending record.
    * confirm_* - route the held Lots to their destination, given the settlement date.
    * cancel_*  - merge the held Lots back into the source account unchanged.

A pending record leaves PENDING exactly once; resolving an unknown (or already
resolved) key raises the saga's PendingOperationNotFound subclass.

PendingJournal is a mixin for inventory.api.Ledger; it relies on the Ledger's
account accessors (_get/_extract/_merge), its disposal journal (_dispose), and its
save grouping (deferred_save/_commit).
"""

__all__ = ["PendingJournal"]


# stdlib imports
import datetime as _datetime
from decimal import Decimal
import logging
from typing import Iterable, List, Optional


# local imports
from lotledger import tokens, utils
from lotledger.models import Exchange, LotSelectionMethod, PendingState
from . import functions
from .errors import (
    PendingDepositNotFound,
    PendingWithdrawalNotFound,
    PendingTransferNotFound,
    PendingSwapNotFound,
)
from .types import (
    FiatDisposal,
    Lot,
    LotAcquisition,
    PendingDeposit,
    PendingWithdrawal,
    PendingTransfer,
    PendingSwap,
    SwapAcquisition,
    SwapDisposal,
    WithdrawalFee,
)


class PendingJournal:
    def _resolve(self, journal, key_attr, key, not_found, state):
        """Remove the record keyed by `key` from `journal`; return it in `state`.
        """
        record = utils.first_true(
            journal, default=None, pred=lambda r: getattr(r, key_attr) == key
        )
        if record is None:
            raise not_found(key)
        journal.remove(record)
        logging.info(
            "{} {} {}".format(type(record).__name__, key, state.name.lower())
        )
        return record._replace(state=state)

    def _check_unique(self, journal, key_attr, key) -> None:
        if any(getattr(r, key_attr) == key for r in journal):
            raise ValueError(f"Pending operation {key} is already recorded")

    ###########################################################################
    # Deposits
    ###########################################################################
    def record_deposit(
        self,
        signature: str,
        last_valid_block_height: int,
        exchange: Exchange,
        deposit_address: str,
        from_address: str,
        token: str,
        amount: int,
        method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> PendingDeposit:
        """Begin moving Lots from a wallet to an exchange deposit address.

        Raises:
            AccountDoesNotExist: if the source (or, for assets that aren't
                                 fiat-fungible, the destination) isn't tracked.
            InsufficientBalance: if the source can't cover `amount`.
            ValueError: if `signature` is already pending.
        """
        self._check_unique(self.deposits, "signature", signature)
        if not tokens.is_fiat_fungible(token):
            self._get(deposit_address, token)

        with self.deferred_save():
            lots = self._extract(from_address, token, amount, method, lot_numbers)
            deposit = PendingDeposit(
                exchange=exchange,
                deposit_address=deposit_address,
                signature=signature,
                last_valid_block_height=last_valid_block_height,
                from_address=from_address,
                token=token,
                amount=amount,
                lots=tuple(lots),
            )
            self.deposits.append(deposit)
            self._commit()
        logging.info(
            "Pending deposit {}: {} {} from {} to {} ({})".format(
                signature, amount, token, from_address, deposit_address, exchange.name
            )
        )
        return deposit

    def confirm_deposit(self, signature: str, when: _datetime.date) -> PendingDeposit:
        """Settle a deposit into the exchange deposit account.

        Fiat-fungible assets are booked as a conversion to fiat (FiatDisposal at
        price 1) rather than keeping their lot-level basis.

        Raises:
            PendingDepositNotFound: if `signature` isn't pending.
            AccountDoesNotExist: if the destination account has gone away.
        """
        with self.deferred_save():
            deposit = self._resolve(
                self.deposits,
                "signature",
                signature,
                PendingDepositNotFound,
                PendingState.CONFIRMED,
            )
            if tokens.is_fiat_fungible(deposit.token):
                self._dispose(
                    deposit.lots, deposit.token, when, Decimal("1"), FiatDisposal()
                )
            else:
                self._merge(deposit.deposit_address, deposit.token, deposit.lots)
            self._commit()
        return deposit

    def cancel_deposit(self, signature: str) -> PendingDeposit:
        """Return a deposit's Lots to the source account.

        Raises:
            PendingDepositNotFound: if `signature` isn't pending.
        """
        with self.deferred_save():
            deposit = self._resolve(
                self.deposits,
                "signature",
                signature,
                PendingDepositNotFound,
                PendingState.CANCELLED,
            )
            self._merge(deposit.from_address, deposit.token, deposit.lots)
            self._commit()
        return deposit

    def pending_deposits(
        self, exchange: Optional[Exchange] = None
    ) -> List[PendingDeposit]:
        return [d for d in self.deposits if exchange is None or d.exchange is exchange]

    ###########################################################################
    # Withdrawals
    ###########################################################################
    def record_withdrawal(
        self,
        exchange: Exchange,
        tag: str,
        from_address: str,
        to_address: str,
        token: str,
        amount: int,
        fee: int = 0,
        method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> PendingWithdrawal:
        """Begin moving Lots from an exchange to a wallet.

        `fee` is withheld up front: it is apportioned from the extracted Lots into
        the record's fee_lots, and only the rest will reach `to_address`.

        Raises:
            AccountDoesNotExist: if the source or destination isn't tracked.
            InsufficientBalance: if the source can't cover `amount`.
            ValueError: if `tag` is already pending, or `fee` is outside
                        [0, amount).
        """
        if not (0 <= fee < amount):
            raise ValueError(f"fee {fee} outside [0, {amount})")
        self._check_unique(self.withdrawals, "tag", tag)
        self._get(to_address, token)

        method = method or self.default_lot_selection_method
        with self.deferred_save():
            lots = self._extract(from_address, token, amount, method, lot_numbers)
            fee_lots: List[Lot] = []
            if fee:
                fee_lots, lots = self._select(lots, fee, method)
            withdrawal = PendingWithdrawal(
                exchange=exchange,
                tag=tag,
                from_address=from_address,
                to_address=to_address,
                token=token,
                amount=amount,
                fee=fee,
                lots=tuple(lots),
                fee_lots=tuple(fee_lots),
            )
            self.withdrawals.append(withdrawal)
            self._commit()
        logging.info(
            "Pending withdrawal {}: {} {} (fee {}) from {} to {}".format(
                tag, amount, token, fee, exchange.name, to_address
            )
        )
        return withdrawal

    def confirm_withdrawal(self, tag: str, when: _datetime.date) -> PendingWithdrawal:
        """Settle a withdrawal: dispose the fee Lots, deliver the rest.

        Each fee Lot is disposed as a WithdrawalFee at its own acquisition price,
        i.e. the fee realizes neither gain nor loss.

        Raises:
            PendingWithdrawalNotFound: if `tag` isn't pending.
            AccountDoesNotExist: if the destination account has gone away.
        """
        with self.deferred_save():
            withdrawal = self._resolve(
                self.withdrawals,
                "tag",
                tag,
                PendingWithdrawalNotFound,
                PendingState.CONFIRMED,
            )
            self._get(withdrawal.to_address, withdrawal.token)
            for lot in withdrawal.fee_lots:
                self._dispose(
                    [lot], withdrawal.token, when, lot.acquisition.price, WithdrawalFee()
                )
            self._merge(withdrawal.to_address, withdrawal.token, withdrawal.lots)
            self._commit()
        return withdrawal

    def cancel_withdrawal(self, tag: str) -> PendingWithdrawal:
        """Return a withdrawal's Lots (fee included) to the exchange account.

        Raises:
            PendingWithdrawalNotFound: if `tag` isn't pending.
        """
        with self.deferred_save():
            withdrawal = self._resolve(
                self.withdrawals,
                "tag",
                tag,
                PendingWithdrawalNotFound,
                PendingState.CANCELLED,
            )
            self._merge(
                withdrawal.from_address,
                withdrawal.token,
                withdrawal.lots + withdrawal.fee_lots,
            )
            self._commit()
        return withdrawal

    def pending_withdrawals(
        self, exchange: Optional[Exchange] = None
    ) -> List[PendingWithdrawal]:
        return [
            w for w in self.withdrawals if exchange is None or w.exchange is exchange
        ]

    ###########################################################################
    # Transfers
    ###########################################################################
    def record_transfer(
        self,
        signature: str,
        last_valid_block_height: int,
        from_address: str,
        to_address: str,
        token: str,
        amount: int,
        method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> PendingTransfer:
        """Begin moving Lots between two tracked accounts of the same token.

        Raises:
            AccountDoesNotExist: if the source or destination isn't tracked.
            InsufficientBalance: if the source can't cover `amount`.
            ValueError: if `signature` is already pending, or the destination is
                        the source.
        """
        if from_address == to_address:
            raise ValueError(f"Transfer {signature} from {from_address} to itself")
        self._check_unique(self.transfers, "signature", signature)
        self._get(to_address, token)

        with self.deferred_save():
            lots = self._extract(from_address, token, amount, method, lot_numbers)
            transfer = PendingTransfer(
                signature=signature,
                last_valid_block_height=last_valid_block_height,
                from_address=from_address,
                to_address=to_address,
                token=token,
                lots=tuple(lots),
            )
            self.transfers.append(transfer)
            self._commit()
        logging.info(
            "Pending transfer {}: {} {} from {} to {}".format(
                signature, amount, token, from_address, to_address
            )
        )
        return transfer

    def confirm_transfer(self, signature: str, when: _datetime.date) -> PendingTransfer:
        """Settle a transfer into the destination account.

        Lots keep their acquisition records; a transfer between one's own
        accounts realizes nothing, so `when` is only logged.

        Raises:
            PendingTransferNotFound: if `signature` isn't pending.
            AccountDoesNotExist: if the destination account has gone away.
        """
        with self.deferred_save():
            transfer = self._resolve(
                self.transfers,
                "signature",
                signature,
                PendingTransferNotFound,
                PendingState.CONFIRMED,
            )
            self._merge(transfer.to_address, transfer.token, transfer.lots)
            self._commit()
        logging.debug("Transfer {} settled on {}".format(signature, when))
        return transfer

    def cancel_transfer(self, signature: str) -> PendingTransfer:
        with self.deferred_save():
            transfer = self._resolve(
                self.transfers,
                "signature",
                signature,
                PendingTransferNotFound,
                PendingState.CANCELLED,
            )
            self._merge(transfer.from_address, transfer.token, transfer.lots)
            self._commit()
        return transfer

    def pending_transfers(self) -> List[PendingTransfer]:
        return list(self.transfers)

    ###########################################################################
    # Swaps
    ###########################################################################
    def record_swap(
        self,
        signature: str,
        last_valid_block_height: int,
        address: str,
        from_token: str,
        from_token_price: Decimal,
        from_amount: int,
        to_token: str,
        to_token_price: Decimal,
        lot_selection_method: Optional[LotSelectionMethod] = None,
        lot_numbers: Optional[Iterable[int]] = None,
    ) -> PendingSwap:
        """Begin swapping up to `from_amount` of one token for another.

        Raises:
            AccountDoesNotExist: if (address, from_token) or (address, to_token)
                                 isn't tracked.
            InsufficientBalance: if the source can't cover `from_amount`.
            ValueError: if `signature` is already pending, or the tokens are equal.
        """
        if from_token == to_token:
            raise ValueError(f"Swap {signature} from {from_token} to itself")
        self._check_unique(self.swaps, "signature", signature)
        self._get(address, to_token)

        method = lot_selection_method or self.default_lot_selection_method
        with self.deferred_save():
            lots = self._extract(address, from_token, from_amount, method, lot_numbers)
            swap = PendingSwap(
                signature=signature,
                last_valid_block_height=last_valid_block_height,
                address=address,
                from_token=from_token,
                from_token_price=from_token_price,
                to_token=to_token,
                to_token_price=to_token_price,
                lot_selection_method=method,
                lots=tuple(lots),
            )
            self.swaps.append(swap)
            self._commit()
        logging.info(
            "Pending swap {}: {} {} to {} at {}".format(
                signature, from_amount, from_token, to_token, address
            )
        )
        return swap

    def confirm_swap(
        self, signature: str, from_amount: int, to_amount: int, when: _datetime.date
    ) -> PendingSwap:
        """Settle a swap with the amounts actually exchanged.

        If less than the held amount was swapped out, the record's lot selection
        method apportions which held Lots were used; the rest return to the source.
        The swapped Lots are disposed at from_token_price, and a single new Lot of
        `to_amount` is acquired at to_token_price.

        Raises:
            PendingSwapNotFound: if `signature` isn't pending.
            AccountDoesNotExist: if the destination account has gone away.
            ValueError: if `from_amount` isn't in (0, held amount], or `to_amount`
                        isn't positive.
        """
        if to_amount <= 0:
            raise ValueError(f"to_amount must be positive, not {to_amount}")
        with self.deferred_save():
            swap = self._resolve(
                self.swaps,
                "signature",
                signature,
                PendingSwapNotFound,
                PendingState.CONFIRMED,
            )
            held = functions.total(swap.lots)
            if not (0 < from_amount <= held):
                raise ValueError(f"from_amount {from_amount} outside (0, {held}]")
            self._get(swap.address, swap.to_token)

            swapped, unswapped = self._select(
                swap.lots, from_amount, swap.lot_selection_method
            )
            if unswapped:
                self._merge(swap.address, swap.from_token, unswapped)
            self._dispose(
                swapped,
                swap.from_token,
                when,
                swap.from_token_price,
                SwapDisposal(signature=signature, token=swap.to_token, amount=to_amount),
            )
            lot = Lot(
                lot_number=self.next_lot_number(),
                acquisition=LotAcquisition(
                    when=when,
                    price=swap.to_token_price,
                    kind=SwapAcquisition(
                        signature=signature, token=swap.from_token, amount=from_amount
                    ),
                ),
                amount=to_amount,
            )
            self._merge(swap.address, swap.to_token, [lot])
            self._commit()
        return swap

    def cancel_swap(self, signature: str) -> PendingSwap:
        with self.deferred_save():
            swap = self._resolve(
                self.swaps,
                "signature",
                signature,
                PendingSwapNotFound,
                PendingState.CANCELLED,
            )
            self._merge(swap.address, swap.from_token, swap.lots)
            self._commit()
        return swap

    def pending_swaps(self) -> List[PendingSwap]:
        return list(self.swaps)

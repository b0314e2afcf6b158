# coding: utf-8
""" Reusable test elements """
# stdlib imports
import inspect
import os
import shutil
import tempfile
from datetime import date
from decimal import Decimal


# local imports
from lotledger.config import CONFIG
from lotledger.inventory import (
    Ledger,
    Lot,
    LotAcquisition,
    TrackedAccount,
    TransactionAcquisition,
)


#  Tests run against the packaged defaults, whatever the local config file says.
CONFIG.make_default()

DB_URI = CONFIG.test_db_uri


def logPoint(context):
    """" Utility function to trace control flow """
    callingFunction = inspect.stack()[1][3]
    print("in %s - %s()" % (context, callingFunction))


def make_acquisition(when, price, signature="", slot=0):
    """LotAcquisition by on-chain transaction; `when` as ISO 8601 string."""
    return LotAcquisition(
        when=date.fromisoformat(when),
        price=Decimal(price),
        kind=TransactionAcquisition(slot=slot, signature=signature or when),
    )


def make_lot(lot_number, when, price, amount):
    return Lot(
        lot_number=lot_number,
        acquisition=make_acquisition(when, price),
        amount=amount,
    )


def make_account(address, token="SOL", lots=(), description="", epoch=0):
    return TrackedAccount(
        address=address,
        token=token,
        description=description,
        last_update_epoch=epoch,
        last_update_balance=sum(lot.amount for lot in lots),
        lots=tuple(lots),
    )


class LedgerMixin(object):
    """Provide an in-memory Ledger; set up accounts with `add_account`."""

    def setUp(self):
        super(LedgerMixin, self).setUp()
        self.ledger = Ledger()

    def add_account(self, address, token="SOL", holdings=()):
        """Track (address, token), acquiring each (when, price, amount) in turn.

        Returns:
            The acquired Lots, in the order given.
        """
        self.ledger.add_account(make_account(address, token))
        return [
            self.ledger.record_acquisition(
                address, token, amount, make_acquisition(when, price)
            )
            for when, price, amount in holdings
        ]

    def balance(self, address, token="SOL"):
        return self.ledger.get_account(address, token).last_update_balance

    def lots(self, address, token="SOL"):
        return list(self.ledger.get_account(address, token).lots)


class TempDirMixin(object):
    """ Mixin to provide a scratch ledger directory, removed after each test """

    def setUp(self):
        super(TempDirMixin, self).setUp()
        self.directory = tempfile.mkdtemp(prefix="lotledger-test-")
        self.addCleanup(shutil.rmtree, self.directory, ignore_errors=True)

    @property
    def snapshot_path(self):
        return os.path.join(self.directory, CONFIG.get("ledger", "snapshot"))

    @property
    def legacy_path(self):
        return os.path.join(self.directory, CONFIG.legacy_stores[0])

# coding: utf-8
"""
Unit tests for lotledger.inventory.api: accounts, the lot store, disposals,
grouped saves and ancillary records.
"""
# stdlib imports
import unittest
from unittest import mock
from datetime import date
from decimal import Decimal


# local imports
from lotledger.models import Exchange, LotSelectionMethod, OrderSide
from lotledger.inventory import (
    Ledger,
    Lot,
    LotAcquisition,
    EpochReward,
    OtherDisposal,
    TaxRate,
    SweepStakeAccount,
    ConservationError,
    AccountAlreadyExists,
    AccountDoesNotExist,
    InsufficientBalance,
    ImportFailed,
)
from lotledger.inventory import api
from common import LedgerMixin, TempDirMixin, make_account, make_acquisition, make_lot


class AccountsTestCase(LedgerMixin, unittest.TestCase):
    def testAddAccount(self):
        self.ledger.add_account(make_account("wallet", description="Main"))
        account = self.ledger.get_account("wallet", "SOL")
        self.assertEqual(account.description, "Main")
        self.assertEqual(account.last_update_balance, 0)
        self.assertEqual(account.lots, ())

    def testAddAccountTwice(self):
        self.ledger.add_account(make_account("wallet"))
        with self.assertRaises(AccountAlreadyExists) as cm:
            self.ledger.add_account(make_account("wallet"))
        self.assertEqual(cm.exception.address, "wallet")
        self.assertEqual(cm.exception.token, "SOL")

    def testSameAddressDifferentToken(self):
        self.ledger.add_account(make_account("wallet"))
        self.ledger.add_account(make_account("wallet", token="mSOL"))
        self.ledger.add_account(make_account("other"))
        self.assertEqual(
            {a.token for a in self.ledger.get_accounts_by_address("wallet")},
            {"SOL", "mSOL"},
        )
        self.assertEqual(self.ledger.get_account_addresses(), ["other", "wallet"])
        self.assertEqual(len(self.ledger.get_accounts()), 3)
        self.assertIsNone(self.ledger.get_account("other", "mSOL"))

    def testAddAccountAdvancesLotNumbers(self):
        """ Lot numbers handed out later never collide with preloaded lots """
        self.ledger.add_account(
            make_account("wallet", lots=[make_lot(41, "2023-01-01", "10", 5)])
        )
        self.assertEqual(self.ledger.next_lot_number(), 42)

    def testAddAccountMergesEqualAcquisitions(self):
        """ Preloaded lots sharing an acquisition record become one lot """
        self.ledger.add_account(
            make_account(
                "wallet",
                lots=[
                    make_lot(1, "2023-01-01", "10", 5),
                    make_lot(3, "2023-02-01", "10", 1),
                    make_lot(2, "2023-01-01", "10", 7),
                ],
            )
        )
        lots = self.ledger.get_account("wallet", "SOL").lots
        self.assertEqual(
            [(lot.lot_number, lot.amount) for lot in lots], [(1, 12), (3, 1)]
        )
        self.assertEqual(self.balance("wallet"), 13)

        #  Later acquisitions at the same basis fold into the merged lot
        self.ledger.record_acquisition(
            "wallet", "SOL", 2, make_acquisition("2023-01-01", "10")
        )
        self.assertEqual(self.lots("wallet")[0], lots[0]._replace(amount=14))
        self.assertEqual(len(self.lots("wallet")), 2)

    def testRemoveAccount(self):
        self.add_account("wallet", holdings=[("2023-01-01", "10", 100)])
        removed = self.ledger.remove_account("wallet", "SOL")
        self.assertEqual(removed.last_update_balance, 100)
        self.assertIsNone(self.ledger.get_account("wallet", "SOL"))
        with self.assertRaises(AccountDoesNotExist):
            self.ledger.remove_account("wallet", "SOL")

    def testUpdateAccount(self):
        self.add_account("wallet", holdings=[("2023-01-01", "10", 100)])
        account = self.ledger.update_account(
            "wallet", "SOL", description="Cold", last_update_epoch=400, no_sync=True
        )
        self.assertEqual(account.description, "Cold")
        self.assertEqual(account.last_update_epoch, 400)
        self.assertTrue(account.no_sync)
        self.assertEqual(account.last_update_balance, 100)
        self.assertEqual(self.ledger.get_account("wallet", "SOL"), account)

        with self.assertRaises(AccountDoesNotExist):
            self.ledger.update_account("nowhere", "SOL", description="x")


class LotStoreTestCase(LedgerMixin, unittest.TestCase):
    def setUp(self):
        super(LotStoreTestCase, self).setUp()
        self.jan, self.jun = self.add_account(
            "wallet",
            holdings=[("2023-01-01", "10", 100), ("2023-06-01", "20", 50)],
        )

    def testRecordAcquisition(self):
        self.assertEqual((self.jan.lot_number, self.jun.lot_number), (1, 2))
        self.assertEqual(self.balance("wallet"), 150)
        self.assertEqual(self.lots("wallet"), [self.jan, self.jun])

    def testRecordAcquisitionMerges(self):
        """ A second acquisition with an identical record joins the existing Lot """
        lot = self.ledger.record_acquisition(
            "wallet", "SOL", 25, self.jan.acquisition
        )
        self.assertEqual(self.lots("wallet"), [self.jan._replace(amount=125), self.jun])
        self.assertEqual(self.balance("wallet"), 175)
        self.assertEqual(lot.amount, 25)

    def testRecordAcquisitionNonPositive(self):
        with self.assertRaises(ValueError):
            self.ledger.record_acquisition(
                "wallet", "SOL", 0, make_acquisition("2023-02-01", "1")
            )

    def testExtractScenarioA(self):
        lots = self.ledger.extract("wallet", "SOL", 120, LotSelectionMethod.FIFO)
        self.assertEqual(
            lots, [self.jan._replace(lot_number=3, amount=70), self.jun]
        )
        self.assertEqual(self.lots("wallet"), [self.jan._replace(amount=30)])
        self.assertEqual(self.balance("wallet"), 30)

    def testExtractDefaultMethod(self):
        """ Without a method, extraction uses the configured default (FIFO) """
        lots = self.ledger.extract("wallet", "SOL", 50)
        self.assertEqual(lots, [self.jun])

    def testExtractLotNumbers(self):
        lots = self.ledger.extract("wallet", "SOL", 10, lot_numbers=[2])
        self.assertEqual(lots, [self.jun._replace(lot_number=3, amount=10)])
        self.assertEqual(self.lots("wallet"), [self.jan, self.jun._replace(amount=40)])

    def testExtractInsufficient(self):
        with self.assertRaises(InsufficientBalance) as cm:
            self.ledger.extract("wallet", "SOL", 151)
        self.assertEqual(cm.exception.available, 150)
        self.assertEqual(self.balance("wallet"), 150)

        with self.assertRaises(InsufficientBalance) as cm:
            self.ledger.extract("wallet", "SOL", 51, lot_numbers=[2])
        self.assertEqual(cm.exception.available, 50)

    def testExtractNonPositive(self):
        with self.assertRaises(ValueError):
            self.ledger.extract("wallet", "SOL", 0)
        with self.assertRaises(ValueError):
            self.ledger.extract("wallet", "SOL", -5)

    def testExtractUnknownAccount(self):
        with self.assertRaises(AccountDoesNotExist):
            self.ledger.extract("nowhere", "SOL", 1)

    def testExtractMergeInverse(self):
        """ Merging extracted lots back restores the account exactly """
        before = self.ledger.get_account("wallet", "SOL")
        for method in LotSelectionMethod:
            lots = self.ledger.extract("wallet", "SOL", 75, method)
            self.ledger.merge("wallet", "SOL", lots)
            self.assertEqual(self.ledger.get_account("wallet", "SOL"), before)

    def testMergeUnknownAccount(self):
        with self.assertRaises(AccountDoesNotExist):
            self.ledger.merge("nowhere", "SOL", [self.jan])

    def testNextLotNumberMonotonic(self):
        numbers = [self.ledger.next_lot_number() for _ in range(3)]
        self.assertEqual(numbers, [3, 4, 5])

    def testRecordDisposal(self):
        when = date(2024, 2, 1)
        disposed = self.ledger.record_disposal(
            "wallet",
            "SOL",
            60,
            OtherDisposal(description="Network fee"),
            when,
            Decimal("95"),
            method=LotSelectionMethod.LIFO,
        )
        self.assertEqual(
            [dl.lot for dl in disposed],
            [self.jan._replace(lot_number=3, amount=10), self.jun],
        )
        for dl in disposed:
            self.assertEqual(dl.when, when)
            self.assertEqual(dl.price, Decimal("95"))
            self.assertEqual(dl.token, "SOL")
        self.assertEqual(self.balance("wallet"), 90)
        self.assertEqual(self.ledger.disposed_lots(), disposed)

    def testDisposedLotsSorted(self):
        kind = OtherDisposal(description="Spent")
        self.ledger.record_disposal("wallet", "SOL", 10, kind, date(2024, 3, 1), Decimal(1))
        self.ledger.record_disposal("wallet", "SOL", 10, kind, date(2024, 1, 1), Decimal(1))
        self.assertEqual(
            [dl.when for dl in self.ledger.disposed_lots()],
            [date(2024, 1, 1), date(2024, 3, 1)],
        )

    def testRecordEpochRewards(self):
        self.add_account("stake1")
        self.add_account("stake2")
        lots = self.ledger.record_epoch_rewards(
            epoch=500,
            slot=216000000,
            when=date(2023, 9, 1),
            price=Decimal("19.5"),
            rewards={"stake1": 1000, "stake2": 0},
        )
        self.assertEqual(len(lots), 1)
        self.assertEqual(lots[0].acquisition.kind, EpochReward(epoch=500, slot=216000000))
        self.assertEqual(self.balance("stake1"), 1000)
        self.assertEqual(self.balance("stake2"), 0)
        self.assertEqual(
            self.ledger.get_account("stake2", "SOL").last_update_epoch, 500
        )

    def testRecordEpochRewardsAllOrNothing(self):
        self.add_account("stake1")
        with self.assertRaises(AccountDoesNotExist):
            self.ledger.record_epoch_rewards(
                500, 1, date(2023, 9, 1), Decimal(20), {"stake1": 10, "missing": 10}
            )
        self.assertEqual(self.balance("stake1"), 0)


class ConservationTestCase(LedgerMixin, TempDirMixin, unittest.TestCase):
    def setUp(self):
        super(ConservationTestCase, self).setUp()
        self.ledger = Ledger(self.snapshot_path)
        self.add_account("wallet", holdings=[("2023-01-01", "10", 100)])
        account = self.ledger.get_account("wallet", "SOL")
        #  Corrupt the cached balance behind the ledger's back.
        self.ledger.accounts[("wallet", "SOL")] = account._replace(
            last_update_balance=101
        )

    def testFaultDetected(self):
        with self.assertRaises(ConservationError):
            self.ledger.extract("wallet", "SOL", 10)

    def testFailClosed(self):
        """ Once a fault is seen, the ledger refuses to write snapshots """
        with self.assertRaises(ConservationError):
            self.ledger.merge("wallet", "SOL", [])
        with self.assertRaises(ConservationError):
            self.ledger.save()

    def testAddUnbalancedAccount(self):
        ledger = Ledger()
        account = make_account("other", lots=[make_lot(1, "2023-01-01", "1", 5)])
        with self.assertRaises(ConservationError):
            ledger.add_account(account._replace(last_update_balance=4))


class SelectionFaultTestCase(LedgerMixin, unittest.TestCase):
    """ Lot selection that comes up short faults the ledger """

    def setUp(self):
        super(SelectionFaultTestCase, self).setUp()
        self.add_account("wallet", holdings=[("2023-01-01", "10", 100)])
        self.add_account("wallet", "mSOL")

    def assertFaulted(self, operation, *args):
        with mock.patch.object(
            api.functions, "select_lots", side_effect=ConservationError("short")
        ):
            with self.assertRaises(ConservationError):
                operation(*args)
        with self.assertRaises(ConservationError):
            self.ledger.save()

    def testExtract(self):
        self.assertFaulted(self.ledger.extract, "wallet", "SOL", 10)

    def testCloseOrder(self):
        self.ledger.open_order(
            OrderSide.SELL,
            Exchange.KRAKEN,
            "SOLUSD",
            Decimal("30"),
            "o1",
            "wallet",
            "SOL",
            60,
            date(2023, 9, 1),
        )
        self.assertFaulted(self.ledger.close_order, "o1", 40, date(2023, 9, 2))

    def testConfirmSwap(self):
        self.ledger.record_swap(
            "sig1", 1000, "wallet", "SOL", Decimal("25"), 50, "mSOL", Decimal("27")
        )
        self.assertFaulted(self.ledger.confirm_swap, "sig1", 40, 36, date(2023, 7, 1))

    def testRecordWithdrawalFee(self):
        self.add_account("cold")
        self.assertFaulted(
            self.ledger.record_withdrawal,
            Exchange.KRAKEN,
            "tag",
            "wallet",
            "cold",
            "SOL",
            20,
            1,
        )


class DeferredSaveTestCase(LedgerMixin, TempDirMixin, unittest.TestCase):
    def setUp(self):
        super(DeferredSaveTestCase, self).setUp()
        self.ledger = Ledger(self.snapshot_path)
        self.add_account("wallet", holdings=[("2023-01-01", "10", 100)])
        self.add_account("other")

    def testEachMutationSaves(self):
        with mock.patch.object(api.snapshot, "write") as write:
            self.ledger.extract("wallet", "SOL", 10)
            self.ledger.merge("other", "SOL", [make_lot(7, "2023-02-01", "1", 10)])
        self.assertEqual(write.call_count, 2)

    def testGroupSavesOnce(self):
        with mock.patch.object(api.snapshot, "write") as write:
            with self.ledger.deferred_save():
                lots = self.ledger.extract("wallet", "SOL", 10)
                self.ledger.merge("other", "SOL", lots)
            self.assertEqual(write.call_count, 1)

    def testNestedGroupSavesOnce(self):
        with mock.patch.object(api.snapshot, "write") as write:
            with self.ledger.deferred_save():
                with self.ledger.deferred_save():
                    self.ledger.extract("wallet", "SOL", 10)
                self.ledger.extract("wallet", "SOL", 10)
            self.assertEqual(write.call_count, 1)

    def testAutoSave(self):
        with mock.patch.object(api.snapshot, "write") as write:
            self.ledger.auto_save(False)
            lots = self.ledger.extract("wallet", "SOL", 10)
            self.ledger.merge("other", "SOL", lots)
            self.assertEqual(write.call_count, 0)
            self.ledger.auto_save(True)
            self.assertEqual(write.call_count, 1)
            #  Nothing left to write
            self.ledger.auto_save(True)
            self.assertEqual(write.call_count, 1)

    def testGroupRollback(self):
        before = {pocket: acct for pocket, acct in self.ledger.accounts.items()}
        counter = self.ledger.lot_number_counter
        with mock.patch.object(api.snapshot, "write") as write:
            with self.assertRaises(AccountDoesNotExist):
                with self.ledger.deferred_save():
                    lots = self.ledger.extract("wallet", "SOL", 40)
                    self.ledger.merge("nowhere", "SOL", lots)
            self.assertEqual(write.call_count, 0)
        self.assertEqual(self.ledger.accounts, before)
        self.assertEqual(self.ledger.lot_number_counter, counter)


class ImportTestCase(LedgerMixin, unittest.TestCase):
    def setUp(self):
        super(ImportTestCase, self).setUp()
        self.add_account("wallet", holdings=[("2023-01-01", "10", 100)])
        self.other = Ledger()
        self.other.add_account(
            make_account(
                "wallet",
                lots=[
                    make_lot(1, "2023-01-01", "10", 5),
                    make_lot(2, "2023-03-01", "12", 7),
                ],
            )
        )
        self.other.add_account(
            make_account("cold", lots=[make_lot(3, "2022-01-01", "30", 9)])
        )
        self.other.record_disposal(
            "cold", "SOL", 4, OtherDisposal(description="x"), date(2023, 1, 1), Decimal(1)
        )

    def testImport(self):
        self.ledger.import_db(self.other)
        wallet = self.lots("wallet")
        self.assertEqual([lot.amount for lot in wallet], [105, 7])
        #  Identical acquisition merged into the existing lot; the other renumbered
        self.assertEqual(wallet[0].lot_number, 1)
        self.assertEqual(wallet[1].lot_number, 3)
        self.assertEqual(self.balance("cold"), 5)
        self.assertEqual(self.lots("cold")[0].lot_number, 4)

        disposed = self.ledger.disposed_lots()
        self.assertEqual(len(disposed), 1)
        self.assertEqual(disposed[0].lot.amount, 4)
        self.assertEqual(disposed[0].lot.lot_number, 5)
        self.assertEqual(self.ledger.next_lot_number(), 6)

    def testImportRefusesPending(self):
        self.other.add_account(make_account("dest"))
        self.other.record_transfer("sig", 10, "cold", "dest", "SOL", 1)
        with self.assertRaises(ImportFailed):
            self.ledger.import_db(self.other)
        self.assertIsNone(self.ledger.get_account("cold", "SOL"))


class AncillaryTestCase(LedgerMixin, unittest.TestCase):
    def testTaxRate(self):
        self.assertIsNone(self.ledger.get_tax_rate())
        rate = TaxRate(
            income=Decimal("0.35"),
            short_term_gain=Decimal("0.35"),
            long_term_gain=Decimal("0.15"),
        )
        self.ledger.set_tax_rate(rate)
        self.assertEqual(self.ledger.get_tax_rate(), rate)

    def testSweepStakeAccount(self):
        sweep = SweepStakeAccount(address="stake", stake_authority="auth")
        self.ledger.set_sweep_stake_account(sweep)
        self.assertEqual(self.ledger.get_sweep_stake_account(), sweep)
        self.ledger.set_sweep_stake_account(None)
        self.assertIsNone(self.ledger.get_sweep_stake_account())

    def testValidatorCreditScoresPruned(self):
        for epoch in range(100, 115):
            self.ledger.set_validator_credit_scores(epoch, {"vote": epoch})
        self.assertEqual(sorted(self.ledger.validator_credit_scores), list(range(105, 115)))
        self.assertIsNone(self.ledger.get_validator_credit_scores(104))
        self.assertEqual(self.ledger.get_validator_credit_scores(114), {"vote": 114})


if __name__ == "__main__":
    unittest.main()

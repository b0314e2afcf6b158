# coding: utf-8
"""
Unit tests for lotledger.inventory.report
"""
# stdlib imports
import unittest
from datetime import date
from decimal import Decimal


# 3rd party imports
import tablib


# local imports
from lotledger.models import Exchange
from lotledger.inventory import (
    Lot,
    LotAcquisition,
    DisposedLot,
    EpochReward,
    NotAvailable,
    ExchangeDisposal,
    WithdrawalFee,
    OtherDisposal,
)
from lotledger.inventory import report
from common import make_account, make_lot


SOL = 10 ** 9


class IncomeTestCase(unittest.TestCase):
    def testPurchaseIsNotIncome(self):
        lot = make_lot(1, "2023-01-01", "10", 2 * SOL)
        self.assertFalse(report.is_income(lot.acquisition.kind))
        self.assertEqual(report.income(lot, "SOL"), 0)

    def testRewardIsIncome(self):
        lot = Lot(
            lot_number=1,
            acquisition=LotAcquisition(
                when=date(2023, 1, 1),
                price=Decimal("20"),
                kind=EpochReward(epoch=400, slot=172800000),
            ),
            amount=SOL // 2,
        )
        self.assertEqual(report.income(lot, "SOL"), Decimal("10"))

    def testUnknownBasisIsIncome(self):
        self.assertTrue(report.is_income(NotAvailable()))

    def testUnknownKind(self):
        with self.assertRaises(ValueError):
            report.is_income(object())
        with self.assertRaises(ValueError):
            report.disposal_fee("FOO", "USD")


class FlattenAccountsTestCase(unittest.TestCase):
    def setUp(self):
        reward = Lot(
            lot_number=2,
            acquisition=LotAcquisition(
                when=date(2023, 2, 1),
                price=Decimal("20"),
                kind=EpochReward(epoch=410, slot=177120000),
            ),
            amount=SOL // 2,
        )
        self.accounts = [
            make_account(
                "wallet", lots=[make_lot(1, "2023-01-01", "10", 2 * SOL), reward]
            ),
            make_account("wallet", "mSOL", lots=[make_lot(3, "2023-03-01", "30", SOL)]),
            make_account("cold", lots=[make_lot(4, "2023-04-01", "25", 3 * SOL)]),
        ]

    def testFlatten(self):
        dataset = report.flatten_accounts(self.accounts)
        self.assertIsInstance(dataset, tablib.Dataset)
        self.assertEqual(dataset.headers, list(report.FlatLot._fields))
        self.assertEqual(len(dataset), 4)
        self.assertEqual(
            dataset[0],
            (
                "wallet",
                "SOL",
                1,
                "2023-01-01",
                "TransactionAcquisition",
                Decimal("2"),
                Decimal("10"),
                Decimal("20"),
                Decimal("0"),
            ),
        )
        self.assertEqual(
            dataset[1],
            (
                "wallet",
                "SOL",
                2,
                "2023-02-01",
                "EpochReward",
                Decimal("0.5"),
                Decimal("20"),
                Decimal("10"),
                Decimal("10"),
            ),
        )

    def testConsolidate(self):
        dataset = report.flatten_accounts(self.accounts, consolidate=True)
        self.assertEqual(len(dataset), 2)
        sol, msol = dataset
        self.assertEqual(
            sol,
            (None, "SOL", None, None, None, Decimal("5.5"), None, Decimal("105"), Decimal("10")),
        )
        self.assertEqual(msol[1], "mSOL")
        self.assertEqual(msol[5], Decimal("1"))


class FlattenDisposedTestCase(unittest.TestCase):
    def setUp(self):
        self.sold = DisposedLot(
            lot=make_lot(1, "2022-01-01", "10", 2 * SOL),
            when=date(2023, 6, 1),
            price=Decimal("30"),
            kind=ExchangeDisposal(
                exchange=Exchange.KRAKEN,
                pair="SOLUSD",
                order_id="o1",
                fee=(Decimal("1.5"), "USD"),
            ),
            token="SOL",
        )
        self.fee = DisposedLot(
            lot=make_lot(2, "2022-02-01", "40", SOL // 100),
            when=date(2022, 6, 1),
            price=Decimal("40"),
            kind=WithdrawalFee(),
            token="SOL",
        )
        self.gifted = DisposedLot(
            lot=make_lot(3, "2022-03-01", "50", SOL),
            when=date(2022, 9, 1),
            price=Decimal("35"),
            kind=OtherDisposal(description="gift"),
            token="SOL",
        )
        self.disposed = [self.sold, self.fee, self.gifted]

    def testFlattenGain(self):
        gain = report.flatten_gain(self.sold, "USD")
        self.assertEqual(gain.proceeds, Decimal("60"))
        self.assertEqual(gain.cost, Decimal("20"))
        self.assertEqual(gain.fee, Decimal("1.5"))
        self.assertEqual(gain.gain, Decimal("38.5"))
        self.assertTrue(gain.longterm)
        self.assertEqual(gain.kind, "ExchangeDisposal")

    def testFeeInOtherCurrency(self):
        sold = self.sold._replace(
            kind=self.sold.kind.__class__(
                exchange=Exchange.KRAKEN, pair="SOLUSD", order_id="o1",
                fee=(Decimal("0.01"), "SOL"),
            )
        )
        gain = report.flatten_gain(sold, "USD")
        self.assertEqual(gain.fee, 0)
        self.assertEqual(gain.gain, Decimal("40"))

    def testShortTerm(self):
        gain = report.flatten_gain(self.gifted, "USD")
        self.assertFalse(gain.longterm)
        self.assertEqual(gain.gain, Decimal("-15"))

    def testSortedByDisposalDate(self):
        dataset = report.flatten_disposed(self.disposed)
        self.assertEqual(dataset.headers, list(report.FlatGain._fields))
        self.assertEqual([row[1] for row in dataset], [2, 3, 1])
        self.assertEqual(dataset[2][3], "2023-06-01")

    def testDateRange(self):
        dataset = report.flatten_disposed(
            self.disposed, begin=date(2022, 6, 1), end=date(2023, 6, 1)
        )
        self.assertEqual([row[1] for row in dataset], [2, 3])

    def testConsolidate(self):
        dataset = report.flatten_disposed(self.disposed, consolidate=True)
        self.assertEqual(len(dataset), 1)
        (row,) = dataset
        self.assertEqual(row[0], "SOL")
        self.assertEqual(row[5], Decimal("3.01"))
        #  38.5 + 0 - 15
        self.assertEqual(row[9], Decimal("23.5"))
        self.assertIsNone(row[10])


if __name__ == "__main__":
    unittest.main()

# coding: utf-8
"""CLI front end to report ledger holdings and disposals, and manage credentials.


CONFIGURE
---------
We look for the config file in ~/.config/lotledger/lotledger.cfg (it's written with
default values the first time the package is imported).  It's in INI format; the
sections most likely to need editing are:

    [ledger]
    default_dir = /path/to/ledger/directory
    lot_selection_method = FIFO
    quote_currency = USD

    [tokens]
    native = SOL
    fiat_fungible = USDC
    fungible_groups = SOL,wSOL
    decimals = SOL:9 wSOL:9 mSOL:9 USDC:6 USDT:6

    [db]
    dialect = sqlite
    database = /path/to/credentials.db

REPORT
------
To report held lots:
    python script.py lots /path/to/desired/dumpfile.csv

To report realized gains for a period:
    python script.py gains -b <first day of period> -e <first day of next period> /path/to/desired/dumpfile.csv

Either report can be consolidated by token by passing the --consolidate/-c option.

To list operations still awaiting settlement:
    python script.py pending

MAINTENANCE
-----------
To merge another ledger's accounts and disposed lots into this one:
    python script.py import-db /path/to/other/ledger/directory

To store/remove/list exchange API credentials:
    python script.py credentials set kraken <api key> <secret>
    python script.py credentials clear kraken
    python script.py credentials list
"""
# stdlib imports
import argparse
from argparse import ArgumentParser, _SubParsersAction
import logging
from typing import Tuple


# Local imports
from lotledger import CONFIG, utils
from lotledger.models import CredentialStore, Exchange
from lotledger.inventory import report
from lotledger.inventory.api import Ledger


def dump_lots(args: argparse.Namespace) -> None:
    """Write held Lots to disk.

    Args:
        args: argparse.Namespace instance populated with parsed CLI arguments.
    """
    ledger = Ledger.open(args.ledger_dir)
    dataset = report.flatten_accounts(
        ledger.get_accounts(), consolidate=args.consolidate
    )
    with open(args.file, "w") as csvfile:
        csvfile.write(dataset.csv)


def dump_gains(args: argparse.Namespace) -> None:
    """Write disposed Lots falling within the CLI date range to disk.

    Args:
        args: argparse.Namespace instance populated with parsed CLI arguments.
    """
    ledger = Ledger.open(args.ledger_dir)
    dataset = report.flatten_disposed(
        ledger.disposed_lots(),
        begin=args.begin,
        end=args.end,
        consolidate=args.consolidate,
    )
    with open(args.file, "w") as csvfile:
        csvfile.write(dataset.csv)


def list_pending(args: argparse.Namespace) -> None:
    """Print unresolved pending operations and open orders.

    Args:
        args: argparse.Namespace instance populated with parsed CLI arguments.
    """
    ledger = Ledger.open(args.ledger_dir)
    exchange = Exchange.parse(args.exchange) if args.exchange else None
    for deposit in ledger.pending_deposits(exchange):
        print(
            "deposit    {} {} {} -> {}".format(
                deposit.signature, deposit.amount, deposit.token, deposit.exchange.name
            )
        )
    for withdrawal in ledger.pending_withdrawals(exchange):
        print(
            "withdrawal {} {} {} -> {}".format(
                withdrawal.tag, withdrawal.amount, withdrawal.token, withdrawal.to_address
            )
        )
    for transfer in ledger.pending_transfers():
        print(
            "transfer   {} {} -> {}".format(
                transfer.signature, transfer.from_address, transfer.to_address
            )
        )
    for swap in ledger.pending_swaps():
        print(
            "swap       {} {} -> {}".format(
                swap.signature, swap.from_token, swap.to_token
            )
        )
    for order in ledger.open_orders(exchange):
        print(
            "order      {} {} {} {} @ {}".format(
                order.order_id, order.side.name, order.amount, order.pair, order.price
            )
        )


def import_db(args: argparse.Namespace) -> None:
    """Merge another ledger directory into this one.

    Args:
        args: argparse.Namespace instance populated with parsed CLI arguments.
    """
    other = Ledger.load(args.other)
    ledger = Ledger.open(args.ledger_dir)
    ledger.import_db(other)
    print("Imported {} into {}".format(args.other, ledger.path))


def manage_credentials(args: argparse.Namespace) -> None:
    """Set, clear or list exchange API credentials.

    Args:
        args: argparse.Namespace instance populated with parsed CLI arguments.
    """
    store = CredentialStore(CONFIG.db_uri)
    if args.action == "list":
        for exchange in store.get_configured_exchanges():
            print(exchange.name)
        return

    if not args.exchange:
        raise ValueError("Exchange required for '{}'".format(args.action))
    exchange = Exchange.parse(args.exchange)
    if args.action == "set":
        if not (args.api_key and args.secret):
            raise ValueError("API key and secret required")
        store.set_exchange_credentials(
            exchange, args.api_key, args.secret, subaccount=args.subaccount
        )
    else:
        store.clear_exchange_credentials(exchange)


def make_argparser() -> Tuple[ArgumentParser, _SubParsersAction]:
    """Return subparsers along with the ArgumentParer, so the latter can be extended.
    """
    argparser = ArgumentParser(description="Lot ledger utility")
    argparser.add_argument(
        "-d",
        "--ledger-dir",
        default=None,
        help="Ledger directory (default: [ledger] default_dir from config)",
    )
    argparser.add_argument(
        "-v", "--verbose", action="count", default=0, help="-vv for DEBUG"
    )
    argparser.set_defaults(func=None)
    subparsers = argparser.add_subparsers()

    dump_parser = subparsers.add_parser(
        "lots", aliases=["dump"], help="Dump held Lots to CSV file"
    )
    dump_parser.add_argument("file", help="CSV file")
    dump_parser.add_argument("-c", "--consolidate", action="store_true")
    dump_parser.set_defaults(func=dump_lots)

    gain_parser = subparsers.add_parser("gains", help="Dump disposed Lots to CSV file")
    gain_parser.add_argument("file", help="CSV file")
    gain_parser.add_argument(
        "-b",
        "--begin",
        default=None,
        help="Start date for Gain report period (included)",
    )
    gain_parser.add_argument(
        "-e",
        "--end",
        default=None,
        help="End date for Gain report period (excluded)",
    )
    gain_parser.add_argument("-c", "--consolidate", action="store_true")
    gain_parser.set_defaults(func=dump_gains)

    pending_parser = subparsers.add_parser(
        "pending", help="List pending operations and open orders"
    )
    pending_parser.add_argument("-x", "--exchange", default=None)
    pending_parser.set_defaults(func=list_pending)

    import_parser = subparsers.add_parser(
        "import-db", help="Merge another ledger into this one"
    )
    import_parser.add_argument("other", help="Ledger directory to import")
    import_parser.set_defaults(func=import_db)

    credentials_parser = subparsers.add_parser(
        "credentials", help="Manage exchange API credentials"
    )
    credentials_parser.add_argument("action", choices=["set", "clear", "list"])
    credentials_parser.add_argument("exchange", nargs="?", default=None)
    credentials_parser.add_argument("api_key", nargs="?", default=None)
    credentials_parser.add_argument("secret", nargs="?", default=None)
    credentials_parser.add_argument("-s", "--subaccount", default=None)
    credentials_parser.set_defaults(func=manage_credentials)

    return argparser, subparsers


def run(argparser: ArgumentParser) -> None:
    """Parse args and pass them to the indication function.

    Args:
        argparser: the ArgumentParser instance returned by make_argparser().
    """
    args = argparser.parse_args()

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level)

    # Parse date args
    if getattr(args, "begin", None):
        args.begin = utils.parse_date(args.begin)

    if getattr(args, "end", None):
        args.end = utils.parse_date(args.end)

    # Execute selected function
    if args.func:
        args.func(args)
    else:
        argparser.print_help()


def main() -> None:
    argparser, subparsers = make_argparser()
    run(argparser)


if __name__ == "__main__":
    main()

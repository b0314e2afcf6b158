# coding: utf-8
"""Serialization of the whole ledger to a single JSON document.

Every record type has a pydantic document model mirroring its fields.  Documents
are built from the immutable records by attribute (ConfigDict(from_attributes=True))
and dumped in JSON mode: Decimals become strings (no float rounding), dates become
ISO 8601 strings and enums are stored by name.  Acquisition/disposal kinds carry a
literal {"kind": <class name>} tag that selects the variant on the way back in.

Validation is strict where it matters: integer amounts, lot numbers, epochs and
block heights must be JSON integers; 1.9 is rejected rather than truncated.

Decoding is forward compatible: fields absent from an older document take the
record's default, or the document model's (e.g. an untagged account holds the
native token).

The snapshot is written atomically - to a temporary file in the same directory,
flushed to disk, then renamed over the canonical file - so the canonical file is
always either the previous complete snapshot or the new one.
"""

__all__ = [
    "VERSION",
    "encode",
    "decode",
    "encode_ledger",
    "decode_ledger",
    "load",
    "load_legacy",
    "write",
    "ensure_directory",
]


# stdlib imports
import dataclasses
import datetime as _datetime
from decimal import Decimal, InvalidOperation
import json
import logging
import os
import tempfile
from typing import (
    Annotated,
    Any,
    ClassVar,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Tuple,
    Union,
)


# 3rd party imports
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    PlainSerializer,
    StrictInt,
    Tag,
    TypeAdapter,
    ValidationError,
)


# local imports
from lotledger import tokens
from lotledger.models import Exchange, OrderSide, LotSelectionMethod, PendingState
from .errors import SnapshotIOError
from .types import (
    EpochReward,
    TransactionAcquisition,
    ExchangeAcquisition,
    NotAvailable,
    FiatAcquisition,
    SwapAcquisition,
    LotAcquisition,
    Lot,
    ExchangeDisposal,
    SwapDisposal,
    WithdrawalFee,
    FiatDisposal,
    OtherDisposal,
    DisposedLot,
    OpenOrder,
    PendingDeposit,
    PendingWithdrawal,
    PendingTransfer,
    PendingSwap,
    SweepStakeAccount,
    TaxRate,
    TrackedAccount,
)


VERSION = 1


###############################################################################
# DOCUMENT MODELS
###############################################################################
def by_name(enum_cls):
    """Annotated enum type stored in documents by member name."""

    def parse(value):
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls[value]
        except (KeyError, TypeError):
            raise ValueError(f"Unknown {enum_cls.__name__} {value!r}")

    return Annotated[
        enum_cls,
        BeforeValidator(parse),
        PlainSerializer(lambda member: member.name, return_type=str),
    ]


ExchangeName = by_name(Exchange)
OrderSideName = by_name(OrderSide)
LotSelectionMethodName = by_name(LotSelectionMethod)
PendingStateName = by_name(PendingState)


def _to_record(value: Any) -> Any:
    if isinstance(value, Document):
        return value.to_record()
    if isinstance(value, list):
        return tuple(_to_record(item) for item in value)
    return value


class Document(BaseModel):
    """Base for documents mirroring one NamedTuple record type."""

    model_config = ConfigDict(from_attributes=True)

    record: ClassVar[type]

    def to_record(self):
        return self.record(
            **{name: _to_record(getattr(self, name)) for name in self.record._fields}
        )


class KindDocument(Document):
    """Base for documents mirroring one acquisition/disposal kind."""

    def to_record(self):
        return self.record(
            **{f.name: getattr(self, f.name) for f in dataclasses.fields(self.record)}
        )


class EpochRewardDoc(KindDocument):
    record: ClassVar[type] = EpochReward
    kind: Literal["EpochReward"] = "EpochReward"
    epoch: StrictInt
    slot: StrictInt


class TransactionAcquisitionDoc(KindDocument):
    record: ClassVar[type] = TransactionAcquisition
    kind: Literal["TransactionAcquisition"] = "TransactionAcquisition"
    slot: StrictInt
    signature: str


class ExchangeAcquisitionDoc(KindDocument):
    record: ClassVar[type] = ExchangeAcquisition
    kind: Literal["ExchangeAcquisition"] = "ExchangeAcquisition"
    exchange: ExchangeName
    pair: str
    order_id: str


class NotAvailableDoc(KindDocument):
    record: ClassVar[type] = NotAvailable
    kind: Literal["NotAvailable"] = "NotAvailable"


class FiatAcquisitionDoc(KindDocument):
    record: ClassVar[type] = FiatAcquisition
    kind: Literal["FiatAcquisition"] = "FiatAcquisition"


class SwapAcquisitionDoc(KindDocument):
    record: ClassVar[type] = SwapAcquisition
    kind: Literal["SwapAcquisition"] = "SwapAcquisition"
    signature: str
    token: str
    amount: StrictInt


class ExchangeDisposalDoc(KindDocument):
    record: ClassVar[type] = ExchangeDisposal
    kind: Literal["ExchangeDisposal"] = "ExchangeDisposal"
    exchange: ExchangeName
    pair: str
    order_id: str
    fee: Optional[Tuple[Decimal, str]] = None


class SwapDisposalDoc(KindDocument):
    record: ClassVar[type] = SwapDisposal
    kind: Literal["SwapDisposal"] = "SwapDisposal"
    signature: str
    token: str
    amount: StrictInt


class WithdrawalFeeDoc(KindDocument):
    record: ClassVar[type] = WithdrawalFee
    kind: Literal["WithdrawalFee"] = "WithdrawalFee"


class FiatDisposalDoc(KindDocument):
    record: ClassVar[type] = FiatDisposal
    kind: Literal["FiatDisposal"] = "FiatDisposal"


class OtherDisposalDoc(KindDocument):
    record: ClassVar[type] = OtherDisposal
    kind: Literal["OtherDisposal"] = "OtherDisposal"
    description: str


def kind_tag(value: Any) -> Optional[str]:
    """Variant name of a kind: its "kind" tag in a document, else its class name."""
    if isinstance(value, dict):
        return value.get("kind")
    return type(value).__name__


def tagged(*docs):
    """Discriminated union over kind documents, selected by kind_tag()."""
    return Annotated[
        Union[tuple(Annotated[doc, Tag(doc.record.__name__)] for doc in docs)],
        Discriminator(kind_tag),
    ]


AcquisitionKindDoc = tagged(
    EpochRewardDoc,
    TransactionAcquisitionDoc,
    ExchangeAcquisitionDoc,
    NotAvailableDoc,
    FiatAcquisitionDoc,
    SwapAcquisitionDoc,
)

DisposalKindDoc = tagged(
    ExchangeDisposalDoc,
    SwapDisposalDoc,
    WithdrawalFeeDoc,
    FiatDisposalDoc,
    OtherDisposalDoc,
)


class LotAcquisitionDoc(Document):
    record: ClassVar[type] = LotAcquisition
    when: _datetime.date
    price: Decimal
    kind: AcquisitionKindDoc


class LotDoc(Document):
    record: ClassVar[type] = Lot
    lot_number: StrictInt
    acquisition: LotAcquisitionDoc
    amount: StrictInt


class DisposedLotDoc(Document):
    record: ClassVar[type] = DisposedLot
    lot: LotDoc
    when: _datetime.date
    price: Decimal
    kind: DisposalKindDoc
    token: str = Field(default_factory=tokens.native_token)


class TrackedAccountDoc(Document):
    record: ClassVar[type] = TrackedAccount
    address: str
    token: str = Field(default_factory=tokens.native_token)
    description: str = ""
    last_update_epoch: StrictInt = 0
    last_update_balance: StrictInt
    lots: List[LotDoc] = Field(default_factory=list)
    no_sync: bool = False


class PendingDepositDoc(Document):
    record: ClassVar[type] = PendingDeposit
    exchange: ExchangeName
    deposit_address: str
    signature: str
    last_valid_block_height: StrictInt = 0
    from_address: str
    token: str = Field(default_factory=tokens.native_token)
    amount: StrictInt
    lots: List[LotDoc] = Field(default_factory=list)
    state: PendingStateName = PendingState.PENDING


class PendingWithdrawalDoc(Document):
    record: ClassVar[type] = PendingWithdrawal
    exchange: ExchangeName
    tag: str
    from_address: str
    to_address: str
    token: str = Field(default_factory=tokens.native_token)
    amount: StrictInt
    fee: StrictInt
    lots: List[LotDoc] = Field(default_factory=list)
    fee_lots: List[LotDoc] = Field(default_factory=list)
    state: PendingStateName = PendingState.PENDING


class PendingTransferDoc(Document):
    record: ClassVar[type] = PendingTransfer
    signature: str
    last_valid_block_height: StrictInt = 0
    from_address: str
    to_address: str
    token: str = Field(default_factory=tokens.native_token)
    lots: List[LotDoc] = Field(default_factory=list)
    state: PendingStateName = PendingState.PENDING


class PendingSwapDoc(Document):
    record: ClassVar[type] = PendingSwap
    signature: str
    last_valid_block_height: StrictInt = 0
    address: str
    from_token: str
    from_token_price: Decimal
    to_token: str
    to_token_price: Decimal
    lot_selection_method: LotSelectionMethodName
    lots: List[LotDoc] = Field(default_factory=list)
    state: PendingStateName = PendingState.PENDING


class OpenOrderDoc(Document):
    record: ClassVar[type] = OpenOrder
    exchange: ExchangeName
    pair: str
    side: OrderSideName
    price: Decimal
    order_id: str
    deposit_address: str
    token: str = Field(default_factory=tokens.native_token)
    creation_time: _datetime.date
    amount: StrictInt
    lots: List[LotDoc] = Field(default_factory=list)


class TaxRateDoc(Document):
    record: ClassVar[type] = TaxRate
    income: Decimal
    short_term_gain: Decimal
    long_term_gain: Decimal


class SweepStakeAccountDoc(Document):
    record: ClassVar[type] = SweepStakeAccount
    address: str
    stake_authority: str


class LedgerDoc(BaseModel):
    """The whole snapshot.  Unknown top-level keys are ignored."""

    model_config = ConfigDict(from_attributes=True)

    version: StrictInt = VERSION
    next_lot_number: StrictInt = 1
    accounts: List[TrackedAccountDoc] = Field(default_factory=list)
    disposed_lots: List[DisposedLotDoc] = Field(default_factory=list)
    pending_deposits: List[PendingDepositDoc] = Field(default_factory=list)
    pending_withdrawals: List[PendingWithdrawalDoc] = Field(default_factory=list)
    pending_transfers: List[PendingTransferDoc] = Field(default_factory=list)
    pending_swaps: List[PendingSwapDoc] = Field(default_factory=list)
    open_orders: List[OpenOrderDoc] = Field(default_factory=list)
    sweep_stake_account: Optional[SweepStakeAccountDoc] = None
    tax_rate: Optional[TaxRateDoc] = None
    #  JSON object keys are strings; epochs come back as ints
    validator_credit_scores: Dict[int, Dict[str, StrictInt]] = Field(
        default_factory=dict
    )


#  Top-level document keys, mapped to Ledger attributes.
JOURNALS = {
    "disposed_lots": "disposed",
    "pending_deposits": "deposits",
    "pending_withdrawals": "withdrawals",
    "pending_transfers": "transfers",
    "pending_swaps": "swaps",
    "open_orders": "orders",
}


DOCS = {
    doc.record: doc
    for doc in (
        EpochRewardDoc,
        TransactionAcquisitionDoc,
        ExchangeAcquisitionDoc,
        NotAvailableDoc,
        FiatAcquisitionDoc,
        SwapAcquisitionDoc,
        ExchangeDisposalDoc,
        SwapDisposalDoc,
        WithdrawalFeeDoc,
        FiatDisposalDoc,
        OtherDisposalDoc,
        LotAcquisitionDoc,
        LotDoc,
        DisposedLotDoc,
        TrackedAccountDoc,
        PendingDepositDoc,
        PendingWithdrawalDoc,
        PendingTransferDoc,
        PendingSwapDoc,
        OpenOrderDoc,
        TaxRateDoc,
        SweepStakeAccountDoc,
    )
}


LEDGER = TypeAdapter(LedgerDoc)


###############################################################################
# ENCODING / DECODING
###############################################################################
def encode(record: Any) -> Dict[str, Any]:
    """Convert a ledger record to JSON-ready data."""
    doc = TypeAdapter(DOCS[type(record)]).validate_python(record)
    return doc.model_dump(mode="json")


def decode(cls: type, data: Any) -> Any:
    """Convert JSON data back to a record of type `cls`.

    Raises:
        pydantic.ValidationError: if `data` doesn't describe a `cls`.
    """
    return TypeAdapter(DOCS[cls]).validate_python(data).to_record()


def encode_ledger(ledger) -> Dict[str, Any]:
    """Convert a Ledger's entire state to a JSON-ready document."""
    state = {
        "next_lot_number": ledger.lot_number_counter,
        "accounts": list(ledger.accounts.values()),
        "sweep_stake_account": ledger.sweep_stake_account,
        "tax_rate": ledger.tax_rate,
        "validator_credit_scores": ledger.validator_credit_scores,
    }
    state.update({key: getattr(ledger, attr) for key, attr in JOURNALS.items()})
    return LEDGER.dump_python(LEDGER.validate_python(state), mode="json")


def decode_ledger(ledger, doc: Mapping[str, Any]) -> None:
    """Replace a Ledger's state with that described by a snapshot document.

    The Ledger is left untouched if the document doesn't validate.

    Raises:
        pydantic.ValidationError: if `doc` doesn't describe a ledger.
    """
    parsed = LEDGER.validate_python(doc)
    accounts = [acct.to_record() for acct in parsed.accounts]

    ledger.lot_number_counter = parsed.next_lot_number
    ledger.accounts = {(acct.address, acct.token): acct for acct in accounts}
    for key, attr in JOURNALS.items():
        setattr(ledger, attr, [item.to_record() for item in getattr(parsed, key)])
    ledger.sweep_stake_account = _to_record(parsed.sweep_stake_account)
    ledger.tax_rate = _to_record(parsed.tax_rate)
    ledger.validator_credit_scores = parsed.validator_credit_scores


###############################################################################
# FILES
###############################################################################
def ensure_directory(directory: str) -> None:
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as err:
        raise SnapshotIOError(directory, str(err))


def _read_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as err:
        raise SnapshotIOError(path, str(err))


def load(ledger, path: str) -> None:
    """Read the snapshot at `path` into a Ledger.

    Raises:
        SnapshotIOError: if the file can't be read, isn't JSON, or doesn't describe
                         a ledger.
    """
    doc = _read_json(path)
    try:
        decode_ledger(ledger, doc)
    except ValidationError as err:
        raise SnapshotIOError(path, f"malformed snapshot: {err}")
    logging.debug("Loaded ledger from {}".format(path))


#  Legacy store keys, mapped to current document keys.  Scalars are kept under
#  "map", lists under "list_map"; every value is itself a JSON string.
LEGACY_MAP = {
    "next-lot-number": "next_lot_number",
    "sweep-stake-account": "sweep_stake_account",
    "tax-rate": "tax_rate",
    "validator-credit-scores": "validator_credit_scores",
}
LEGACY_LIST_MAP = {
    "accounts": "accounts",
    "disposed-lots": "disposed_lots",
    "deposits": "pending_deposits",
    "withdrawals": "pending_withdrawals",
    "transfers": "pending_transfers",
    "swaps": "pending_swaps",
    "orders": "open_orders",
}
LEGACY_FIELDS = {"tx_id": "signature"}

#  Legacy deposits predate lot tracking, and name neither end of the transfer.
LEGACY_DEPOSIT_DEFAULTS = {"deposit_address": "", "from_address": ""}


def _convert_legacy_kind(value: Any) -> Any:
    """Internally tag a kind written as "Variant" or {"Variant": {fields}}."""
    if isinstance(value, str):
        return {"kind": value}
    if isinstance(value, dict) and len(value) == 1 and "kind" not in value:
        ((name, fields),) = value.items()
        value = dict(fields or {}, kind=name)
    if isinstance(value, dict):
        tag = value.get("kind")
        value = _convert_legacy_fields(
            {key: field for key, field in value.items() if key != "kind"}
        )
        value["kind"] = tag
    return value


def _convert_legacy_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    converted = {}
    for key, value in fields.items():
        key = LEGACY_FIELDS.get(key, key)
        if key == "exchange" and isinstance(value, str):
            value = Exchange.parse(value).name
        elif key == "kind":
            value = _convert_legacy_kind(value)
        else:
            value = _convert_legacy_item(value)
        converted[key] = value
    return converted


def _convert_legacy_item(item: Any) -> Any:
    if isinstance(item, list):
        return [_convert_legacy_item(value) for value in item]
    if isinstance(item, dict):
        return _convert_legacy_fields(item)
    return item


def _convert_legacy_deposit(item: Dict[str, Any]) -> Dict[str, Any]:
    missing = [field for field in LEGACY_DEPOSIT_DEFAULTS if field not in item]
    if missing:
        logging.warning(
            "Legacy deposit {} lacks {}; recorded as empty".format(
                item.get("signature"), ", ".join(missing)
            )
        )
    deposit = dict(LEGACY_DEPOSIT_DEFAULTS, **item)
    #  Legacy amounts are floats of whole units
    if isinstance(deposit.get("amount"), float):
        token = deposit.get("token") or tokens.native_token()
        deposit["amount"] = tokens.from_ui_amount(token, deposit["amount"])
    return deposit


def convert_legacy(store: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert a legacy ordered key/value store to a current snapshot document.

    Raises:
        ValueError: if a value can't be converted.
    """
    doc: Dict[str, Any] = {"version": VERSION}
    scalars = store.get("map", {})
    for old, new in LEGACY_MAP.items():
        if old in scalars:
            doc[new] = _convert_legacy_item(json.loads(scalars[old]))
    lists = store.get("list_map", {})
    for old, new in LEGACY_LIST_MAP.items():
        if old in lists:
            doc[new] = [_convert_legacy_item(json.loads(v)) for v in lists[old]]
    doc["pending_deposits"] = [
        _convert_legacy_deposit(item) for item in doc.get("pending_deposits", [])
    ]
    return doc


def load_legacy(ledger, path: str) -> None:
    """Read a legacy key/value store into a Ledger.  The store isn't modified.

    Raises:
        SnapshotIOError: if the store can't be read or converted.
    """
    store = _read_json(path)
    try:
        decode_ledger(ledger, convert_legacy(store))
    except (AttributeError, TypeError, ValueError, InvalidOperation) as err:
        #  pydantic.ValidationError is a ValueError
        raise SnapshotIOError(path, f"malformed legacy store: {err}")


def write(path: str, doc: Mapping[str, Any]) -> None:
    """Atomically replace the file at `path` with a JSON document.

    Raises:
        SnapshotIOError: if the document can't be written.
    """
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp_path = tempfile.mkstemp(
            prefix=".{}.".format(os.path.basename(path)), suffix=".tmp", dir=directory
        )
    except OSError as err:
        raise SnapshotIOError(path, str(err))

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as err:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise SnapshotIOError(path, str(err))

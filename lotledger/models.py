# coding: utf-8
"""Enumerations shared across the package, plus the credential/configuration store.

The credential store is a plain keyed table - one row per exchange (or metrics
service) - committed as soon as it changes.  It is deliberately independent of the
lot ledger snapshot and carries none of its conservation guarantees.
"""
# stdlib imports
import enum
import logging
from typing import List, Optional


# 3rd party imports
from sqlalchemy import Column, Integer, String, Enum
from sqlalchemy.exc import SQLAlchemyError


# Local imports
from lotledger.database import Base, init_db, sessionmanager


class ModelError(Exception):
    """ Base class for exceptions raised by this module.  """

    pass


class CredentialStoreError(ModelError):
    """Exception raised when the credential/configuration store can't be used.

    Args:
        msg: Error message detailing the failure.
    """

    def __init__(self, msg: str) -> None:
        self.msg = msg
        super(CredentialStoreError, self).__init__(f"Credential store: {msg}")


@enum.unique
class Exchange(enum.Enum):
    BINANCE = 1
    BINANCEUS = 2
    FTX = 3
    FTXUS = 4
    COINBASE = 5
    KRAKEN = 6

    @classmethod
    def parse(cls, value: str) -> "Exchange":
        """Look up an Exchange by case-insensitive name, e.g. "binanceus"."""
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown exchange '{value}'")


@enum.unique
class OrderSide(enum.Enum):
    BUY = 1
    SELL = 2


@enum.unique
class LotSelectionMethod(enum.Enum):
    FIFO = 1
    LIFO = 2
    LOWEST_BASIS = 3
    HIGHEST_BASIS = 4


@enum.unique
class PendingState(enum.Enum):
    PENDING = 1
    CONFIRMED = 2
    CANCELLED = 3


class Mergeable(object):
    """Mixin implementing merge() classmethod.
    """

    signature = NotImplemented

    @classmethod
    def merge(cls, session, **kwargs):
        """
        Query DB for unique persisted instance matching given values for
        signature attributes; if found, overwrite its remaining attributes from
        kwargs, otherwise insert a new instance with all attributes from kwargs.
        """
        if cls.signature is NotImplemented:
            raise NotImplementedError
        sig = {k: v for k, v in kwargs.items() if k in cls.signature}
        instance = session.query(cls).filter_by(**sig).one_or_none()
        if instance is None:
            instance = cls(**kwargs)
            msg = "Created {} {}".format(cls.__name__, sig)
        else:
            for attr, value in kwargs.items():
                setattr(instance, attr, value)
            msg = "Updated {} {}".format(cls.__name__, sig)
        logging.info(msg)
        session.add(instance)
        return instance


class ExchangeCredentials(Base, Mergeable):
    """API credentials for an exchange account.
    """

    id = Column(Integer, primary_key=True)
    exchange = Column(
        Enum(Exchange, name="exchange"), nullable=False, unique=True,
        comment=f"One of {tuple(Exchange.__members__.keys())}",
    )
    api_key = Column(String, nullable=False)
    secret = Column(String, nullable=False)
    subaccount = Column(String)

    __table_args__ = ({"comment": "Exchange API Credentials"},)

    signature = ("exchange",)
    redacted = ("api_key", "secret")


class MetricsConfig(Base, Mergeable):
    """Connection settings for a metrics sink, keyed by service name.
    """

    id = Column(Integer, primary_key=True)
    service = Column(String, nullable=False, unique=True)
    url = Column(String, nullable=False)
    token = Column(String, nullable=False)
    org_id = Column(String, nullable=False)
    bucket = Column(String, nullable=False)

    __table_args__ = ({"comment": "Metrics Sink Configuration"},)

    signature = ("service",)
    redacted = ("token",)


class CredentialStore(object):
    """Keyed store for exchange credentials and metrics configuration.

    Every mutating call commits before returning.  Returned rows are detached
    from their session; treat them as read-only values.

    Args:
        db_uri: SQLAlchemy database URI, e.g. CONFIG.db_uri.
    """

    def __init__(self, db_uri: str, **kwargs) -> None:
        try:
            self.engine = init_db(db_uri, **kwargs)
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))

    def _session(self):
        return sessionmanager(bind=self.engine, expire_on_commit=False)

    def set_exchange_credentials(
        self,
        exchange: Exchange,
        api_key: str,
        secret: str,
        subaccount: Optional[str] = None,
    ) -> None:
        try:
            with self._session() as session:
                ExchangeCredentials.merge(
                    session,
                    exchange=exchange,
                    api_key=api_key,
                    secret=secret,
                    subaccount=subaccount,
                )
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))

    def get_exchange_credentials(
        self, exchange: Exchange
    ) -> Optional[ExchangeCredentials]:
        try:
            with self._session() as session:
                return (
                    session.query(ExchangeCredentials)
                    .filter_by(exchange=exchange)
                    .one_or_none()
                )
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))

    def clear_exchange_credentials(self, exchange: Exchange) -> None:
        try:
            with self._session() as session:
                deleted = (
                    session.query(ExchangeCredentials)
                    .filter_by(exchange=exchange)
                    .delete()
                )
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))
        if deleted:
            logging.info("Cleared credentials for {}".format(exchange.name))

    def get_configured_exchanges(self) -> List[Exchange]:
        try:
            with self._session() as session:
                rows = session.query(ExchangeCredentials.exchange).all()
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))
        return sorted((row[0] for row in rows), key=lambda exchange: exchange.value)

    def set_metrics_config(
        self, url: str, token: str, org_id: str, bucket: str, service: str = "default"
    ) -> None:
        try:
            with self._session() as session:
                MetricsConfig.merge(
                    session,
                    service=service,
                    url=url,
                    token=token,
                    org_id=org_id,
                    bucket=bucket,
                )
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))

    def get_metrics_config(self, service: str = "default") -> Optional[MetricsConfig]:
        try:
            with self._session() as session:
                return (
                    session.query(MetricsConfig).filter_by(service=service).one_or_none()
                )
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))

    def clear_metrics_config(self, service: str = "default") -> None:
        try:
            with self._session() as session:
                session.query(MetricsConfig).filter_by(service=service).delete()
        except SQLAlchemyError as err:
            raise CredentialStoreError(str(err))

"""
"""
import os
import configparser


CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".config", "lotledger")
CONFIG_PATH = os.path.join(CONFIG_DIR, "lotledger.cfg")


class LotledgerConfig(configparser.ConfigParser):
    def make_default(self):
        self["db"] = {
            "dialect": "sqlite",
            "driver": "",
            "username": "",
            "password": "",
            "host": "",
            "port": "",
            "database": os.path.join(CONFIG_DIR, "credentials.db"),
        }
        self["test"] = {"dialect": "sqlite"}
        self["ledger"] = {
            "default_dir": os.path.join(CONFIG_DIR, "ledger"),
            "snapshot": "lotledger.json",
            # Whitespace separates file names; the first found is converted
            "legacy": "lotledger.db ◎.db",
            "lot_selection_method": "FIFO",
            "quote_currency": "USD",
        }
        self["tokens"] = {
            "native": "SOL",
            "fiat_fungible": "USDC",
            # Whitespace separates groups; commas separate members of a group
            "fungible_groups": "SOL,wSOL",
            "decimals": "SOL:9 wSOL:9 mSOL:9 USDC:6 USDT:6",
            "default_decimals": "9",
        }

    @property
    def db_uri(self):
        return self._make_db_uri(**self["db"])

    @property
    def test_db_uri(self):
        return self._make_db_uri(**self["test"])

    def _make_db_uri(self, **kwargs):
        schema = "{dialect}"
        if kwargs.get("driver", None):
            schema += "+{driver}"

        credentials = ""
        if kwargs.get("username", None):
            credentials = "{username}"
            if kwargs.get("password", None):
                credentials += ":{password}"

        authority = ""
        if kwargs.get("host", None):
            authority = "@{host}"
            if kwargs.get("port", None):
                authority += ":{port}"

        db = ""
        if kwargs.get("database", None):
            db = "/{database}"

        template = "{schema}://{credentials}{authority}{db}".format(
            schema=schema, credentials=credentials, authority=authority, db=db
        )
        return template.format(**kwargs)

    @property
    def ledger_dir(self):
        return self.get("ledger", "default_dir")

    @property
    def quote_currency(self):
        return self.get("ledger", "quote_currency", fallback="USD")

    @property
    def legacy_stores(self):
        return self.get("ledger", "legacy", fallback="").split()

    @property
    def native_token(self):
        return self.get("tokens", "native", fallback="SOL")

    @property
    def fiat_fungible_tokens(self):
        return frozenset(self.get("tokens", "fiat_fungible", fallback="").split())

    @property
    def token_decimals(self):
        pairs = self.get("tokens", "decimals", fallback="").split()
        return {token: int(places) for token, places in (p.split(":") for p in pairs)}

    @property
    def default_decimals(self):
        return self.getint("tokens", "default_decimals", fallback=9)

    @property
    def fungible_groups(self):
        groups = self.get("tokens", "fungible_groups", fallback="").split()
        return [frozenset(group.split(",")) for group in groups]


CONFIG = LotledgerConfig()
CONFIG.make_default()


# If no config exists, write defaults; values on disk override the defaults
if os.path.exists(CONFIG_PATH):
    CONFIG.read(CONFIG_PATH, encoding="utf-8")
else:
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(CONFIG_PATH, "w", encoding="utf-8") as configfile:
        CONFIG.write(configfile)

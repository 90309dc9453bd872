from flask import current_app

from .catalog import CatalogStore
from .ledger import LedgerStore

CATALOG_EXTENSION_KEY = "khata.catalog"
LEDGER_EXTENSION_KEY = "khata.ledger"


def get_catalog_store() -> CatalogStore:
    return current_app.extensions[CATALOG_EXTENSION_KEY]


def get_ledger_store() -> LedgerStore:
    return current_app.extensions[LEDGER_EXTENSION_KEY]


__all__ = [
    'CatalogStore', 'LedgerStore',
    'CATALOG_EXTENSION_KEY', 'LEDGER_EXTENSION_KEY',
    'get_catalog_store', 'get_ledger_store',
]

from .catalog import Product
from .ledger import Customer, Transaction, TransactionItem

__all__ = [
    'Product',
    'Customer', 'Transaction', 'TransactionItem',
]

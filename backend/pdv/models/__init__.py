from .employees import Employee, SessionToken
from .catalog import Product, StockMovement
from .customers import Customer, LoyaltyTransaction
from .sales import Sale, SaleLine
from .payments import PaymentTransaction
from .registers import CashSession
from .tabs import Tab, TabLine
from .documents import Return, ReturnLine, SequenceCounter
from .imports import ProductImport
from .sync import SyncQueueEntry
from .variants import AttributeOption, AttributeType, ProductVariant, variant_options
from .forecast import SeasonalityFactor

__all__ = [
    'Employee', 'SessionToken',
    'Product', 'StockMovement',
    'Customer', 'LoyaltyTransaction',
    'Sale', 'SaleLine',
    'PaymentTransaction',
    'CashSession',
    'Tab', 'TabLine',
    'Return', 'ReturnLine', 'SequenceCounter',
    'ProductImport',
    'SyncQueueEntry',
    'AttributeType', 'AttributeOption', 'ProductVariant', 'variant_options',
    'SeasonalityFactor',
]

from .tenancy import Store
from .auth import User, UserStoreAccess
from .customers import Customer, CustomerDeliveryAddress, AccountReceivable, CreditPayment, CreditHistory
from .inventory import Product, ProductPricing, ProductStock, StockMovement, StockReceipt, StockReceiptLine
from .sales import PaymentMethod, Sale, SaleItem, SalePayment
from .registers import CashClosing, CashMovement
from .documents import DocumentSequence, LedgerEvent

__all__ = [
    'Store',
    'User', 'UserStoreAccess',
    'Customer', 'CustomerDeliveryAddress', 'AccountReceivable', 'CreditPayment', 'CreditHistory',
    'Product', 'ProductPricing', 'ProductStock', 'StockMovement', 'StockReceipt', 'StockReceiptLine',
    'PaymentMethod', 'Sale', 'SaleItem', 'SalePayment',
    'CashClosing', 'CashMovement',
    'DocumentSequence', 'LedgerEvent',
]

from .tenancy import Store, Branch, Staff
from .inventory import Product, StockLevel, StockMovement, StockCount, StockCountLine
from .customers import Customer, CustomerProductPoints, PointTransaction, PointRedemption
from .shifts import Shift, ShiftCashMovement
from .sales import Order, OrderItem, Payment, OrderPromotion
from .promotions import Promotion, PromotionProduct
from .transfers import StockTransfer, StockTransferItem

__all__ = [
    'Store', 'Branch', 'Staff',
    'Product', 'StockLevel', 'StockMovement', 'StockCount', 'StockCountLine',
    'Customer', 'CustomerProductPoints', 'PointTransaction', 'PointRedemption',
    'Shift', 'ShiftCashMovement',
    'Order', 'OrderItem', 'Payment', 'OrderPromotion',
    'Promotion', 'PromotionProduct',
    'StockTransfer', 'StockTransferItem',
]

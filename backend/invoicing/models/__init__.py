from .tenancy import Company, User
from .auth import ApiToken
from .catalog import Product, ProductPrice, ProductCategory, StockEvent, product_category_links
from .customers import Customer
from .orders import Order, OrderItem, CustomerOrder
from .payments import PaymentIntegration, PaymentTransaction
from .notifications import Notification

__all__ = [
    'Company', 'User', 'ApiToken',
    'Product', 'ProductPrice', 'ProductCategory', 'StockEvent', 'product_category_links',
    'Customer',
    'Order', 'OrderItem', 'CustomerOrder',
    'PaymentIntegration', 'PaymentTransaction',
    'Notification',
]

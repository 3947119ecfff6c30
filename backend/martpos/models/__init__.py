from .catalog import Category, Product
from .customers import Customer, CustomerPayment
from .sales import Sale, SaleLine, SalePayment
from .documents import DocumentSequence, ActivityLog

__all__ = [
    'Category', 'Product',
    'Customer', 'CustomerPayment',
    'Sale', 'SaleLine', 'SalePayment',
    'DocumentSequence', 'ActivityLog',
]

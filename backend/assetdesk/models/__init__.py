from .reference import Branch, Department, Category, Employee
from .auth import User, SessionToken
from .inventory import Product, InventoryUnit, StockTransaction
from .assignments import Assignment

__all__ = [
    'Branch', 'Department', 'Category', 'Employee',
    'User', 'SessionToken',
    'Product', 'InventoryUnit', 'StockTransaction',
    'Assignment',
]

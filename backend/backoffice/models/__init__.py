from .branches import Branch
from .auth import User, SessionToken
from .inventory import Product
from .sales import Invoice, InvoiceLine, SalesReturn, SalesReturnLine, Expense
from .purchasing import Supplier, PurchaseRecord, PurchaseLine, SupplierPayment, PurchaseReturn, PurchaseReturnLine
from .treasury import TreasuryLog
from .staff import StaffPayment
from .communications import Message, LeaveRequest
from .audit import AuditEvent

__all__ = [
    'Branch',
    'User', 'SessionToken',
    'Product',
    'Invoice', 'InvoiceLine', 'SalesReturn', 'SalesReturnLine', 'Expense',
    'Supplier', 'PurchaseRecord', 'PurchaseLine', 'SupplierPayment',
    'PurchaseReturn', 'PurchaseReturnLine',
    'TreasuryLog',
    'StaffPayment',
    'Message', 'LeaveRequest',
    'AuditEvent',
]

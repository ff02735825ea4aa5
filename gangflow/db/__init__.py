from .customer_db import CustomerDB
from .models import CartRecord, CustomerRecord, OrderRecord, SegmentRecord, SendRecord

__all__ = [
    "CustomerDB",
    "CustomerRecord",
    "SegmentRecord",
    "OrderRecord",
    "CartRecord",
    "SendRecord",
]

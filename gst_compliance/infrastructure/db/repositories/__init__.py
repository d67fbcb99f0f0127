from .invoice_repository import InvoiceRepository
from .sequence_repository import RecordStoreCounter, SequenceRepository

__all__ = [
    "InvoiceRepository",
    "RecordStoreCounter",
    "SequenceRepository",
]

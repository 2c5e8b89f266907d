from .batch_processor import BatchProcessor
from .schemas import BatchResult, ErrorKind, RecordOutcome, RecordState, TokenRecord

__all__ = [
    "BatchProcessor",
    "BatchResult",
    "ErrorKind",
    "RecordOutcome",
    "RecordState",
    "TokenRecord",
]

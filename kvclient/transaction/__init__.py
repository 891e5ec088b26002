"""Transaction building and result types."""

from .builder import BaseTransaction, ClusterTransaction, Transaction
from .outcome import ABORTED, Aborted, ClusterValue, Completed, ExecOutcome, MultiValue, NodeValue, SingleValue

__all__ = [
    "ABORTED",
    "Aborted",
    "BaseTransaction",
    "ClusterTransaction",
    "ClusterValue",
    "Completed",
    "ExecOutcome",
    "MultiValue",
    "NodeValue",
    "SingleValue",
    "Transaction",
]

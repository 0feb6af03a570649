from .bases import CanonicalModel, ExecutionState, ExecutionPath, ExecutionResult, TransactionReceipt

__all__ = [
    "CanonicalModel",
    "ExecutionState",
    "ExecutionPath",
    "ExecutionResult",
    "TransactionReceipt",
]

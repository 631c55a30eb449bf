"""Per-user operation contexts and the concurrency-safe session registry."""

from solbeck.sessions.context import OperationContext, SessionRegistry, new_operation_id

__all__ = ["OperationContext", "SessionRegistry", "new_operation_id"]

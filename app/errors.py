"""Exceptions raised inside the tool pipeline.

None of these cross the executor boundary: ``ToolExecutor.execute`` turns
them into a failed ``ToolExecutionResult``.
"""


class ToolError(Exception):
    """Base class for failures reported back to the model as tool errors."""


class PolicyViolation(ToolError):
    """Unknown or disabled resource, or an operation above its access level."""


class ToolValidationError(ToolError):
    """Malformed arguments or a missing mutation guard (filters, confirm)."""


class ExecutionError(ToolError):
    """The data store rejected the operation."""


class AuditWriteError(Exception):
    """Audit record could not be persisted. Logged, never surfaced."""


class ModelServiceError(Exception):
    """The model provider could not be reached or returned an unusable reply."""

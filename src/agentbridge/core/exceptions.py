"""Custom exception hierarchy for the agent bridge."""

from typing import Any


class BridgeError(Exception):
    """Base exception for all bridge errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class TaskError(BridgeError):
    """Task lifecycle errors."""

    pass


class TaskBusyError(TaskError):
    """A task already occupies the conversation's slot."""

    def __init__(self, conversation_id: str):
        super().__init__(
            code="TASK_BUSY",
            message=f"Conversation '{conversation_id}' already has a running task",
            details={"conversation_id": conversation_id},
        )


class TaskNotFoundError(TaskError):
    """No task is running for the conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(
            code="NO_RUNNING_TASK",
            message=f"Conversation '{conversation_id}' has no running task",
            details={"conversation_id": conversation_id},
        )


class TaskTimeoutError(TaskError):
    """Task exceeded its wall-clock budget."""

    def __init__(self, conversation_id: str, timeout: float):
        super().__init__(
            code="TIMEOUT",
            message=f"Task timed out after {timeout / 60:.0f} minutes",
            details={"conversation_id": conversation_id, "timeout": timeout},
        )


class BackendError(BridgeError):
    """Execution backend errors."""

    pass


class ExecutionError(BackendError):
    """Backend reported or suffered a failure while executing."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            code="EXECUTION_ERROR",
            message=reason,
            details=details or {},
        )


class BackendUnavailableError(BackendError):
    """Backend could not be started."""

    def __init__(self, reason: str):
        super().__init__(
            code="BACKEND_UNAVAILABLE",
            message=f"Agent backend unavailable: {reason}",
            details={"reason": reason},
        )


class TransportError(BridgeError):
    """Chat surface could not deliver a message."""

    def __init__(self, conversation_id: str, reason: str):
        super().__init__(
            code="TRANSPORT_FAILURE",
            message=f"Failed to deliver message to '{conversation_id}': {reason}",
            details={"conversation_id": conversation_id, "reason": reason},
        )


class MessageNotFoundError(BridgeError):
    """Outbound message handle does not exist."""

    def __init__(self, handle: str):
        super().__init__(
            code="MESSAGE_NOT_FOUND",
            message=f"Message '{handle}' not found",
            details={"handle": handle},
        )

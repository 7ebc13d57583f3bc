class WBSError(Exception):
    """Base exception for all wbstree errors."""
    pass

class RecoverableError(WBSError):
    """An error that leaves the in-memory project untouched and can be retried or corrected."""
    pass

class FatalError(WBSError):
    """An error that requires application termination or major intervention."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to data that fails the model schema"""
    pass

class ValidationError(RecoverableError, ValueError):
    """Bad input shape or range; raised before any state is changed."""
    pass

class NodeNotFoundError(ValidationError):
    """A node path does not resolve to an entity in the project."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"No node at {path}")

class InvalidTransitionError(RecoverableError):
    """A lifecycle event is not legal in the task's current state."""

    def __init__(self, state, event):
        self.state = state
        self.event = event
        super().__init__(f"Cannot {getattr(event, 'value', event)} a task in state "
                         f"'{getattr(state, 'value', state)}'")

class PersistenceError(RecoverableError):
    """The project store failed; the caller keeps its last known-good project."""
    pass

class FileOperationError(PersistenceError):
    """File operation failed but can be retried."""
    pass

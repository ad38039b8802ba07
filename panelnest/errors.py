"""
Exceptions raised by the nesting engine

Every error carries the id of the offending entity (piece, job, tool or
sheet) so callers can surface it without parsing the message.
"""

from typing import Optional


class NestingEngineError(Exception):
    """Base class for engine failures"""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity_id = entity_id


class ValidationError(NestingEngineError):
    """Malformed piece, sheet or tool definition"""
    pass


class PieceTooLargeError(NestingEngineError):
    """A piece fits no candidate sheet in any allowed orientation"""

    def __init__(self, piece_id: str, width: float, length: float):
        super().__init__(
            f"Piece '{piece_id}' ({width} x {length}) does not fit any candidate sheet",
            entity_id=piece_id,
        )
        self.piece_id = piece_id


class NoSuitableToolError(NestingEngineError):
    """No catalog tool matches an operation's type and depth"""

    def __init__(self, operation_type: str, depth: float, piece_id: Optional[str] = None):
        super().__init__(
            f"No {operation_type} tool reaches depth {depth:g} (piece '{piece_id}')",
            entity_id=piece_id,
        )
        self.operation_type = operation_type
        self.depth = depth


class InvalidStateError(NestingEngineError):
    """Operation not allowed in the job's current state"""

    def __init__(self, job_id: str, action: str, state: str):
        super().__init__(f"Cannot {action} job '{job_id}' in state {state}", entity_id=job_id)
        self.action = action
        self.state = state


class NotFoundError(NestingEngineError):
    """Unknown job, piece, tool or material id"""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} '{entity_id}' not found", entity_id=entity_id)
        self.kind = kind


class OptimizationCancelled(NestingEngineError):
    """Cancellation was requested while a job was being computed"""
    pass


class ExportError(NestingEngineError):
    """Writing job artifacts to storage failed; the job may be exported again"""
    pass

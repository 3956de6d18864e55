"""
Error taxonomy shared by the orchestration core and its collaborators.
"""


class MailMindError(Exception):
    """Base class for every error raised by the assistant core."""


class UnsupportedRequestKind(MailMindError):
    """Raised by the planner for a request kind it has no plan for."""

    def __init__(self, kind: object) -> None:
        super().__init__(f"Unsupported request kind: {kind!r}")
        self.kind = kind


class PrimaryTaskFailed(MailMindError):
    """The sub-task selected to produce the response failed."""

    def __init__(self, subtask: str, message: str) -> None:
        super().__init__(f"Sub-task '{subtask}' failed: {message}")
        self.subtask = subtask
        self.reason = message


class CollaboratorError(MailMindError):
    """A collaborator (language model or store) was unavailable or rejected a call."""


class StoreError(CollaboratorError):
    """Raised by key-value store implementations on I/O or decoding failures."""


class CacheUnavailable(MailMindError):
    """The result cache could not reach its underlying store."""


__all__ = [
    "MailMindError",
    "UnsupportedRequestKind",
    "PrimaryTaskFailed",
    "CollaboratorError",
    "StoreError",
    "CacheUnavailable",
]

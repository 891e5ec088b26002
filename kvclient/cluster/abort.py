"""
Abort Detection

A transaction whose watched key was modified by another client before
EXEC is discarded by the server, which replies with a null array. The
outcome is all-or-nothing: if any node reports the abort, the whole
submit is Aborted, whatever partial data came back from other nodes.
"""

from ..network.transport import CompletionStatus, RawCompletion


def is_aborted(completion: RawCompletion) -> bool:
    """Check a raw completion for the optimistic-lock failure marker."""
    if completion.status is CompletionStatus.ABORTED:
        return True
    return any(replies is None for replies in completion.per_node.values())

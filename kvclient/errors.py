"""
Client Exceptions

Error taxonomy for the client:

- TransportError: the round-trip itself failed (connection lost, timeout,
  malformed reply). The transaction status is unknown.
- ResponseError: the server answered with an error reply. Inside a
  completed transaction these are carried as values, one per failed
  command position.
- Aborted (see transaction.outcome) is not an exception: a watched key
  changed and the server executed none of the commands.
"""

from typing import List, Optional


class KVClientError(Exception):
    """Base class for all client errors."""


class TransportError(KVClientError):
    """The request could not be completed by the transport."""


class ConnectionLostError(TransportError):
    """The connection to a node could not be established or was dropped."""


class RequestTimeoutError(TransportError):
    """No complete reply arrived within the request timeout."""


class ProtocolError(TransportError):
    """The server sent a reply the client could not make sense of."""


class ResponseError(KVClientError):
    """
    An error reply sent by the server.

    Instances are returned as values in transaction results and only
    raised for single, non-transactional commands.
    """

    @property
    def kind(self) -> str:
        """Error prefix, e.g. ``WRONGTYPE`` or ``ERR``."""
        message = str(self)
        return message.split(" ", 1)[0] if message else ""

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class ExecAbortError(ResponseError):
    """
    The server discarded the whole transaction before running it.

    Raised when one or more commands were rejected while being queued
    (unknown command, wrong arity). None of the commands took effect.
    """

    def __init__(self, message: str, queued_errors: Optional[List[ResponseError]] = None):
        super().__init__(message)
        self.queued_errors = list(queued_errors or [])


class CommandFailedError(KVClientError):
    """A command inside a completed transaction failed (raise policy only)."""

    def __init__(self, index: int, error: ResponseError, outcome, node=None):
        where = f" on {node}" if node is not None else ""
        super().__init__(f"command #{index} failed{where}: {error}")
        self.index = index
        self.error = error
        self.node = node
        self.outcome = outcome


class RoutingError(KVClientError):
    """A route could not be resolved against the current topology."""


class TransactionConsumedError(KVClientError):
    """A transaction was used after being handed to an executor."""

"""
Result Reconciler

Turns per-node reply lists into one result per command position.

The result shape is decided by the number of addressed nodes, never by
the shape of the replies:

    1 target   -> SingleValue(reply)
    k targets  -> MultiValue(NodeValue(node, reply) for node in targets)

Node order inside every MultiValue follows ``targets``, so every entry
of a transaction lists nodes in the same order.
"""

from typing import Any, List, Sequence, Tuple

from ..errors import ProtocolError
from ..network.transport import RawCompletion
from ..protocol.commands import Command
from ..protocol.responses import shape_response
from ..transaction.outcome import ClusterValue, MultiValue, NodeValue, SingleValue


def _node_replies(completion: RawCompletion, node, expected: int) -> List[Any]:
    if node not in completion.per_node:
        raise ProtocolError(f"no reply from addressed node {node}")
    replies = completion.per_node[node]
    if replies is None or len(replies) != expected:
        got = "none" if replies is None else len(replies)
        raise ProtocolError(f"node {node} returned {got} replies for {expected} command(s)")
    return replies


def reconcile(
        completion: RawCompletion,
        targets: Sequence,
        commands: Sequence[Command],
) -> Tuple[ClusterValue, ...]:
    """
    Build the ordered result sequence of a completed submit.

    Args:
        completion: Raw per-node replies (must not be aborted)
        targets: Nodes the batch was sent to, in enumeration order
        commands: The submitted commands, in execution order

    Returns:
        One ClusterValue per command; index i belongs to commands[i]

    Raises:
        ProtocolError: If a node is missing or replied with the wrong count
    """
    if not targets:
        raise ProtocolError("no target nodes")

    per_node = [(node, _node_replies(completion, node, len(commands))) for node in targets]

    if len(per_node) == 1:
        _, replies = per_node[0]
        return tuple(
            SingleValue(shape_response(reply, command.response_type))
            for command, reply in zip(commands, replies)
        )

    return tuple(
        MultiValue(tuple(
            NodeValue(node, shape_response(replies[index], command.response_type))
            for node, replies in per_node
        ))
        for index, command in enumerate(commands)
    )

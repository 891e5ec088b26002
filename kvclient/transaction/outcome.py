"""
Transaction Outcome Types

A transaction ends in exactly one of:

- Completed: the server ran every command; ``results[i]`` is the result
  of command ``i``. An individual entry may be a ResponseError value.
- Aborted: a watched key changed, so the server ran none of the commands.

Transport failures are raised as exceptions and never produce either.

When a transaction is routed through a cluster executor each entry is a
ClusterValue: SingleValue when one node was addressed, MultiValue (one
NodeValue per node) when the route fanned out.
"""

from dataclasses import dataclass
from typing import Any, Iterator, List, Tuple, Union

from ..errors import ResponseError


@dataclass(frozen=True)
class NodeValue:
    """A value tagged with the node that produced it."""
    node: Any
    value: Any


@dataclass(frozen=True)
class SingleValue:
    """Result of one command addressed to exactly one node."""
    value: Any

    @property
    def is_single(self) -> bool:
        return True

    def errors(self) -> List[Tuple[Any, ResponseError]]:
        if isinstance(self.value, ResponseError):
            return [(None, self.value)]
        return []


@dataclass(frozen=True)
class MultiValue:
    """Result of one command addressed to several nodes, in route order."""
    values: Tuple[NodeValue, ...]

    @property
    def is_single(self) -> bool:
        return False

    def as_dict(self) -> dict:
        """Map of node -> value."""
        return {nv.node: nv.value for nv in self.values}

    def errors(self) -> List[Tuple[Any, ResponseError]]:
        return [(nv.node, nv.value) for nv in self.values if isinstance(nv.value, ResponseError)]

    def __len__(self) -> int:
        return len(self.values)


ClusterValue = Union[SingleValue, MultiValue]


@dataclass(frozen=True)
class Completed:
    """All commands ran; one result per command, in transaction order."""
    results: Tuple[Any, ...] = ()

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.results)

    def __getitem__(self, index: int) -> Any:
        return self.results[index]

    @property
    def aborted(self) -> bool:
        return False

    def errors(self) -> List[Tuple[int, Any, ResponseError]]:
        """
        Every failed position as (index, node, error).

        ``node`` is None for flat results and single-node entries.
        """
        found = []
        for index, entry in enumerate(self.results):
            if isinstance(entry, (SingleValue, MultiValue)):
                found.extend((index, node, error) for node, error in entry.errors())
            elif isinstance(entry, ResponseError):
                found.append((index, None, entry))
        return found

    def flatten(self) -> "Completed":
        """
        Unwrap SingleValue entries into plain values.

        Raises:
            ValueError: If an entry holds values from several nodes
        """
        flat = []
        for entry in self.results:
            if isinstance(entry, MultiValue):
                raise ValueError("cannot flatten a multi-node result")
            flat.append(entry.value if isinstance(entry, SingleValue) else entry)
        return Completed(tuple(flat))


@dataclass(frozen=True)
class Aborted:
    """A watched key changed before EXEC; no command took effect."""

    @property
    def aborted(self) -> bool:
        return True


ABORTED = Aborted()

ExecOutcome = Union[Completed, Aborted]

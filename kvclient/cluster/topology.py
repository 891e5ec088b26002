"""
Cluster Topology Module

Holds a snapshot of which node owns which hash slots and resolves
routing policies into concrete node addresses.

Node enumeration order is deterministic for a given snapshot: slot
ranges are walked by ascending start slot and every node is listed the
first time it is seen (primary before its replicas). Multi-node results
are always ordered this way, never by reply arrival.
"""

import bisect
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from ..errors import RoutingError
from .routing import Route, SimpleRoute, SlotIdRoute, SlotKeyRoute, SlotType
from .slots import NUM_SLOTS, get_slot_for_key

logger = logging.getLogger(__name__)


class NodeAddress(NamedTuple):
    """Network address of a cluster node."""
    host: str
    port: int

    @classmethod
    def parse(cls, value: Union["NodeAddress", Tuple[str, int], str]) -> "NodeAddress":
        """
        Accept ("host", port) tuples and "host:port" strings.

        Raises:
            ValueError: If the address cannot be parsed
        """
        if isinstance(value, NodeAddress):
            return value
        if isinstance(value, str):
            host, sep, port = value.rpartition(":")
            if not sep or not host:
                raise ValueError(f"invalid node address: {value!r}")
            return cls(host, int(port))
        host, port = value
        return cls(str(host), int(port))

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class SlotRange:
    """An inclusive slot range and the shard serving it."""
    start: int
    end: int
    primary: NodeAddress
    replicas: Tuple[NodeAddress, ...] = field(default=())

    def __post_init__(self):
        if not (0 <= self.start <= self.end < NUM_SLOTS):
            raise ValueError(f"invalid slot range {self.start}-{self.end}")

    def serving(self, slot_type: SlotType) -> NodeAddress:
        if slot_type is SlotType.REPLICA and self.replicas:
            return self.replicas[0]
        return self.primary


class ClusterTopology:
    """
    Immutable snapshot of the cluster's slot ownership.

    This class provides methods to determine:
    - Which node serves a slot or key
    - The ordered membership (primaries, all nodes)
    - The target set of a routing policy (current_targets)

    Attributes:
        ranges: Slot ranges sorted by start slot
    """

    def __init__(self, ranges: Iterable[SlotRange], rng: Optional[random.Random] = None):
        """
        Initialize a topology snapshot.

        Args:
            ranges: Slot ranges, in any order, without overlaps
            rng: Random source for RANDOM / keyless DEFAULT routes

        Raises:
            ValueError: If the ranges are empty or overlap
        """
        self.ranges: Tuple[SlotRange, ...] = tuple(sorted(ranges, key=lambda r: r.start))
        if not self.ranges:
            raise ValueError("topology needs at least one slot range")

        for previous, current in zip(self.ranges, self.ranges[1:]):
            if current.start <= previous.end:
                raise ValueError(
                    f"overlapping slot ranges {previous.start}-{previous.end} "
                    f"and {current.start}-{current.end}"
                )

        self._starts = [r.start for r in self.ranges]
        self._rng = rng if rng is not None else random.Random()

        # Pre-compute the ordered membership
        self._primaries = self._unique(r.primary for r in self.ranges)
        self._nodes = self._unique(node for r in self.ranges for node in (r.primary, *r.replicas))

    @staticmethod
    def _unique(nodes: Iterable[NodeAddress]) -> Tuple[NodeAddress, ...]:
        return tuple(dict.fromkeys(nodes))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def standalone(cls, address, rng: Optional[random.Random] = None) -> "ClusterTopology":
        """A single node owning every slot."""
        return cls([SlotRange(0, NUM_SLOTS - 1, NodeAddress.parse(address))], rng=rng)

    @classmethod
    def from_slot_map(
            cls,
            slot_map: Mapping[Tuple[int, int], Any],
            rng: Optional[random.Random] = None,
    ) -> "ClusterTopology":
        """
        Build a topology from {(start, end): node} or {(start, end): [primary, *replicas]}.

        Example:
            ClusterTopology.from_slot_map({
                (0, 5460): "localhost:7000",
                (5461, 10922): ["localhost:7001", "localhost:7004"],
                (10923, 16383): ("localhost", 7002),
            })
        """
        ranges = []
        for (start, end), owners in slot_map.items():
            if isinstance(owners, list):
                nodes = [NodeAddress.parse(o) for o in owners]
            else:
                nodes = [NodeAddress.parse(owners)]
            ranges.append(SlotRange(start, end, nodes[0], tuple(nodes[1:])))
        return cls(ranges, rng=rng)

    @classmethod
    def from_cluster_slots(
            cls,
            reply: Sequence[Sequence[Any]],
            default_host: str = "localhost",
            rng: Optional[random.Random] = None,
    ) -> "ClusterTopology":
        """
        Parse a CLUSTER SLOTS reply.

        Each entry is [start, end, [host, port, id, ...], [replica...], ...].
        An empty host means "the host you asked", given as ``default_host``.
        """
        def node(entry) -> NodeAddress:
            host = entry[0].decode() if isinstance(entry[0], bytes) else entry[0]
            return NodeAddress(host or default_host, int(entry[1]))

        ranges = []
        for entry in reply:
            if len(entry) < 3:
                raise ValueError(f"malformed CLUSTER SLOTS entry: {entry!r}")
            start, end = int(entry[0]), int(entry[1])
            owners = [node(e) for e in entry[2:]]
            ranges.append(SlotRange(start, end, owners[0], tuple(owners[1:])))
        return cls(ranges, rng=rng)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def primaries(self) -> Tuple[NodeAddress, ...]:
        return self._primaries

    @property
    def nodes(self) -> Tuple[NodeAddress, ...]:
        return self._nodes

    def range_for_slot(self, slot: int) -> SlotRange:
        """
        Find the slot range containing ``slot``.

        Raises:
            RoutingError: If no node owns the slot
        """
        index = bisect.bisect_right(self._starts, slot) - 1
        if index >= 0:
            candidate = self.ranges[index]
            if candidate.start <= slot <= candidate.end:
                return candidate
        raise RoutingError(f"slot {slot} is not served by any node")

    def node_for_slot(self, slot: int, slot_type: SlotType = SlotType.PRIMARY) -> NodeAddress:
        return self.range_for_slot(slot).serving(slot_type)

    def node_for_key(self, key: Union[str, bytes], slot_type: SlotType = SlotType.PRIMARY) -> NodeAddress:
        return self.node_for_slot(get_slot_for_key(key), slot_type)

    def random_primary(self) -> NodeAddress:
        return self._rng.choice(self._primaries)

    def current_targets(self, route: Route, key: Optional[Union[str, bytes]] = None) -> Tuple[NodeAddress, ...]:
        """
        Resolve a routing policy into the ordered set of target nodes.

        Args:
            route: The routing policy
            key: Key hint used by SimpleRoute.DEFAULT

        Returns:
            Tuple of node addresses, never empty

        Raises:
            RoutingError: If the route cannot be served
        """
        if route is SimpleRoute.DEFAULT:
            if key is not None:
                targets = (self.node_for_key(key),)
            else:
                targets = (self.random_primary(),)
        elif route is SimpleRoute.RANDOM:
            targets = (self.random_primary(),)
        elif route is SimpleRoute.ALL_PRIMARIES:
            targets = self._primaries
        elif route is SimpleRoute.ALL_NODES:
            targets = self._nodes
        elif isinstance(route, (SlotIdRoute, SlotKeyRoute)):
            targets = (self.node_for_slot(route.slot, route.slot_type),)
        else:
            raise RoutingError(f"unsupported route: {route!r}")

        logger.debug(f"Resolved {route!r} to {len(targets)} node(s)")
        return targets

    def describe(self) -> Dict[str, List[str]]:
        """Primary -> replicas overview, for logging."""
        overview: Dict[str, List[str]] = {}
        for r in self.ranges:
            overview.setdefault(str(r.primary), [])
            for replica in r.replicas:
                if str(replica) not in overview[str(r.primary)]:
                    overview[str(r.primary)].append(str(replica))
        return overview

    def __repr__(self) -> str:
        return (f"ClusterTopology(ranges={len(self.ranges)}, "
                f"primaries={len(self._primaries)}, nodes={len(self._nodes)})")

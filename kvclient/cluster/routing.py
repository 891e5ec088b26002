"""
Routing Policies

A routing policy decides which node(s) receive a whole transaction:

    SimpleRoute.DEFAULT        primary owning the first key, or a random
                               primary when the batch has no key
    SimpleRoute.RANDOM         any single primary
    SimpleRoute.ALL_NODES      every node, primaries and replicas
    SimpleRoute.ALL_PRIMARIES  every primary
    SlotIdRoute(slot_id)       node owning an explicit slot
    SlotKeyRoute(key)          node owning the slot of a key

The route is fixed for the whole transaction.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Union

from ..errors import RoutingError
from .slots import NUM_SLOTS, get_slot_for_key, is_valid_slot


class SimpleRoute(Enum):
    """Routes that need no extra data."""
    DEFAULT = auto()
    RANDOM = auto()
    ALL_NODES = auto()
    ALL_PRIMARIES = auto()


class SlotType(Enum):
    """Which member of a shard serves a slot route."""
    PRIMARY = auto()
    REPLICA = auto()


@dataclass(frozen=True)
class SlotIdRoute:
    """Route to the node owning ``slot_id``."""
    slot_id: int
    slot_type: SlotType = SlotType.PRIMARY

    def __post_init__(self):
        if not is_valid_slot(self.slot_id):
            raise RoutingError(f"slot id {self.slot_id} out of range 0-{NUM_SLOTS - 1}")

    @property
    def slot(self) -> int:
        return self.slot_id


@dataclass(frozen=True)
class SlotKeyRoute:
    """Route to the node owning the slot of ``key``."""
    key: str
    slot_type: SlotType = SlotType.PRIMARY

    @property
    def slot(self) -> int:
        return get_slot_for_key(self.key)


Route = Union[SimpleRoute, SlotIdRoute, SlotKeyRoute]

"""
Cluster module for KV Cluster Client.

This module provides clustering support including:
- Hash slot calculation
- Routing policies and topology snapshots
- Transaction execution, abort detection and result reconciliation
"""

from .slots import NUM_SLOTS, get_slot_for_key
from .routing import Route, SimpleRoute, SlotIdRoute, SlotKeyRoute, SlotType
from .topology import ClusterTopology, NodeAddress, SlotRange
from .executor import ClusterExecutor, ErrorPolicy

__all__ = [
    'NUM_SLOTS',
    'get_slot_for_key',
    'Route',
    'SimpleRoute',
    'SlotIdRoute',
    'SlotKeyRoute',
    'SlotType',
    'ClusterTopology',
    'NodeAddress',
    'SlotRange',
    'ClusterExecutor',
    'ErrorPolicy',
]

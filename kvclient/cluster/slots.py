"""
Hash Slot Calculation

The key space is split into 16384 hash slots. Every node of the cluster
owns one or more slot ranges, and a key always maps to the same slot on
every client:

    slot = CRC16(key) mod 16384

If the key contains a non-empty "{...}" section, only the text between
the first "{" and the next "}" is hashed, so related keys such as
"{user1000}.following" and "{user1000}.followers" share a slot.
"""

import binascii
from typing import Union

NUM_SLOTS = 16384


def hash_tag(key: bytes) -> bytes:
    """Return the part of ``key`` that is hashed."""
    start = key.find(b"{")
    if start == -1:
        return key
    end = key.find(b"}", start + 1)
    if end == -1 or end == start + 1:
        return key
    return key[start + 1:end]


def get_slot_for_key(key: Union[str, bytes]) -> int:
    """
    Calculate which hash slot owns a given key.

    Args:
        key: The key to hash

    Returns:
        Slot ID (0 to 16383)

    Implementation:
        - crc_hqx with a zero seed is CRC-16/XMODEM, the cluster's CRC16
    """
    if isinstance(key, str):
        key = key.encode('utf-8')
    return binascii.crc_hqx(hash_tag(key), 0) % NUM_SLOTS


def is_valid_slot(slot_id: int) -> bool:
    return 0 <= slot_id < NUM_SLOTS

"""Per-command shaping of decoded replies."""

from typing import Any

from ..errors import ProtocolError, ResponseError
from .commands import ResponseType


def _text(value: Any) -> str:
    return value.decode('utf-8') if isinstance(value, bytes) else str(value)


def shape_response(value: Any, response_type: ResponseType) -> Any:
    """
    Convert a decoded reply into the type its command promises.

    Error values and nulls pass through untouched so that they keep
    their position in a transaction result.

    Raises:
        ProtocolError: If the reply cannot be converted
    """
    if value is None or isinstance(value, ResponseError) or response_type is ResponseType.RAW:
        return value

    try:
        if response_type is ResponseType.BOOL:
            return bool(int(value))
        if response_type is ResponseType.FLOAT:
            return float(_text(value))
        if response_type is ResponseType.SET:
            return set(value)
        if response_type is ResponseType.MAP:
            if len(value) % 2:
                raise ValueError("odd number of elements")
            return dict(zip(value[0::2], value[1::2]))
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"cannot shape reply as {response_type.name}: {e}") from e

    return value

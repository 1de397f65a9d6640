"""Tuple code to label mapping utilities."""

from typing import Optional

from .config import ACTION_CODES, DIRECTION_CODES, FLOW_STATE_CODES, PROTOCOL_CODES


def get_protocol_label(code: str) -> str:
    """Convert a protocol letter or number to its name, passing unknown codes through."""
    return PROTOCOL_CODES.get(code, code)


def get_direction_label(code: str) -> str:
    return DIRECTION_CODES.get(code, code)


def get_action_label(code: str) -> str:
    """Convert an action code; B/C/E are lifecycle markers, not allow/deny decisions."""
    return ACTION_CODES.get(code, code)


def get_flow_state_label(code: Optional[str]) -> Optional[str]:
    """Convert the optional flow state field; empty means not present."""
    if not code:
        return None
    return FLOW_STATE_CODES.get(code, code)

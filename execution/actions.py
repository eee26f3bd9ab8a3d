"""
Supported actions.

A closed set: each action carries its required fields and how the producer
dispatches it (status query, direct call, or persisted + queued execution).
"""
from enum import Enum
from typing import Optional, Dict, Any, Tuple

from execution.errors import ValidationError


class DispatchMode(Enum):
    QUERY = "query"     # read-only status lookup
    DIRECT = "direct"   # executed immediately, nothing persisted or queued
    QUEUED = "queued"   # persisted and processed by the consumer


class Action(Enum):
    GET_STATUS = ("get-status", ("execution_id",), DispatchMode.QUERY)
    SEND_SLACK_MESSAGE = ("send-slack-message", ("message",), DispatchMode.DIRECT)
    SEND_SLACK_FORMATTED = ("send-slack-formatted", ("payload",), DispatchMode.DIRECT)
    GET_POKEMON = ("get-pokemon", ("pokemon_name",), DispatchMode.QUEUED)
    GET_POKEMON_ABILITY = ("get-pokemon-ability", ("ability_name",), DispatchMode.QUEUED)
    LIST_POKEMON = ("list-pokemon", (), DispatchMode.QUEUED)

    def __init__(self, action_name: str, required_fields: Tuple[str, ...], mode: DispatchMode):
        self.action_name = action_name
        self.required_fields = required_fields
        self.mode = mode

    @classmethod
    def names(cls) -> Tuple[str, ...]:
        return tuple(a.action_name for a in cls)

    @classmethod
    def lookup(cls, name: Optional[str]) -> Optional['Action']:
        for action in cls:
            if action.action_name == name:
                return action
        return None

    def missing_fields(self, body: Dict[str, Any]) -> Tuple[str, ...]:
        return tuple(f for f in self.required_fields if not body.get(f))


def validate_request(body: Dict[str, Any]) -> Action:
    """
    Validate an incoming action request.

    Returns:
        The resolved Action

    Raises:
        ValidationError: missing action, unknown action, or missing
            action-specific field (distinct messages)
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    name = body.get('action')
    if not name:
        raise ValidationError("Missing required field: action")

    action = Action.lookup(name)
    if action is None:
        raise ValidationError(f"Invalid action. Must be one of: {', '.join(Action.names())}")

    missing = action.missing_fields(body)
    if missing:
        raise ValidationError(
            f"Missing required field: {missing[0]} (for {action.action_name} action)"
        )

    return action

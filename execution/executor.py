"""
Action executor: binds every non-query action to an integration call.

The core treats the executor as opaque; it only stores what comes back.
"""
from typing import Dict, Any, Callable, Awaitable

import structlog

from execution.actions import Action, DispatchMode
from execution.errors import ExecutorError

logger = structlog.get_logger()

Handler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class ActionExecutor:
    """
    Dispatches actions to the Slack and PokeAPI clients.

    Construction fails if any executable action has no handler, so a new
    Action member cannot ship without its binding.
    """

    def __init__(self, slack: Any, pokemon: Any):
        self.slack = slack
        self.pokemon = pokemon

        self._handlers: Dict[Action, Handler] = {
            Action.SEND_SLACK_MESSAGE: self._send_slack_message,
            Action.SEND_SLACK_FORMATTED: self._send_slack_formatted,
            Action.GET_POKEMON: self._get_pokemon,
            Action.GET_POKEMON_ABILITY: self._get_pokemon_ability,
            Action.LIST_POKEMON: self._list_pokemon,
        }

        unbound = [a.action_name for a in Action
                   if a.mode != DispatchMode.QUERY and a not in self._handlers]
        if unbound:
            raise RuntimeError(f"Actions without executor binding: {', '.join(unbound)}")

    async def execute(self, action: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run an action.

        Args:
            action: Action member or action name
            fields: request fields (the submitted payload)

        Raises:
            ExecutorError: unknown action or failure inside the integration
        """
        resolved = action if isinstance(action, Action) else Action.lookup(action)
        handler = self._handlers.get(resolved) if resolved else None
        if handler is None:
            raise ExecutorError(f"No executor for action: {action}")

        missing = resolved.missing_fields(fields)
        if missing:
            raise ExecutorError(
                f"Cannot execute {resolved.action_name}: missing {', '.join(missing)}"
            )

        logger.debug("Executing action", action=resolved.action_name)
        return await handler(fields)

    @staticmethod
    def _webhook(fields: Dict[str, Any]):
        return fields.get('webhook_url') or fields.get('webhookUrl')

    async def _send_slack_message(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.slack.send_message(fields['message'], self._webhook(fields))

    async def _send_slack_formatted(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.slack.send_formatted_message(fields['payload'], self._webhook(fields))

    async def _get_pokemon(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.pokemon.get_pokemon(fields['pokemon_name'])

    async def _get_pokemon_ability(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.pokemon.get_ability(fields['ability_name'])

    async def _list_pokemon(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.pokemon.list_pokemon(
            limit=fields.get('limit', 20),
            offset=fields.get('offset', 0)
        )

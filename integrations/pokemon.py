"""PokeAPI client used by the queued lookup actions"""
from typing import Any, Dict

import httpx

from execution.errors import ExecutorError
from integrations.http import CircuitProtectedClient

DEFAULT_BASE_URL = "https://pokeapi.co/api/v2"
MAX_PAGE_SIZE = 100


class PokemonClient(CircuitProtectedClient):

    service_name = "Pokemon"

    def __init__(self, http: httpx.AsyncClient, base_url: str = DEFAULT_BASE_URL, **breaker_options):
        super().__init__(http, **breaker_options)
        self.base_url = base_url.rstrip('/')

    async def _get_json(self, path: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
        response = await self.request("GET", f"{self.base_url}{path}", params=params)
        try:
            return response.json()
        except ValueError as e:
            raise ExecutorError(f"Pokemon API returned invalid JSON for {path}") from e

    async def get_pokemon(self, pokemon_name: str) -> Dict[str, Any]:
        """Pokemon details: types, abilities and base stats"""
        data = await self._get_json(f"/pokemon/{str(pokemon_name).lower()}")
        return {
            "name": data["name"],
            "id": data["id"],
            "height": data.get("height"),
            "weight": data.get("weight"),
            "types": [t["type"]["name"] for t in data.get("types", [])],
            "abilities": [a["ability"]["name"] for a in data.get("abilities", [])],
            "stats": [
                {"name": s["stat"]["name"], "value": s["base_stat"]}
                for s in data.get("stats", [])
            ]
        }

    async def get_ability(self, ability_name: str) -> Dict[str, Any]:
        """Ability details with the English effect text and up to 10 holders"""
        data = await self._get_json(f"/ability/{str(ability_name).lower()}")
        effect = next(
            (e["effect"] for e in data.get("effect_entries", [])
             if e.get("language", {}).get("name") == "en"),
            "No effect description"
        )
        return {
            "name": data["name"],
            "id": data["id"],
            "effect": effect,
            "pokemon": [p["pokemon"]["name"] for p in data.get("pokemon", [])[:10]]
        }

    async def list_pokemon(self, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        try:
            safe_limit = min(max(1, int(limit)), MAX_PAGE_SIZE)
            safe_offset = max(0, int(offset))
        except (TypeError, ValueError) as e:
            raise ExecutorError(f"Invalid pagination: limit={limit!r} offset={offset!r}") from e

        data = await self._get_json("/pokemon", params={"limit": safe_limit, "offset": safe_offset})
        return {
            "count": data.get("count"),
            "next": data.get("next"),
            "previous": data.get("previous"),
            "results": data.get("results", [])
        }

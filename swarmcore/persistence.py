"""State stores — persistence adapters for every engine.

Both stores implement all four adapter protocols (mood, trait evolution,
prompt evolution, alliance), so one instance can back a whole population:

    store = SqliteStateStore(".swarmcore/state.db")
    await store.initialize()
    moods = MoodEngine(persistence=store)
    alliances = AllianceEngine(trust, moods, enclaves, persistence=store)

``SqliteStateStore`` keeps one key/value table per kind, with the value
stored as the pydantic model's JSON.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TypeVar

import aiosqlite
from pydantic import BaseModel

from swarmcore.config import settings
from swarmcore.evolution.prompt import PromptEvolutionState
from swarmcore.evolution.traits import EvolutionState
from swarmcore.mood.models import MoodRecord
from swarmcore.social.alliance import Alliance, AllianceProposal
from swarmcore.types import AllianceId, SeedId, utcnow

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class InMemoryStateStore:
    """Dict-backed store. Values are copied in and out."""

    def __init__(self) -> None:
        self.moods: dict[SeedId, MoodRecord] = {}
        self.evolution: dict[SeedId, EvolutionState] = {}
        self.prompt_evolution: dict[SeedId, PromptEvolutionState] = {}
        self.alliances: dict[AllianceId, Alliance] = {}
        self.proposals: dict[AllianceId, AllianceProposal] = {}

    async def save_mood_state(self, seed_id: SeedId, record: MoodRecord) -> None:
        self.moods[seed_id] = record.model_copy(deep=True)

    async def load_mood_state(self, seed_id: SeedId) -> MoodRecord | None:
        return _copy(self.moods.get(seed_id))

    async def save_evolution_state(self, seed_id: SeedId, state: EvolutionState) -> None:
        self.evolution[seed_id] = state.model_copy(deep=True)

    async def load_evolution_state(self, seed_id: SeedId) -> EvolutionState | None:
        return _copy(self.evolution.get(seed_id))

    async def save_prompt_evolution_state(
        self, seed_id: SeedId, state: PromptEvolutionState,
    ) -> None:
        self.prompt_evolution[seed_id] = state.model_copy(deep=True)

    async def load_prompt_evolution_state(self, seed_id: SeedId) -> PromptEvolutionState | None:
        return _copy(self.prompt_evolution.get(seed_id))

    async def save_alliance(self, alliance: Alliance) -> None:
        self.alliances[alliance.alliance_id] = alliance.model_copy(deep=True)

    async def save_proposal(self, proposal: AllianceProposal) -> None:
        self.proposals[proposal.alliance_id] = proposal.model_copy(deep=True)

    async def load_alliances(self) -> list[Alliance]:
        return [a.model_copy(deep=True) for a in self.alliances.values()]

    async def load_proposals(self) -> list[AllianceProposal]:
        return [p.model_copy(deep=True) for p in self.proposals.values()]


def _copy(model: M | None) -> M | None:
    return model.model_copy(deep=True) if model is not None else None


_TABLES = {
    "mood_state": "seed_id",
    "evolution_state": "seed_id",
    "prompt_evolution_state": "seed_id",
    "alliances": "alliance_id",
    "alliance_proposals": "alliance_id",
}


class SqliteStateStore:
    """Key/value state store backed by SQLite."""

    def __init__(self, db_path: str | Path | None = None) -> None:
        self._db_path = str(db_path or settings.db_path)
        self._lock = asyncio.Lock()
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and create tables if needed."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        for table, key in _TABLES.items():
            await self._db.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    {key} TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
        await self._db.commit()
        _logger.debug("State store ready at %s", self._db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # ── Mood ─────────────────────────────────────────────────────────────

    async def save_mood_state(self, seed_id: SeedId, record: MoodRecord) -> None:
        await self._put("mood_state", "seed_id", seed_id, record)

    async def load_mood_state(self, seed_id: SeedId) -> MoodRecord | None:
        return await self._get("mood_state", "seed_id", seed_id, MoodRecord)

    # ── Trait evolution ──────────────────────────────────────────────────

    async def save_evolution_state(self, seed_id: SeedId, state: EvolutionState) -> None:
        await self._put("evolution_state", "seed_id", seed_id, state)

    async def load_evolution_state(self, seed_id: SeedId) -> EvolutionState | None:
        return await self._get("evolution_state", "seed_id", seed_id, EvolutionState)

    # ── Prompt evolution ─────────────────────────────────────────────────

    async def save_prompt_evolution_state(
        self, seed_id: SeedId, state: PromptEvolutionState,
    ) -> None:
        await self._put("prompt_evolution_state", "seed_id", seed_id, state)

    async def load_prompt_evolution_state(self, seed_id: SeedId) -> PromptEvolutionState | None:
        return await self._get(
            "prompt_evolution_state", "seed_id", seed_id, PromptEvolutionState,
        )

    # ── Alliances ────────────────────────────────────────────────────────

    async def save_alliance(self, alliance: Alliance) -> None:
        await self._put("alliances", "alliance_id", alliance.alliance_id, alliance)

    async def save_proposal(self, proposal: AllianceProposal) -> None:
        await self._put("alliance_proposals", "alliance_id", proposal.alliance_id, proposal)

    async def load_alliances(self) -> list[Alliance]:
        return await self._all("alliances", Alliance)

    async def load_proposals(self) -> list[AllianceProposal]:
        return await self._all("alliance_proposals", AllianceProposal)

    # ── Internals ────────────────────────────────────────────────────────

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SqliteStateStore.initialize() has not been called")
        return self._db

    async def _put(self, table: str, key: str, value: str, model: BaseModel) -> None:
        db = self._conn()
        async with self._lock:
            await db.execute(
                f"INSERT OR REPLACE INTO {table} ({key}, data, updated_at) VALUES (?, ?, ?)",
                (value, model.model_dump_json(), utcnow().isoformat()),
            )
            await db.commit()

    async def _get(self, table: str, key: str, value: str, model: type[M]) -> M | None:
        db = self._conn()
        async with db.execute(f"SELECT data FROM {table} WHERE {key} = ?", (value,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return model.model_validate_json(row[0])

    async def _all(self, table: str, model: type[M]) -> list[M]:
        db = self._conn()
        async with db.execute(f"SELECT data FROM {table} ORDER BY updated_at") as cursor:
            rows = await cursor.fetchall()
        return [model.model_validate_json(r[0]) for r in rows]

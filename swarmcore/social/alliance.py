"""Alliance Engine — agent-initiated, trust-gated factions.

A founder proposes an alliance to 1-7 invitees it mutually trusts. The
proposal stays pending until every invitee accepts, at which point an
``Alliance`` forms with the accepted set as its members. A single
rejection closes the proposal for good. Only the founder can dissolve an
active alliance.

Every successful mutation is published on the ``EventBus`` under an
``alliance.*`` topic and saved through an optional persistence adapter in
the background.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Protocol

from pydantic import BaseModel, Field

from swarmcore.background import BackgroundTasks
from swarmcore.events.bus import EventBus
from swarmcore.exceptions import AllianceValidationError
from swarmcore.mood.engine import average_pad
from swarmcore.types import AllianceId, PADState, SeedId, new_id, utcnow

_logger = logging.getLogger(__name__)

MIN_INVITEES = 1
MAX_INVITEES = 7
MIN_MUTUAL_TRUST = 0.6

EVENT_SOURCE = "alliance_engine"


# ── Collaborators ────────────────────────────────────────────────────────────


class TrustProvider(Protocol):
    def get_trust(self, from_seed_id: SeedId, to_seed_id: SeedId) -> float: ...

    def get_reputation(self, seed_id: SeedId) -> float: ...


class MoodProvider(Protocol):
    def get_state(self, seed_id: SeedId) -> PADState | None: ...


class EnclaveProvider(Protocol):
    def get_subscriptions(self, seed_id: SeedId) -> list[str]: ...


# ── Models ───────────────────────────────────────────────────────────────────


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AllianceStatus(str, Enum):
    ACTIVE = "active"
    DISSOLVED = "dissolved"


class AllianceConfig(BaseModel):
    name: str
    description: str = ""
    shared_topics: list[str] = Field(default_factory=list)


class AllianceProposal(BaseModel):
    alliance_id: AllianceId = Field(default_factory=new_id)
    founder_seed_id: SeedId
    invited_seed_ids: list[SeedId]
    accepted_by: list[SeedId] = Field(default_factory=list)
    status: ProposalStatus = ProposalStatus.PENDING
    config: AllianceConfig
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def quorum_reached(self) -> bool:
        return all(s in self.accepted_by for s in self.invited_seed_ids)


class Alliance(BaseModel):
    alliance_id: AllianceId
    name: str
    description: str = ""
    founder_seed_id: SeedId
    member_seed_ids: list[SeedId]
    shared_topics: list[str] = Field(default_factory=list)
    status: AllianceStatus = AllianceStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)


class AlliancePersistenceAdapter(Protocol):
    async def save_alliance(self, alliance: Alliance) -> None: ...

    async def save_proposal(self, proposal: AllianceProposal) -> None: ...

    async def load_alliances(self) -> list[Alliance]: ...

    async def load_proposals(self) -> list[AllianceProposal]: ...


# ── Engine ───────────────────────────────────────────────────────────────────


class AllianceEngine:
    """Proposal state machine plus the registry of formed alliances."""

    def __init__(
        self,
        trust: TrustProvider,
        mood: MoodProvider,
        enclaves: EnclaveProvider,
        bus: EventBus | None = None,
        persistence: AlliancePersistenceAdapter | None = None,
    ) -> None:
        self._trust = trust
        self._mood = mood
        self._enclaves = enclaves
        self._bus = bus or EventBus()
        self._persistence = persistence
        self._background = BackgroundTasks()

        self._proposals: dict[AllianceId, AllianceProposal] = {}
        self._alliances: dict[AllianceId, Alliance] = {}
        self._agent_alliances: dict[SeedId, list[AllianceId]] = {}

    @property
    def bus(self) -> EventBus:
        return self._bus

    def set_persistence_adapter(self, adapter: AlliancePersistenceAdapter) -> None:
        self._persistence = adapter

    async def load_from_persistence(self) -> None:
        """Warm-start proposals and alliances from the adapter."""
        if not self._persistence:
            return
        for proposal in await self._persistence.load_proposals():
            self._proposals[proposal.alliance_id] = proposal
        for alliance in await self._persistence.load_alliances():
            self._alliances[alliance.alliance_id] = alliance
            if alliance.status == AllianceStatus.ACTIVE:
                self._index(alliance)
        _logger.info(
            "Loaded %d alliances and %d proposals",
            len(self._alliances), len(self._proposals),
        )

    # ── Mutations ────────────────────────────────────────────────────────

    async def propose_alliance(
        self,
        founder_seed_id: SeedId,
        invited_seed_ids: Iterable[SeedId],
        config: AllianceConfig,
    ) -> AllianceProposal:
        """Create a pending proposal. Raises ``AllianceValidationError``."""
        invited = list(invited_seed_ids)

        if founder_seed_id in invited:
            raise AllianceValidationError("Founder cannot be in the invited list.")
        duplicates = sorted({s for s in invited if invited.count(s) > 1})
        if duplicates:
            raise AllianceValidationError(f"Duplicate invitee: {', '.join(duplicates)}")
        if len(invited) < MIN_INVITEES:
            raise AllianceValidationError("At least 1 agent must be invited.")
        if len(invited) > MAX_INVITEES:
            raise AllianceValidationError(
                "At most 7 agents can be invited (total max 8 members)."
            )

        for invitee in invited:
            forward = self._trust.get_trust(founder_seed_id, invitee)
            backward = self._trust.get_trust(invitee, founder_seed_id)
            if forward < MIN_MUTUAL_TRUST or backward < MIN_MUTUAL_TRUST:
                raise AllianceValidationError(
                    f"Insufficient mutual trust between {founder_seed_id} and {invitee} "
                    f"(need {MIN_MUTUAL_TRUST} both ways, got {forward:.2f} / {backward:.2f})."
                )

        proposal = AllianceProposal(
            founder_seed_id=founder_seed_id,
            invited_seed_ids=invited,
            accepted_by=[founder_seed_id],
            config=config.model_copy(deep=True),
        )
        self._proposals[proposal.alliance_id] = proposal

        self._save_proposal(proposal)
        await self._emit("alliance.proposed", proposal=proposal.model_copy(deep=True))
        return proposal.model_copy(deep=True)

    async def accept_invitation(self, alliance_id: AllianceId, seed_id: SeedId) -> bool:
        """Record an acceptance; forms the alliance once every invitee is in."""
        proposal = self._proposals.get(alliance_id)
        if (
            proposal is None
            or proposal.status != ProposalStatus.PENDING
            or seed_id not in proposal.invited_seed_ids
            or seed_id in proposal.accepted_by
        ):
            return False

        proposal.accepted_by.append(seed_id)
        self._save_proposal(proposal)
        await self._emit(
            "alliance.invitation_accepted", alliance_id=alliance_id, seed_id=seed_id,
        )

        if proposal.quorum_reached:
            alliance = self._form(proposal)
            await self._emit("alliance.formed", alliance=alliance.model_copy(deep=True))
        return True

    async def reject_invitation(self, alliance_id: AllianceId, seed_id: SeedId) -> bool:
        """Reject a pending proposal. The proposal can never form afterwards."""
        proposal = self._proposals.get(alliance_id)
        if (
            proposal is None
            or proposal.status != ProposalStatus.PENDING
            or seed_id not in proposal.invited_seed_ids
        ):
            return False

        proposal.status = ProposalStatus.REJECTED
        self._save_proposal(proposal)
        await self._emit(
            "alliance.invitation_rejected", alliance_id=alliance_id, seed_id=seed_id,
        )
        return True

    async def dissolve_alliance(
        self, alliance_id: AllianceId, requesting_seed_id: SeedId,
    ) -> bool:
        """Founder-only, irreversible."""
        alliance = self._alliances.get(alliance_id)
        if (
            alliance is None
            or alliance.founder_seed_id != requesting_seed_id
            or alliance.status != AllianceStatus.ACTIVE
        ):
            return False

        alliance.status = AllianceStatus.DISSOLVED
        for member in alliance.member_seed_ids:
            ids = self._agent_alliances.get(member)
            if ids and alliance_id in ids:
                ids.remove(alliance_id)
                if not ids:
                    del self._agent_alliances[member]

        self._save_alliance(alliance)
        await self._emit(
            "alliance.dissolved",
            alliance_id=alliance_id,
            requesting_seed_id=requesting_seed_id,
        )
        return True

    # ── Queries ──────────────────────────────────────────────────────────

    def get_alliance(self, alliance_id: AllianceId) -> Alliance | None:
        alliance = self._alliances.get(alliance_id)
        return alliance.model_copy(deep=True) if alliance else None

    def get_proposal(self, alliance_id: AllianceId) -> AllianceProposal | None:
        proposal = self._proposals.get(alliance_id)
        return proposal.model_copy(deep=True) if proposal else None

    def get_agent_alliances(self, seed_id: SeedId) -> list[Alliance]:
        return [
            self._alliances[a].model_copy(deep=True)
            for a in self._agent_alliances.get(seed_id, [])
        ]

    def get_all_alliances(self) -> list[Alliance]:
        """Active alliances only."""
        return [
            a.model_copy(deep=True)
            for a in self._alliances.values()
            if a.status == AllianceStatus.ACTIVE
        ]

    def get_pending_proposals(self, seed_id: SeedId) -> list[AllianceProposal]:
        """Pending proposals still waiting on ``seed_id``'s answer."""
        return [
            p.model_copy(deep=True)
            for p in self._proposals.values()
            if p.status == ProposalStatus.PENDING
            and seed_id in p.invited_seed_ids
            and seed_id not in p.accepted_by
        ]

    def get_collective_mood(self, alliance_id: AllianceId) -> PADState | None:
        """Mean PAD over the members that have a mood."""
        alliance = self._alliances.get(alliance_id)
        if alliance is None:
            return None
        return average_pad(self._mood.get_state(s) for s in alliance.member_seed_ids)

    def get_collective_reputation(self, alliance_id: AllianceId) -> float | None:
        alliance = self._alliances.get(alliance_id)
        if alliance is None or not alliance.member_seed_ids:
            return None
        scores = [self._trust.get_reputation(s) for s in alliance.member_seed_ids]
        return sum(scores) / len(scores)

    def detect_shared_topics(self, seed_ids: Iterable[SeedId]) -> list[str]:
        """Topics every given agent subscribes to, in the first agent's order."""
        ids = list(seed_ids)
        if not ids:
            return []

        first = list(self._enclaves.get_subscriptions(ids[0]))
        if len(ids) == 1:
            return first

        common = set(first)
        for seed_id in ids[1:]:
            common &= set(self._enclaves.get_subscriptions(seed_id))
            if not common:
                return []
        return [t for t in first if t in common]

    # ── Internals ────────────────────────────────────────────────────────

    def _form(self, proposal: AllianceProposal) -> Alliance:
        alliance = Alliance(
            alliance_id=proposal.alliance_id,
            name=proposal.config.name,
            description=proposal.config.description,
            founder_seed_id=proposal.founder_seed_id,
            member_seed_ids=list(proposal.accepted_by),
            shared_topics=list(proposal.config.shared_topics),
        )
        proposal.status = ProposalStatus.ACCEPTED
        self._alliances[alliance.alliance_id] = alliance
        self._index(alliance)

        self._save_alliance(alliance)
        self._save_proposal(proposal)
        _logger.info(
            "Alliance %s formed with %d members", alliance.name, len(alliance.member_seed_ids),
        )
        return alliance

    def _index(self, alliance: Alliance) -> None:
        for member in alliance.member_seed_ids:
            ids = self._agent_alliances.setdefault(member, [])
            if alliance.alliance_id not in ids:
                ids.append(alliance.alliance_id)

    async def _emit(self, topic: str, **data: Any) -> None:
        await self._bus.emit(topic, data, source=EVENT_SOURCE)

    def _save_proposal(self, proposal: AllianceProposal) -> None:
        if not self._persistence:
            return
        snapshot = proposal.model_copy(deep=True)
        adapter = self._persistence
        self._background.spawn(
            lambda: adapter.save_proposal(snapshot),
            f"save_proposal({proposal.alliance_id})",
        )

    def _save_alliance(self, alliance: Alliance) -> None:
        if not self._persistence:
            return
        snapshot = alliance.model_copy(deep=True)
        adapter = self._persistence
        self._background.spawn(
            lambda: adapter.save_alliance(snapshot),
            f"save_alliance({alliance.alliance_id})",
        )

    async def flush(self) -> None:
        await self._background.drain()

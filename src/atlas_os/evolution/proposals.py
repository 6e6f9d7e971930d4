# src/atlas_os/evolution/proposals.py

from __future__ import annotations

import logging

from .engine import CodeEvolutionEngine
from .evolution_store import CodeEvolution, EvolutionStatus, EvolutionStore

logger = logging.getLogger(__name__)


class EvolutionProposals:
    """Persisted proposals: evolve, then approve / reject / roll back."""

    def __init__(self, store: EvolutionStore, engine: CodeEvolutionEngine) -> None:
        self._store = store
        self._engine = engine

    def propose_evolution(
            self,
            user_id: str,
            *,
            entity_type: str,
            entity_name: str,
            source_code: str,
            evolution_type: str = "improvement",
            entity_id: str | None = None,
    ) -> CodeEvolution:
        result = self._engine.evolve(
            source_code,
            entity_name=entity_name,
            entity_type=entity_type,
            evolution_type=evolution_type,
        )
        evolution = self._store.add_evolution(
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            evolution_type=evolution_type,
            result=result,
        )
        logger.info("Evolution proposed id=%s entity=%s", evolution.id, entity_name)
        return evolution

    def approve_evolution(self, evolution_id: str, *, user_id: str) -> CodeEvolution:
        self._store.require_evolution(evolution_id, user_id=user_id)
        self._store.set_status(evolution_id, EvolutionStatus.APPROVED, user_id=user_id, applied_by=user_id)
        return self._store.require_evolution(evolution_id)

    def reject_evolution(self, evolution_id: str, *, user_id: str) -> CodeEvolution:
        self._store.require_evolution(evolution_id, user_id=user_id)
        self._store.set_status(evolution_id, EvolutionStatus.REJECTED, user_id=user_id)
        return self._store.require_evolution(evolution_id)

    def rollback_evolution(self, evolution_id: str, *, user_id: str) -> CodeEvolution:
        evolution = self._store.require_evolution(evolution_id, user_id=user_id)
        if not evolution.rollback_available or not evolution.rollback_data:
            raise ValueError("Rollback not available for this evolution")
        self._store.set_status(evolution_id, EvolutionStatus.ROLLED_BACK, user_id=user_id)
        return self._store.require_evolution(evolution_id)

    def list_evolutions(self, user_id: str, *, limit: int = 50) -> list[CodeEvolution]:
        return self._store.list_evolutions(user_id, limit=limit)

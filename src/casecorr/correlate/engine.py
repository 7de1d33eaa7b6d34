# src/casecorr/correlate/engine.py

import logging
import threading
from typing import Iterable, List, Optional

from casecorr.core.config import CorrelationWeightsConfig
from casecorr.correlate.store import CorrelationStore, EntityLoader
from casecorr.normalize import fields
from casecorr.normalize.schema import CorrelationResult, CorrelationType, EntityView
from casecorr.scoring.scorer import ScoreCard

logger = logging.getLogger(__name__)


class CorrelationEngine:
    """
    Scores relationships between persisted entities of the same case scope.

    Each shared normalized value adds its field weight; correlation type
    follows field priority unless several field kinds matched, in which case
    the relationship is a network.
    """

    def __init__(
        self,
        weights: Optional[CorrelationWeightsConfig] = None,
        loader: Optional[EntityLoader] = None,
        store: Optional[CorrelationStore] = None,
    ):
        """
        Initialize the engine.

        Args:
            weights: Per-value weights and score ceiling
            loader: Entity source, required for run_correlation_analysis
            store: Correlation sink, required for run_correlation_analysis
        """
        self.weights = weights or CorrelationWeightsConfig()
        self.loader = loader
        self.store = store

    def _field_rules(self):
        # (field kind, view attribute, normalizer, weight); order is type priority
        w = self.weights
        return [
            (CorrelationType.EMAIL, "emails", fields.normalize_email, w.email),
            (CorrelationType.PHONE, "phones", fields.normalize_phone, w.phone),
            (CorrelationType.USERNAME, "usernames", fields.normalize_username, w.username),
            (CorrelationType.IP, "ips", fields.identity, w.ip),
            (CorrelationType.ADDRESS, "addresses", fields.normalize_address, w.address),
        ]

    def compare(self, primary: EntityView, candidate: EntityView) -> CorrelationResult:
        """
        Compare two entities' collateral data.

        Args:
            primary: Entity under analysis
            candidate: Other entity from the same scope

        Returns:
            CorrelationResult (score 0 and type 'unknown' when nothing is shared).
        """
        card = ScoreCard(max_score=self.weights.max_score)
        correlation_type = CorrelationType.UNKNOWN

        for kind, attribute, normalizer, weight in self._field_rules():
            primary_values = fields.distinct_normalized(
                getattr(primary, attribute), normalizer
            )
            candidate_values = set(
                fields.distinct_normalized(getattr(candidate, attribute), normalizer)
            )
            matches = [value for value in primary_values if value in candidate_values]
            if not matches:
                continue

            card.add(kind.value, weight * len(matches), matches)
            if correlation_type == CorrelationType.UNKNOWN:
                correlation_type = kind

        if card.kinds > 1:
            correlation_type = CorrelationType.NETWORK

        return CorrelationResult(
            candidate_id=candidate.entity_id,
            correlation_type=correlation_type,
            matching_fields=card.reasons,
            confidence_score=card.total,
            shared_data=card.shared,
        )

    def find_correlations(
        self, primary: EntityView, candidates: Iterable[EntityView]
    ) -> List[CorrelationResult]:
        """
        Compare an entity against a candidate pool.

        Args:
            primary: Entity under analysis
            candidates: Other entities in its scope

        Returns:
            Results with a positive score, in candidate order.
        """
        results = []
        for candidate in candidates:
            if candidate.entity_id == primary.entity_id:
                continue
            result = self.compare(primary, candidate)
            if result.confidence_score > 0:
                results.append(result)
        return results

    def run_correlation_analysis(
        self,
        entity_id: str,
        scope_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Correlate an entity with its scope and persist every positive result.

        A failed upsert is logged and skipped; there is no rollback.

        Args:
            entity_id: Entity to analyse
            scope_id: Case/user scope; defaults to the entity's own scope
            cancel_event: Checked between candidates; stops the run when set

        Returns:
            Number of correlations persisted.
        """
        if self.loader is None or self.store is None:
            raise ValueError("run_correlation_analysis requires a loader and a store")

        entity = self.loader.load_entity(entity_id)
        if entity is None:
            logger.warning(f"Entity {entity_id} not found, skipping correlation analysis")
            return 0

        scope = scope_id if scope_id is not None else entity.scope_id
        candidates = [
            candidate
            for candidate in self.loader.load_candidate_entities(scope)
            if candidate.entity_id != entity_id
        ]
        logger.info(
            f"Correlating entity {entity_id} against {len(candidates)} candidates "
            f"in scope {scope}"
        )

        results = self.find_correlations(entity, candidates)
        saved = 0
        for result in results:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Correlation analysis for {entity_id} cancelled")
                break
            try:
                self.store.upsert_correlation(entity_id, result.candidate_id, result)
                saved += 1
            except Exception as e:
                logger.error(
                    f"Failed to save correlation {entity_id} <-> {result.candidate_id}: {e}"
                )
                continue

        logger.info(f"Saved {saved}/{len(results)} correlations for entity {entity_id}")
        return saved


# --- PUBLIC INTERFACE ---
def compare_entities(
    primary: EntityView,
    candidate: EntityView,
    weights: Optional[CorrelationWeightsConfig] = None,
) -> CorrelationResult:
    """
    Public API to score the relationship between two entities.

    Args:
        primary: Entity under analysis
        candidate: Entity to compare with

    Returns:
        CorrelationResult for the pair.
    """
    engine = CorrelationEngine(weights)
    return engine.compare(primary, candidate)

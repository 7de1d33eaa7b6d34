# src/casecorr/correlate/store.py

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from casecorr.normalize.schema import (
    Correlation,
    CorrelationResult,
    EntityView,
    PatternMatch,
    PatternType,
    pair_key,
)

logger = logging.getLogger(__name__)


class EntityLoader(ABC):
    """Read access to persisted entities and their collateral data."""

    @abstractmethod
    def load_entity(self, entity_id: str) -> Optional[EntityView]:
        """Load one entity, or None if it does not exist."""

    @abstractmethod
    def load_candidate_entities(self, scope_id: Optional[str]) -> List[EntityView]:
        """Load every entity belonging to a case/user scope."""


class CorrelationStore(ABC):
    """Persistence for correlations, keyed by the unordered entity pair."""

    @abstractmethod
    def upsert_correlation(
        self, entity_a_id: str, entity_b_id: str, result: CorrelationResult
    ) -> Correlation:
        """
        Insert or update the correlation for {entity_a_id, entity_b_id}.

        An existing record stored in either direction is updated in place.
        """

    @abstractmethod
    def get_correlation(self, correlation_id: str) -> Optional[Correlation]:
        """Fetch one correlation by id."""

    @abstractmethod
    def get_correlations(self, entity_id: str) -> List[Correlation]:
        """All correlations touching an entity, strongest first."""

    @abstractmethod
    def delete_correlation(self, correlation_id: str) -> bool:
        """Remove a correlation. Returns False if it did not exist."""

    @abstractmethod
    def verify_correlation(self, correlation_id: str, verified: bool) -> bool:
        """Set the reviewer flag. Returns False if it did not exist."""


class PatternStore(ABC):
    """Persistence for cross-entity patterns, keyed by (type, value)."""

    @abstractmethod
    def upsert_pattern(self, pattern: PatternMatch) -> PatternMatch:
        """Insert or refresh the pattern with the same type and value."""

    @abstractmethod
    def get_patterns(self, pattern_type: Optional[PatternType] = None) -> List[PatternMatch]:
        """Stored patterns, optionally filtered by type, strongest first."""

    @abstractmethod
    def get_anomalies(self) -> List[PatternMatch]:
        """Stored patterns flagged as anomalies, strongest first."""

    @abstractmethod
    def delete_pattern(self, pattern_id: str) -> bool:
        """Remove a pattern. Returns False if it did not exist."""


class InMemoryEntityLoader(EntityLoader):
    def __init__(self, entities: Optional[Iterable[EntityView]] = None):
        self._entities: Dict[str, EntityView] = {}
        for entity in entities or []:
            self.add(entity)

    def add(self, entity: EntityView) -> None:
        self._entities[entity.entity_id] = entity

    def load_entity(self, entity_id: str) -> Optional[EntityView]:
        return self._entities.get(entity_id)

    def load_candidate_entities(self, scope_id: Optional[str]) -> List[EntityView]:
        return [
            entity for entity in self._entities.values() if entity.scope_id == scope_id
        ]


class InMemoryCorrelationStore(CorrelationStore):
    """
    Process-local correlation store.

    Upserts run under a lock so concurrent analyses of the same pair never
    create two rows.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: Dict[str, Correlation] = {}
        self._by_pair: Dict[Tuple[str, str], str] = {}

    def upsert_correlation(
        self, entity_a_id: str, entity_b_id: str, result: CorrelationResult
    ) -> Correlation:
        key = pair_key(entity_a_id, entity_b_id)
        now = datetime.now(timezone.utc)

        with self._lock:
            existing_id = self._by_pair.get(key)
            if existing_id is not None:
                existing = self._by_id[existing_id]
                updated = existing.model_copy(
                    update={
                        "correlation_type": result.correlation_type,
                        "matching_fields": list(result.matching_fields),
                        "confidence_score": result.confidence_score,
                        "shared_data": {
                            kind: list(values)
                            for kind, values in result.shared_data.items()
                        },
                        "updated_at": now,
                    }
                )
                self._by_id[existing_id] = updated
                logger.debug(f"Updated correlation {existing_id} for pair {key}")
                return updated

            correlation = Correlation(
                correlation_id=str(uuid.uuid4()),
                entity_a_id=entity_a_id,
                entity_b_id=entity_b_id,
                correlation_type=result.correlation_type,
                matching_fields=list(result.matching_fields),
                confidence_score=result.confidence_score,
                shared_data={
                    kind: list(values) for kind, values in result.shared_data.items()
                },
                created_at=now,
                updated_at=now,
            )
            self._by_id[correlation.correlation_id] = correlation
            self._by_pair[key] = correlation.correlation_id
            logger.debug(f"Created correlation {correlation.correlation_id} for pair {key}")
            return correlation

    def get_correlation(self, correlation_id: str) -> Optional[Correlation]:
        return self._by_id.get(correlation_id)

    def get_correlations(self, entity_id: str) -> List[Correlation]:
        with self._lock:
            found = [c for c in self._by_id.values() if c.involves(entity_id)]
        found.sort(key=lambda c: c.confidence_score, reverse=True)
        return found

    def all_correlations(self) -> List[Correlation]:
        with self._lock:
            return list(self._by_id.values())

    def delete_correlation(self, correlation_id: str) -> bool:
        with self._lock:
            correlation = self._by_id.pop(correlation_id, None)
            if correlation is None:
                return False
            self._by_pair.pop(correlation.pair_key, None)
            return True

    def verify_correlation(self, correlation_id: str, verified: bool) -> bool:
        with self._lock:
            correlation = self._by_id.get(correlation_id)
            if correlation is None:
                return False
            self._by_id[correlation_id] = correlation.model_copy(
                update={"verified": verified, "updated_at": datetime.now(timezone.utc)}
            )
            return True


class InMemoryPatternStore(PatternStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: Dict[str, PatternMatch] = {}
        self._by_key: Dict[Tuple[str, str], str] = {}

    def upsert_pattern(self, pattern: PatternMatch) -> PatternMatch:
        now = datetime.now(timezone.utc)
        with self._lock:
            existing_id = self._by_key.get(pattern.key)
            if existing_id is not None:
                existing = self._by_id[existing_id]
                updated = existing.model_copy(
                    update={
                        "matching_entities": list(pattern.matching_entities),
                        "match_count": pattern.match_count,
                        "confidence_score": pattern.confidence_score,
                        "metadata": dict(pattern.metadata),
                        "is_anomaly": pattern.is_anomaly,
                        "last_seen": now,
                    }
                )
                self._by_id[existing_id] = updated
                return updated

            stored = pattern.model_copy(
                update={
                    "pattern_id": str(uuid.uuid4()),
                    "first_seen": now,
                    "last_seen": now,
                }
            )
            self._by_id[stored.pattern_id] = stored
            self._by_key[stored.key] = stored.pattern_id
            return stored

    def get_patterns(self, pattern_type: Optional[PatternType] = None) -> List[PatternMatch]:
        with self._lock:
            found = [
                p
                for p in self._by_id.values()
                if pattern_type is None or p.pattern_type == pattern_type
            ]
        found.sort(key=lambda p: p.confidence_score, reverse=True)
        return found

    def get_anomalies(self) -> List[PatternMatch]:
        return [p for p in self.get_patterns() if p.is_anomaly]

    def delete_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            pattern = self._by_id.pop(pattern_id, None)
            if pattern is None:
                return False
            self._by_key.pop(pattern.key, None)
            return True

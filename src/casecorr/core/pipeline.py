# src/casecorr/core/pipeline.py

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Union

from casecorr.core.config import CaseCorrConfig
from casecorr.correlate.consolidator import Consolidator
from casecorr.correlate.engine import CorrelationEngine
from casecorr.correlate.extractor import RecordExtractor
from casecorr.correlate.graph_db import GraphDatabase
from casecorr.correlate.matcher import MatchDetector
from casecorr.correlate.patterns import PatternDetector
from casecorr.correlate.store import (
    CorrelationStore,
    EntityLoader,
    InMemoryCorrelationStore,
    InMemoryPatternStore,
    PatternStore,
)
from casecorr.normalize.schema import ExtractedRecord, SearchResult
from casecorr.normalize.transformer import parse_search_response

logger = logging.getLogger(__name__)


class CasePipeline:
    """
    End-to-end pipeline for one investigation case.

    Deduplicates leak-search responses into consolidated identity records and
    correlates persisted entities with the rest of their scope.
    """

    def __init__(
        self,
        config: CaseCorrConfig,
        loader: Optional[EntityLoader] = None,
        correlation_store: Optional[CorrelationStore] = None,
        pattern_store: Optional[PatternStore] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Validated casecorr configuration
            loader: Entity source for correlation and pattern detection
            correlation_store: Correlation sink (built from config if omitted)
            pattern_store: Pattern sink (built from config if omitted)
        """
        self.config = config
        self.loader = loader
        self._graph_db: Optional[GraphDatabase] = None

        if correlation_store is None or pattern_store is None:
            default_correlations, default_patterns = self._build_stores()
            correlation_store = correlation_store or default_correlations
            pattern_store = pattern_store or default_patterns

        self.correlation_store = correlation_store
        self.pattern_store = pattern_store

        self.extractor = RecordExtractor()
        self.detector = MatchDetector(config.matching)
        self.consolidator = Consolidator()
        self.engine = CorrelationEngine(config.correlation, loader, correlation_store)
        self.pattern_detector = PatternDetector(loader, pattern_store)

    def _build_stores(self):
        backend = self.config.storage.backend
        if backend == "neo4j":
            neo4j = self.config.neo4j
            logger.info(f"Using Neo4j storage at {neo4j.uri}")
            self._graph_db = GraphDatabase(
                uri=neo4j.uri,
                username=neo4j.username,
                password=neo4j.password.get_secret_value(),
                database=neo4j.database,
            )
            return self._graph_db, self._graph_db

        logger.info("Using in-memory storage")
        return InMemoryCorrelationStore(), InMemoryPatternStore()

    def close(self):
        """Close the Neo4j connection if the pipeline opened one."""
        if self._graph_db is not None:
            self._graph_db.close()
            self._graph_db = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def deduplicate(
        self, response_or_results: Union[Dict[str, Any], str, Sequence[SearchResult]]
    ) -> List[ExtractedRecord]:
        """
        Turn a leak-search response into consolidated identity records.

        Args:
            response_or_results: Raw provider response (dict or JSON text)
                or already parsed SearchResult objects

        Returns:
            Consolidated ExtractedRecord list, in first-seen order.
        """
        if isinstance(response_or_results, (dict, str)):
            results = parse_search_response(response_or_results)
        else:
            results = list(response_or_results)

        records = self.extractor.extract_records(results)
        if not records:
            logger.info("No identity records found in search response")
            return []

        groups = self.detector.find_groups(records)
        consolidated = self.consolidator.consolidate(records, groups)
        logger.info(
            f"Deduplication complete: {len(records)} records -> {len(consolidated)}"
        )
        return consolidated

    def run_correlation_analysis(
        self,
        entity_id: str,
        scope_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Correlate one entity with its scope and persist the results.

        Returns:
            Number of correlations saved.
        """
        return self.engine.run_correlation_analysis(entity_id, scope_id, cancel_event)

    def run_pattern_detection(self, scope_id: Optional[str]) -> Dict[str, int]:
        """
        Detect shared values across a scope and persist them.

        Returns:
            Saved pattern counts per family plus 'total'.
        """
        return self.pattern_detector.run_pattern_detection(scope_id)

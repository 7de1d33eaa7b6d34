# src/casecorr/correlate/graph_db.py

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from neo4j import GraphDatabase as Neo4jGraphDatabase
from neo4j import Driver, Transaction
from neo4j.exceptions import AuthError, ServiceUnavailable

from casecorr.correlate.store import CorrelationStore, PatternStore
from casecorr.normalize.schema import (
    Correlation,
    CorrelationResult,
    PatternMatch,
    PatternType,
)

logger = logging.getLogger(__name__)


class GraphDatabase(CorrelationStore, PatternStore):
    """
    Neo4j store for entity correlations and patterns.

    Correlations are :CORRELATED_WITH relationships between :Entity nodes,
    merged without direction so one relationship exists per entity pair.
    Patterns are :Pattern nodes merged on (pattern_type, pattern_value).
    """

    def __init__(self, uri: str, username: str, password: str, database: str = "neo4j"):
        """
        Initialize Neo4j connection.

        Args:
            uri: Neo4j URI (e.g., "bolt://localhost:7687")
            username: Database username
            password: Database password
            database: Database name (default: "neo4j")
        """
        self.uri = uri
        self.username = username
        self.password = password
        self.database = database
        self._driver: Optional[Driver] = None
        self._schema_ready = False
        self._ensure_connection()

    def _ensure_connection(self):
        """Establish and validate Neo4j connection."""
        if self._driver is None:
            try:
                self._driver = Neo4jGraphDatabase.driver(
                    self.uri, auth=(self.username, self.password)
                )
                self._driver.verify_connectivity()
                logger.info(f"Connected to Neo4j at {self.uri}")
            except (ServiceUnavailable, AuthError) as e:
                logger.error(f"Failed to connect to Neo4j: {e}")
                raise

    def close(self):
        """Close Neo4j driver connection."""
        if self._driver:
            self._driver.close()
            self._driver = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _now(self) -> str:
        """Get ISO 8601 timestamp."""
        return datetime.now(timezone.utc).isoformat()

    def _create_constraints_and_indexes(self):
        """Create constraints and indexes for performance."""
        if self._schema_ready:
            return
        with self._driver.session(database=self.database) as session:
            session.run(
                "CREATE CONSTRAINT entity_id_unique IF NOT EXISTS "
                "FOR (e:Entity) REQUIRE e.entity_id IS UNIQUE"
            )
            session.run(
                "CREATE CONSTRAINT pattern_key_unique IF NOT EXISTS "
                "FOR (p:Pattern) REQUIRE (p.pattern_type, p.pattern_value) IS UNIQUE"
            )
            session.run(
                "CREATE INDEX correlation_id_index IF NOT EXISTS "
                "FOR ()-[r:CORRELATED_WITH]-() ON (r.correlation_id)"
            )
            session.run(
                "CREATE INDEX correlation_confidence IF NOT EXISTS "
                "FOR ()-[r:CORRELATED_WITH]-() ON (r.confidence_score)"
            )
        self._schema_ready = True

    def _write(self, tx_function, *args) -> Optional[Dict[str, Any]]:
        self._ensure_connection()
        self._create_constraints_and_indexes()
        with self._driver.session(database=self.database) as session:
            return session.execute_write(tx_function, *args)

    def run_query(self, cypher_query: str, params: Optional[Dict] = None) -> List[Dict]:
        """
        Run a read Cypher query for investigation.

        Args:
            cypher_query: Valid Cypher query string
            params: Query parameters

        Returns:
            List of result records as dictionaries.
        """
        self._ensure_connection()
        try:
            with self._driver.session(database=self.database) as session:
                result = session.run(cypher_query, params or {})
                return [record.data() for record in result]
        except Exception as e:
            logger.error(f"Query failed: {e}")
            raise

    # --- correlations ---

    def upsert_correlation(
        self, entity_a_id: str, entity_b_id: str, result: CorrelationResult
    ) -> Correlation:
        record = self._write(self._upsert_correlation_tx, entity_a_id, entity_b_id, result)
        if not record:
            raise RuntimeError(
                f"Neo4j returned no correlation for pair {entity_a_id}/{entity_b_id}"
            )
        return self._record_to_correlation(record)

    def _upsert_correlation_tx(
        self,
        tx: Transaction,
        entity_a_id: str,
        entity_b_id: str,
        result: CorrelationResult,
    ) -> Optional[Dict[str, Any]]:
        """Transaction merging the undirected relationship for one pair."""
        query = """
        MERGE (a:Entity {entity_id: $entity_a_id})
        MERGE (b:Entity {entity_id: $entity_b_id})
        MERGE (a)-[r:CORRELATED_WITH]-(b)
        ON CREATE SET
            r.correlation_id = $correlation_id,
            r.verified = false,
            r.notes = '',
            r.created_at = $now
        SET
            r.correlation_type = $correlation_type,
            r.matching_fields = $matching_fields,
            r.confidence_score = $confidence_score,
            r.shared_data = $shared_data,
            r.updated_at = $now
        RETURN startNode(r).entity_id AS entity_a_id,
               endNode(r).entity_id AS entity_b_id,
               properties(r) AS props
        """
        params = {
            "entity_a_id": entity_a_id,
            "entity_b_id": entity_b_id,
            "correlation_id": str(uuid.uuid4()),
            "correlation_type": result.correlation_type.value,
            "matching_fields": list(result.matching_fields),
            "confidence_score": result.confidence_score,
            "shared_data": json.dumps(result.shared_data),
            "now": self._now(),
        }
        record = tx.run(query, params).single()
        return record.data() if record else None

    def _record_to_correlation(self, record: Dict[str, Any]) -> Correlation:
        props = record["props"]
        shared = props.get("shared_data") or "{}"
        return Correlation(
            correlation_id=props["correlation_id"],
            entity_a_id=record["entity_a_id"],
            entity_b_id=record["entity_b_id"],
            correlation_type=props.get("correlation_type", "unknown"),
            matching_fields=list(props.get("matching_fields") or []),
            confidence_score=props.get("confidence_score", 0),
            shared_data=json.loads(shared) if isinstance(shared, str) else shared,
            verified=bool(props.get("verified", False)),
            notes=props.get("notes") or "",
            created_at=props.get("created_at") or self._now(),
            updated_at=props.get("updated_at") or self._now(),
        )

    def get_correlation(self, correlation_id: str) -> Optional[Correlation]:
        query = """
        MATCH (a:Entity)-[r:CORRELATED_WITH {correlation_id: $correlation_id}]->(b:Entity)
        RETURN a.entity_id AS entity_a_id, b.entity_id AS entity_b_id, properties(r) AS props
        """
        results = self.run_query(query, {"correlation_id": correlation_id})
        return self._record_to_correlation(results[0]) if results else None

    def get_correlations(self, entity_id: str) -> List[Correlation]:
        query = """
        MATCH (a:Entity)-[r:CORRELATED_WITH]->(b:Entity)
        WHERE a.entity_id = $entity_id OR b.entity_id = $entity_id
        RETURN a.entity_id AS entity_a_id, b.entity_id AS entity_b_id, properties(r) AS props
        ORDER BY r.confidence_score DESC
        """
        results = self.run_query(query, {"entity_id": entity_id})
        return [self._record_to_correlation(record) for record in results]

    def delete_correlation(self, correlation_id: str) -> bool:
        record = self._write(self._delete_correlation_tx, correlation_id)
        return bool(record and record.get("count"))

    def _delete_correlation_tx(self, tx: Transaction, correlation_id: str):
        query = """
        MATCH ()-[r:CORRELATED_WITH {correlation_id: $correlation_id}]->()
        WITH r, r.correlation_id AS cid
        DELETE r
        RETURN count(cid) AS count
        """
        record = tx.run(query, {"correlation_id": correlation_id}).single()
        return record.data() if record else None

    def verify_correlation(self, correlation_id: str, verified: bool) -> bool:
        record = self._write(self._verify_correlation_tx, correlation_id, verified)
        return bool(record and record.get("count"))

    def _verify_correlation_tx(self, tx: Transaction, correlation_id: str, verified: bool):
        query = """
        MATCH ()-[r:CORRELATED_WITH {correlation_id: $correlation_id}]->()
        SET r.verified = $verified, r.updated_at = $now
        RETURN count(r) AS count
        """
        params = {"correlation_id": correlation_id, "verified": verified, "now": self._now()}
        record = tx.run(query, params).single()
        return record.data() if record else None

    # --- patterns ---

    def upsert_pattern(self, pattern: PatternMatch) -> PatternMatch:
        record = self._write(self._upsert_pattern_tx, pattern)
        if not record:
            raise RuntimeError(f"Neo4j returned no pattern for {pattern.key}")
        return self._record_to_pattern(record)

    def _upsert_pattern_tx(self, tx: Transaction, pattern: PatternMatch):
        query = """
        MERGE (p:Pattern {pattern_type: $pattern_type, pattern_value: $pattern_value})
        ON CREATE SET
            p.pattern_id = $pattern_id,
            p.first_seen = $now,
            p.notes = ''
        SET
            p.matching_entities = $matching_entities,
            p.match_count = $match_count,
            p.confidence_score = $confidence_score,
            p.metadata = $metadata,
            p.is_anomaly = $is_anomaly,
            p.last_seen = $now
        RETURN properties(p) AS props
        """
        params = {
            "pattern_type": pattern.pattern_type.value,
            "pattern_value": pattern.pattern_value,
            "pattern_id": str(uuid.uuid4()),
            "matching_entities": list(pattern.matching_entities),
            "match_count": pattern.match_count,
            "confidence_score": pattern.confidence_score,
            "metadata": json.dumps(pattern.metadata),
            "is_anomaly": pattern.is_anomaly,
            "now": self._now(),
        }
        record = tx.run(query, params).single()
        return record.data() if record else None

    def _record_to_pattern(self, record: Dict[str, Any]) -> PatternMatch:
        props = record["props"]
        metadata = props.get("metadata") or "{}"
        return PatternMatch(
            pattern_id=props.get("pattern_id"),
            pattern_type=props["pattern_type"],
            pattern_value=props["pattern_value"],
            matching_entities=list(props.get("matching_entities") or []),
            match_count=props.get("match_count", 0),
            confidence_score=props.get("confidence_score", 0),
            metadata=json.loads(metadata) if isinstance(metadata, str) else metadata,
            is_anomaly=bool(props.get("is_anomaly", False)),
            first_seen=props.get("first_seen") or self._now(),
            last_seen=props.get("last_seen") or self._now(),
            notes=props.get("notes") or "",
        )

    def get_patterns(self, pattern_type: Optional[PatternType] = None) -> List[PatternMatch]:
        query = """
        MATCH (p:Pattern)
        WHERE $pattern_type IS NULL OR p.pattern_type = $pattern_type
        RETURN properties(p) AS props
        ORDER BY p.confidence_score DESC
        """
        params = {"pattern_type": pattern_type.value if pattern_type else None}
        return [self._record_to_pattern(r) for r in self.run_query(query, params)]

    def get_anomalies(self) -> List[PatternMatch]:
        query = """
        MATCH (p:Pattern)
        WHERE p.is_anomaly = true
        RETURN properties(p) AS props
        ORDER BY p.confidence_score DESC
        """
        return [self._record_to_pattern(r) for r in self.run_query(query)]

    def delete_pattern(self, pattern_id: str) -> bool:
        record = self._write(self._delete_pattern_tx, pattern_id)
        return bool(record and record.get("count"))

    def _delete_pattern_tx(self, tx: Transaction, pattern_id: str):
        query = """
        MATCH (p:Pattern {pattern_id: $pattern_id})
        WITH p, p.pattern_id AS pid
        DETACH DELETE p
        RETURN count(pid) AS count
        """
        record = tx.run(query, {"pattern_id": pattern_id}).single()
        return record.data() if record else None

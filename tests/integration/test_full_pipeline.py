# tests/integration/test_full_pipeline.py

import importlib.util
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from casecorr.core.config import CaseCorrConfig, Neo4jConfig, StorageConfig
from casecorr.core.pipeline import CasePipeline
from casecorr.correlate.store import (
    InMemoryCorrelationStore,
    InMemoryEntityLoader,
    InMemoryPatternStore,
)
from casecorr.normalize.schema import CorrelationType, EntityView, PatternType

SCRIPTS_DIR = Path(__file__).resolve().parents[2] / "scripts"


def load_script(name):
    """Import a CLI script by file path."""
    spec = importlib.util.spec_from_file_location(name, SCRIPTS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def search_response():
    """Leak-search response with one person spread over two databases."""
    return {
        "List": {
            "LinkedIn": {
                "InfoLeak": "2021 scrape",
                "Data": [
                    {"Email": "john@example.com", "FullName": "John Doe"},
                    {"FullName": "Jane Smith", "City": "Shelbyville"},
                ],
            },
            "Telco": {
                "InfoLeak": "2019 customer dump",
                "Data": [
                    {
                        "Email": "JOHN@example.com",
                        "Phone": "+1 555 123 4567",
                        "Address": "1 Main St",
                        "City": "Springfield",
                    },
                    {"Login": "neo", "IP": "10.0.0.1"},
                    {"Hash": "5f4dcc3b5aa765d61d8327deb882cf99"},
                ],
            },
            "No results found": {"InfoLeak": "", "Data": []},
        }
    }


@pytest.fixture
def entities():
    return [
        EntityView.from_rows(
            "T-1",
            scope_id="CASE-1",
            credentials=[{"email": "john@example.com", "password_hash": "abc123"}],
            phone_numbers=[{"phone_number": "+1 555 123 4567"}],
            social_media=[{"username": "neo"}],
        ),
        EntityView.from_rows(
            "T-2",
            scope_id="CASE-1",
            credentials=[{"email": "John@Example.com", "password_hash": "abc123"}],
            phone_numbers=[{"phone_number": "15551234567"}],
        ),
        EntityView.from_rows(
            "T-3",
            scope_id="CASE-1",
            social_media=[{"username": "NEO"}],
            network_data=[{"ip_address": "10.0.0.1"}],
        ),
        EntityView.from_rows(
            "T-4",
            scope_id="CASE-2",
            credentials=[{"email": "john@example.com"}],
        ),
    ]


@pytest.fixture
def pipeline(entities):
    return CasePipeline(
        config=CaseCorrConfig(),
        loader=InMemoryEntityLoader(entities),
        correlation_store=InMemoryCorrelationStore(),
        pattern_store=InMemoryPatternStore(),
    )


class TestDeduplication:
    """Integration tests for search response deduplication."""

    def test_deduplicate_response(self, pipeline, search_response):
        records = pipeline.deduplicate(search_response)

        assert len(records) == 3
        john = records[0]
        assert john.email == "john@example.com"
        assert john.name == "John Doe"
        assert john.phone == "+1 555 123 4567"
        assert john.address == "1 Main St, Springfield"
        assert john.source == "Telco"
        assert john.raw_data["FullName"] == "John Doe"

        assert records[1].name == "Jane Smith"
        assert records[1].address == "Shelbyville"
        assert records[2].username == "neo"

    def test_deduplicate_json_text(self, pipeline, search_response):
        assert len(pipeline.deduplicate(json.dumps(search_response))) == 3

    def test_deduplicate_empty_response(self, pipeline):
        assert pipeline.deduplicate({"List": {"No results found": {"Data": []}}}) == []
        assert pipeline.deduplicate("not json") == []


class TestCorrelationPipeline:
    """Integration tests for entity correlation and pattern detection."""

    def test_correlation_and_patterns(self, pipeline):
        saved = pipeline.run_correlation_analysis("T-1")
        assert saved == 2

        correlations = pipeline.correlation_store.get_correlations("T-1")
        strongest = correlations[0]
        assert strongest.pair_key == ("T-1", "T-2")
        assert strongest.correlation_type == CorrelationType.NETWORK
        assert strongest.confidence_score == 55
        assert correlations[1].correlation_type == CorrelationType.USERNAME

        # Re-running from the other side updates the same pair
        assert pipeline.run_correlation_analysis("T-2") == 1
        assert len(pipeline.correlation_store.get_correlations("T-2")) == 1

        counts = pipeline.run_pattern_detection("CASE-1")
        assert counts["usernames"] == 1
        assert counts["emails"] == 1
        assert counts["passwords"] == 1
        assert counts["ip_ranges"] == 0
        assert counts["total"] == 3

        passwords = pipeline.pattern_store.get_patterns(PatternType.PASSWORD_PATTERN)
        assert passwords[0].matching_entities == ["T-1", "T-2"]

    def test_default_stores_are_in_memory(self):
        pipeline = CasePipeline(CaseCorrConfig(storage=StorageConfig(backend="memory")))
        assert isinstance(pipeline.correlation_store, InMemoryCorrelationStore)
        assert isinstance(pipeline.pattern_store, InMemoryPatternStore)

    @patch("casecorr.core.pipeline.GraphDatabase")
    def test_neo4j_backend(self, mock_graph_db_class, entities, monkeypatch):
        """Test the neo4j backend is opened from configuration and closed."""
        for name in ("NEO4J_URI", "NEO4J_USERNAME", "NEO4J_PASSWORD", "NEO4J_DATABASE"):
            monkeypatch.delenv(name, raising=False)
        mock_graph_db = MagicMock()
        mock_graph_db_class.return_value = mock_graph_db
        config = CaseCorrConfig(
            neo4j=Neo4jConfig(
                uri="bolt://graph:7687", username="neo4j", password="test_password"
            ),
            storage=StorageConfig(backend="neo4j"),
        )

        with CasePipeline(config, loader=InMemoryEntityLoader(entities)) as pipeline:
            assert pipeline.correlation_store is mock_graph_db
            assert pipeline.pattern_store is mock_graph_db
            assert pipeline.run_correlation_analysis("T-1") == 2

        mock_graph_db_class.assert_called_once_with(
            uri="bolt://graph:7687",
            username="neo4j",
            password="test_password",
            database="neo4j",
        )
        assert mock_graph_db.upsert_correlation.call_count == 2
        mock_graph_db.close.assert_called_once()


class TestCommandLine:
    """Integration tests for the command-line scripts."""

    def test_dedupe_script(self, tmp_path, monkeypatch, search_response):
        input_path = tmp_path / "response.json"
        output_path = tmp_path / "out" / "records.json"
        input_path.write_text(json.dumps(search_response), encoding="utf-8")
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "casecorr-dedupe",
                "--input", str(input_path),
                "--output", str(output_path),
                "--config", str(tmp_path / "missing.yaml"),
            ],
        )

        load_script("casecorr_dedupe").main()

        records = json.loads(output_path.read_text(encoding="utf-8"))
        assert len(records) == 3
        assert records[0]["email"] == "john@example.com"
        assert "ip" not in records[0]

    def test_correlate_script(self, tmp_path, monkeypatch):
        input_path = tmp_path / "entities.json"
        output_path = tmp_path / "correlations.json"
        input_path.write_text(
            json.dumps(
                [
                    {"entity_id": "T-1", "scope_id": "CASE-1", "emails": ["a@x.com"],
                     "phones": ["5551234"]},
                    {"entity_id": "T-2", "scope_id": "CASE-1", "emails": ["a@x.com"],
                     "phones": ["5551234"]},
                    {"entity_id": "T-3", "scope_id": "CASE-1",
                     "credentials": [{"email": "a@x.com"}]},
                    {"scope_id": "CASE-1"},
                ]
            ),
            encoding="utf-8",
        )
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "casecorr-correlate",
                "--input", str(input_path),
                "--entity-id", "T-1",
                "--output", str(output_path),
                "--patterns",
                "--config", str(tmp_path / "missing.yaml"),
            ],
        )

        load_script("casecorr_correlate").main()

        output = json.loads(output_path.read_text(encoding="utf-8"))
        assert output["saved"] == 2
        assert output["scope_id"] == "CASE-1"
        assert output["correlations"][0]["confidence_score"] == 55
        assert output["correlations"][0]["correlation_type"] == "network"
        assert output["pattern_counts"]["emails"] == 1

    def test_correlate_script_unknown_entity(self, tmp_path, monkeypatch):
        input_path = tmp_path / "entities.json"
        input_path.write_text(json.dumps([{"entity_id": "T-1"}]), encoding="utf-8")
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "casecorr-correlate",
                "--input", str(input_path),
                "--entity-id", "T-9",
                "--output", str(tmp_path / "out.json"),
                "--config", str(tmp_path / "missing.yaml"),
            ],
        )
        with pytest.raises(SystemExit):
            load_script("casecorr_correlate").main()

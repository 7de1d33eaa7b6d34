#!/usr/bin/env python3
# scripts/casecorr_correlate.py

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from casecorr.core.config import load_config
from casecorr.core.pipeline import CasePipeline
from casecorr.correlate.store import (
    InMemoryCorrelationStore,
    InMemoryEntityLoader,
    InMemoryPatternStore,
)
from casecorr.normalize.schema import EntityView

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("casecorr_correlate")

ROW_KEYS = ("credentials", "phone_numbers", "social_media", "network_data", "addresses")


def load_entities_from_json(input_path: Path) -> List[EntityView]:
    """
    Load entities from a JSON dump.

    Each item is either a flat EntityView (emails, phones, ...) or a target
    with its raw collateral rows (credentials, phone_numbers, ...).
    """
    with open(input_path, "r", encoding="utf-8") as f:
        entity_dicts = json.load(f)

    entities = []
    for item in entity_dicts:
        try:
            if any(key in item for key in ROW_KEYS):
                entity = EntityView.from_rows(
                    entity_id=item["entity_id"],
                    scope_id=item.get("scope_id"),
                    **{key: item.get(key) for key in ROW_KEYS},
                )
            else:
                entity = EntityView(**item)
            entities.append(entity)
        except Exception as e:
            logger.warning(f"Failed to parse entity item: {e}")
            continue

    logger.info(f"Loaded {len(entities)} entities from {input_path}")
    return entities


def main():
    parser = argparse.ArgumentParser(
        description="casecorr Entity Correlation Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Correlate one target with the rest of its case
  casecorr_correlate.py --input entities.json --entity-id T-17 --output correlations.json

  # Force a scope and detect shared values across it
  casecorr_correlate.py --input entities.json --entity-id T-17 --scope-id CASE-9 --patterns --output out.json
        """,
    )

    parser.add_argument(
        "--input", required=True, help="Input JSON file with entity dump"
    )
    parser.add_argument(
        "--entity-id", required=True, help="Entity to correlate"
    )
    parser.add_argument(
        "--scope-id",
        default=None,
        help="Case/user scope (default: the entity's own scope)",
    )
    parser.add_argument(
        "--output", required=True, help="Output JSON file for correlations"
    )
    parser.add_argument(
        "--patterns",
        action="store_true",
        help="Also run pattern detection over the scope",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Configuration file path (default: config/config.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    input_path = Path(args.input).resolve()
    if not input_path.exists():
        logger.error(f"Input file not found: {input_path}")
        sys.exit(1)

    entities = load_entities_from_json(input_path)
    if not entities:
        logger.error("No valid entities found in input")
        sys.exit(1)

    loader = InMemoryEntityLoader(entities)
    correlation_store = InMemoryCorrelationStore()
    pattern_store = InMemoryPatternStore()
    pipeline = CasePipeline(
        config=config,
        loader=loader,
        correlation_store=correlation_store,
        pattern_store=pattern_store,
    )

    entity = loader.load_entity(args.entity_id)
    if entity is None:
        logger.error(f"Entity {args.entity_id} not found in input")
        sys.exit(1)
    scope_id = args.scope_id if args.scope_id is not None else entity.scope_id

    logger.info("Starting correlation analysis...")
    saved = pipeline.run_correlation_analysis(args.entity_id, scope_id)

    output: Dict[str, Any] = {
        "entity_id": args.entity_id,
        "scope_id": scope_id,
        "saved": saved,
        "correlations": [
            c.model_dump(mode="json")
            for c in correlation_store.get_correlations(args.entity_id)
        ],
    }

    if args.patterns:
        logger.info("Starting pattern detection...")
        output["pattern_counts"] = pipeline.run_pattern_detection(scope_id)
        output["patterns"] = [
            p.model_dump(mode="json") for p in pattern_store.get_patterns()
        ]

    output_path = Path(args.output).resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(output, f, indent=2)

    logger.info(f"Correlation complete. Wrote {saved} correlations to {output_path}")


if __name__ == "__main__":
    main()

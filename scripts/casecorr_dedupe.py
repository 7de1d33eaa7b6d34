#!/usr/bin/env python3
# scripts/casecorr_dedupe.py

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from casecorr.core.config import load_config
from casecorr.core.pipeline import CasePipeline
from casecorr.correlate.store import InMemoryCorrelationStore, InMemoryPatternStore
from casecorr.normalize.schema import ExtractedRecord

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("casecorr_dedupe")


def record_to_dict(record: ExtractedRecord) -> Dict[str, Any]:
    """Convert ExtractedRecord to a JSON-serializable dict without empty fields."""
    return record.model_dump(mode="json", exclude_none=True)


def main():
    parser = argparse.ArgumentParser(
        description="casecorr Search Result Deduplication Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Consolidate a saved leak-search response
  casecorr_dedupe.py --input response.json --output records.json

  # Use a custom rule table
  casecorr_dedupe.py --input response.json --output records.json --config config/strict.yaml
        """,
    )

    parser.add_argument(
        "--input", required=True, help="Input JSON file with a leak-search response"
    )
    parser.add_argument(
        "--output", required=True, help="Output JSON file for consolidated records"
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

    try:
        with open(input_path, "r", encoding="utf-8") as f:
            response = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read search response: {e}")
        sys.exit(1)

    # Deduplication never touches storage
    pipeline = CasePipeline(
        config=config,
        correlation_store=InMemoryCorrelationStore(),
        pattern_store=InMemoryPatternStore(),
    )
    records = pipeline.deduplicate(response)

    output_path = Path(args.output).resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump([record_to_dict(r) for r in records], f, indent=2)

    logger.info(f"Deduplication complete. Wrote {len(records)} records to {output_path}")


if __name__ == "__main__":
    main()

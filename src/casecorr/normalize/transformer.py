# src/casecorr/normalize/transformer.py

import json
import logging
from typing import Any, Dict, List, Union

from casecorr.normalize.schema import SearchResult

logger = logging.getLogger(__name__)

# Pseudo database the provider returns when nothing matched
NO_RESULTS_KEY = "No results found"


class SearchResponseParser:
    """
    Normalizes a leak-search provider response into SearchResult objects.

    The provider answers with {"List": {<database>: {"InfoLeak": ..., "Data": [...]}}}.
    """

    def parse(self, raw_response: Union[Dict[str, Any], str]) -> List[SearchResult]:
        """
        Parse a provider response.

        Args:
            raw_response: Decoded response dict or its JSON text

        Returns:
            One SearchResult per database that returned rows.
        """
        if isinstance(raw_response, str):
            try:
                data = json.loads(raw_response)
            except json.JSONDecodeError:
                logger.warning("Search response is not valid JSON, ignoring")
                return []
        else:
            data = raw_response

        if not isinstance(data, dict):
            logger.warning(f"Skipping non-dict search response ({type(data).__name__})")
            return []

        listing = data.get("List")
        if not isinstance(listing, dict):
            return []

        results = []
        for database_name, database_data in listing.items():
            if database_name == NO_RESULTS_KEY:
                continue
            if not isinstance(database_data, dict):
                logger.debug(f"Skipping malformed entry for database {database_name}")
                continue

            rows = [
                row for row in (database_data.get("Data") or []) if isinstance(row, dict)
            ]
            results.append(
                SearchResult(
                    database_name=database_name,
                    info_leak=database_data.get("InfoLeak") or "",
                    data=rows,
                )
            )

        logger.debug(f"Parsed {len(results)} result sets from search response")
        return results


# --- PUBLIC INTERFACE ---
def parse_search_response(raw_response: Union[Dict[str, Any], str]) -> List[SearchResult]:
    """
    Public API to parse a leak-search provider response.

    Args:
        raw_response: Provider response (dict or JSON string)

    Returns:
        List of SearchResult objects.
    """
    parser = SearchResponseParser()
    return parser.parse(raw_response)

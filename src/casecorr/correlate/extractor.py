# src/casecorr/correlate/extractor.py

import logging
import re
from typing import Any, Dict, Generator, Iterable, List

from casecorr.normalize.schema import ExtractedRecord, SearchResult, SocialMediaHandle

logger = logging.getLogger(__name__)


class RecordExtractor:
    """
    Extracts identity records from raw leak-search result rows.

    Each row yields at most one ExtractedRecord. Columns are classified by
    keyword on the column name and validated by pattern where one applies.
    """

    def __init__(self):
        # Precompile regex patterns for performance
        self.patterns = {
            "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
            "phone": re.compile(r"^[\d+\-()\s]{8,}$"),
            "ip": re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$"),
        }
        self.social_keywords = ("telegram", "vk", "instagram", "facebook", "twitter")

    def extract_from_result(
        self, result: SearchResult
    ) -> Generator[ExtractedRecord, None, None]:
        """
        Extract records from every row of one result set.

        Yields non-empty ExtractedRecord objects tagged with the database name.
        """
        for row in result.data:
            record = self._extract_from_row(row, result.database_name)
            if record.is_empty():
                logger.debug(f"Dropping row without identity fields from {result.database_name}")
                continue
            yield record

    def _extract_from_row(self, row: Dict[str, Any], source: str) -> ExtractedRecord:
        found: Dict[str, Any] = {}
        address_parts: List[str] = []
        social_media: List[SocialMediaHandle] = []

        for key, value in row.items():
            if not value or not isinstance(value, str):
                continue

            lower_key = str(key).lower()
            trimmed = value.strip()
            if not trimmed:
                continue

            if "email" in lower_key or "mail" in lower_key:
                if self.patterns["email"].match(trimmed):
                    found["email"] = trimmed
            elif "phone" in lower_key or "tel" in lower_key or "mobile" in lower_key:
                if self.patterns["phone"].match(trimmed):
                    found["phone"] = trimmed
            elif "username" in lower_key or "login" in lower_key or lower_key == "nick":
                found["username"] = trimmed
            elif "name" in lower_key:
                found["name"] = trimmed
            elif "password" in lower_key or "pass" in lower_key:
                found["password"] = trimmed
            elif "ip" in lower_key:
                if self.patterns["ip"].match(trimmed):
                    found["ip"] = trimmed
            elif (
                "address" in lower_key
                or "location" in lower_key
                or "city" in lower_key
            ):
                address_parts.append(trimmed)
            elif any(keyword in lower_key for keyword in self.social_keywords):
                social_media.append(
                    SocialMediaHandle(platform=lower_key, username=trimmed)
                )

        if address_parts:
            found["address"] = ", ".join(address_parts)

        raw_data = dict(row)
        raw_data["source"] = source

        return ExtractedRecord(**found, social_media=social_media, raw_data=raw_data)

    def extract_records(self, results: Iterable[SearchResult]) -> List[ExtractedRecord]:
        records = []
        for result in results:
            records.extend(self.extract_from_result(result))
        logger.info(f"Extracted {len(records)} records from search results")
        return records


# --- PUBLIC INTERFACE ---
def extract_records(results: Iterable[SearchResult]) -> List[ExtractedRecord]:
    """
    Public API to extract identity records from parsed search results.

    Args:
        results: SearchResult objects from parse_search_response

    Returns:
        List of non-empty ExtractedRecord objects, in row order.
    """
    extractor = RecordExtractor()
    return extractor.extract_records(results)

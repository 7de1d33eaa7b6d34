# src/casecorr/correlate/matcher.py

import logging
from typing import List, Optional, Sequence, Set

from casecorr.core.config import MatchWeightsConfig
from casecorr.normalize import fields
from casecorr.normalize.schema import ExtractedRecord, FieldKind, MatchGroup, MatchResult
from casecorr.scoring.scorer import ScoreCard

logger = logging.getLogger(__name__)


class MatchDetector:
    """
    Groups extracted records that describe the same identity.

    Uses a weighted rule table summed per record pair, and a single greedy pass
    in which every candidate is compared with the group anchor only.
    """

    def __init__(self, weights: Optional[MatchWeightsConfig] = None):
        self.weights = weights or MatchWeightsConfig()

    def pairwise_match(self, r1: ExtractedRecord, r2: ExtractedRecord) -> MatchResult:
        """
        Score two records against the rule table.

        Args:
            r1: First record
            r2: Second record

        Returns:
            MatchResult with summed confidence (capped) and comma-joined reasons.
        """
        w = self.weights
        card = ScoreCard(max_score=w.max_confidence)

        if fields.emails_match(r1.email, r2.email):
            card.add(FieldKind.EMAIL.value, w.email)

        if fields.phones_match(r1.phone, r2.phone, min_digits=w.min_phone_digits):
            card.add(FieldKind.PHONE.value, w.phone)

        if fields.usernames_match(r1.username, r2.username):
            card.add(FieldKind.USERNAME.value, w.username)

        if fields.names_match_exact(r1.name, r2.name):
            card.add(FieldKind.NAME.value, w.name_exact)
        elif fields.names_match_partial(r1.name, r2.name):
            card.add(FieldKind.NAME_PARTIAL.value, w.name_partial)

        if fields.ips_match(r1.ip, r2.ip):
            card.add(FieldKind.IP.value, w.ip)

        if fields.addresses_match_exact(r1.address, r2.address):
            card.add(FieldKind.ADDRESS.value, w.address_exact)
        elif fields.addresses_match_partial(r1.address, r2.address):
            card.add(FieldKind.ADDRESS_PARTIAL.value, w.address_partial)

        confidence = card.total
        return MatchResult(
            is_match=confidence >= w.match_threshold,
            confidence=confidence,
            reason=card.reason,
        )

    def find_groups(self, records: Sequence[ExtractedRecord]) -> List[MatchGroup]:
        """
        Partition records into groups of likely duplicates.

        Singletons are not reported. Grouping is not transitive: two members
        that match the anchor are grouped even if they do not match each other.

        Args:
            records: Records from one search result set

        Returns:
            List of MatchGroup, ordered by anchor index.
        """
        processed: Set[int] = set()
        groups: List[MatchGroup] = []
        n = len(records)

        for i in range(n):
            if i in processed:
                continue

            group_indices = [i]
            best_confidence = 0
            first_reason = ""

            for j in range(i + 1, n):
                if j in processed:
                    continue
                match = self.pairwise_match(records[i], records[j])
                if match.is_match:
                    group_indices.append(j)
                    processed.add(j)
                    best_confidence = max(best_confidence, match.confidence)
                    if not first_reason:
                        first_reason = match.reason

            if len(group_indices) > 1:
                groups.append(
                    MatchGroup(
                        member_indices=group_indices,
                        confidence=best_confidence,
                        match_reason=first_reason,
                    )
                )
                processed.add(i)
                logger.debug(
                    f"Record {i} anchors group {group_indices} "
                    f"(confidence={best_confidence}, reason={first_reason})"
                )

        logger.info(f"Found {len(groups)} duplicate groups among {n} records")
        return groups


# --- PUBLIC INTERFACE ---
def find_duplicate_groups(
    records: Sequence[ExtractedRecord], weights: Optional[MatchWeightsConfig] = None
) -> List[MatchGroup]:
    """
    Public API to detect duplicate groups in a batch of extracted records.

    Args:
        records: List of ExtractedRecord objects
        weights: Optional rule table override

    Returns:
        List of MatchGroup objects.
    """
    detector = MatchDetector(weights)
    return detector.find_groups(records)

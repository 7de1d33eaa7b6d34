# src/casecorr/correlate/consolidator.py

import logging
from typing import Any, Dict, List, Sequence

from casecorr.normalize.fields import is_present
from casecorr.normalize.schema import (
    IDENTITY_FIELDS,
    ExtractedRecord,
    MatchGroup,
    SocialMediaHandle,
)

logger = logging.getLogger(__name__)


class Consolidator:
    """
    Merges the members of a duplicate group into a single record.

    Scalar fields keep the first non-empty value; raw_data keys are overwritten
    by later members.
    """

    def merge(self, records: Sequence[ExtractedRecord]) -> ExtractedRecord:
        """
        Consolidate group members into one new record.

        Args:
            records: Group members in member-list order

        Returns:
            Consolidated ExtractedRecord (the member itself for a single record).

        Raises:
            ValueError: If records is empty.
        """
        if not records:
            raise ValueError("Cannot consolidate an empty group")
        if len(records) == 1:
            return records[0]

        scalars: Dict[str, Any] = {}
        for field_name in IDENTITY_FIELDS:
            for record in records:
                value = getattr(record, field_name)
                if is_present(value):
                    scalars[field_name] = value
                    break

        social_media: List[SocialMediaHandle] = []
        seen = set()
        for record in records:
            for handle in record.social_media:
                if handle.key in seen:
                    continue
                seen.add(handle.key)
                social_media.append(handle)

        raw_data: Dict[str, Any] = {}
        for record in records:
            raw_data.update(record.raw_data)

        return ExtractedRecord(**scalars, social_media=social_media, raw_data=raw_data)

    def consolidate(
        self, records: Sequence[ExtractedRecord], groups: Sequence[MatchGroup]
    ) -> List[ExtractedRecord]:
        """
        Replace every group with its merged record.

        The merged record takes the anchor's position; ungrouped records keep
        their input order.

        Args:
            records: Full input batch
            groups: Output of MatchDetector.find_groups for that batch

        Returns:
            Deduplicated list of records.
        """
        merged_at: Dict[int, ExtractedRecord] = {}
        absorbed = set()
        for group in groups:
            members = [records[index] for index in group.member_indices]
            merged_at[group.anchor] = self.merge(members)
            absorbed.update(group.member_indices)

        output = []
        for index, record in enumerate(records):
            if index in merged_at:
                output.append(merged_at[index])
            elif index not in absorbed:
                output.append(record)

        logger.info(
            f"Consolidated {len(records)} records into {len(output)} "
            f"({len(groups)} groups merged)"
        )
        return output


# --- PUBLIC INTERFACE ---
def consolidate_records(
    records: Sequence[ExtractedRecord], groups: Sequence[MatchGroup]
) -> List[ExtractedRecord]:
    """
    Public API to merge duplicate groups within a batch.

    Args:
        records: List of ExtractedRecord objects
        groups: Duplicate groups found in that list

    Returns:
        List of consolidated ExtractedRecord objects.
    """
    consolidator = Consolidator()
    return consolidator.consolidate(records, groups)

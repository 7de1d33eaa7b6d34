# src/casecorr/correlate/patterns.py

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from casecorr.correlate.store import EntityLoader, PatternStore
from casecorr.normalize.schema import EntityView, PatternMatch, PatternType
from casecorr.scoring.scorer import clamp_score

logger = logging.getLogger(__name__)

# (base score, points per entity, minimum entities, anomaly above)
USERNAME_RULE = (40, 10, 2, 3)
EMAIL_RULE = (50, 10, 2, 2)
DOMAIN_RULE = (30, 5, 4, None)
PASSWORD_RULE = (60, 10, 2, 2)
SUBNET_RULE = (40, 8, 3, 5)

# Visible prefix of a password hash in pattern_value
HASH_PREFIX_LENGTH = 16


class PatternDetector:
    """
    Finds values shared by several entities of one scope.

    Covers username reuse, shared emails and email domains, password reuse
    and /24 subnets.
    """

    def __init__(
        self,
        loader: Optional[EntityLoader] = None,
        store: Optional[PatternStore] = None,
    ):
        self.loader = loader
        self.store = store

    def detect(self, entities: Iterable[EntityView]) -> List[PatternMatch]:
        """
        Run every pattern rule over a set of entities.

        Args:
            entities: All entities of one scope

        Returns:
            List of PatternMatch (usernames, emails, passwords, then subnets).
        """
        entities = list(entities)
        patterns = []
        patterns.extend(self.detect_username_patterns(entities))
        patterns.extend(self.detect_email_patterns(entities))
        patterns.extend(self.detect_password_patterns(entities))
        patterns.extend(self.detect_ip_range_patterns(entities))
        return patterns

    def _index(self, entities: List[EntityView], keys_of) -> Dict[str, List[str]]:
        """Map each key to the distinct entity ids carrying it, in first-seen order."""
        index: Dict[str, List[str]] = OrderedDict()
        for entity in entities:
            for key in keys_of(entity):
                if not key:
                    continue
                owners = index.setdefault(key, [])
                if entity.entity_id not in owners:
                    owners.append(entity.entity_id)
        return index

    def _build(
        self,
        pattern_type: PatternType,
        value: str,
        entity_ids: List[str],
        rule,
        metadata: Dict,
    ) -> Optional[PatternMatch]:
        base, per_entity, minimum, anomaly_above = rule
        count = len(entity_ids)
        if count < minimum:
            return None
        return PatternMatch(
            pattern_type=pattern_type,
            pattern_value=value,
            matching_entities=list(entity_ids),
            match_count=count,
            confidence_score=clamp_score(base + count * per_entity),
            metadata=metadata,
            is_anomaly=anomaly_above is not None and count > anomaly_above,
        )

    def detect_username_patterns(self, entities: List[EntityView]) -> List[PatternMatch]:
        index = self._index(
            entities, lambda e: [u.lower() for u in e.usernames if isinstance(u, str)]
        )
        found = []
        for username, owners in index.items():
            pattern = self._build(
                PatternType.USERNAME_REUSE,
                username,
                owners,
                USERNAME_RULE,
                {"type": "username_reuse"},
            )
            if pattern:
                found.append(pattern)
        return found

    def detect_email_patterns(self, entities: List[EntityView]) -> List[PatternMatch]:
        emails = self._index(
            entities, lambda e: [m.lower() for m in e.emails if isinstance(m, str)]
        )
        domains = self._index(
            entities,
            lambda e: [
                m.lower().split("@")[1]
                for m in e.emails
                if isinstance(m, str) and "@" in m
            ],
        )

        found = []
        for email, owners in emails.items():
            pattern = self._build(
                PatternType.EMAIL_PATTERN, email, owners, EMAIL_RULE, {"type": "exact_match"}
            )
            if pattern:
                found.append(pattern)
        for domain, owners in domains.items():
            pattern = self._build(
                PatternType.EMAIL_PATTERN,
                f"@{domain}",
                owners,
                DOMAIN_RULE,
                {"type": "domain_match"},
            )
            if pattern:
                found.append(pattern)
        return found

    def detect_password_patterns(self, entities: List[EntityView]) -> List[PatternMatch]:
        index = self._index(
            entities, lambda e: [h for h in e.password_hashes if isinstance(h, str)]
        )
        found = []
        for password_hash, owners in index.items():
            pattern = self._build(
                PatternType.PASSWORD_PATTERN,
                password_hash[:HASH_PREFIX_LENGTH] + "...",
                owners,
                PASSWORD_RULE,
                {"type": "password_reuse", "full_hash": password_hash},
            )
            if pattern:
                found.append(pattern)
        return found

    def detect_ip_range_patterns(self, entities: List[EntityView]) -> List[PatternMatch]:
        def subnets(entity: EntityView) -> List[str]:
            keys = []
            for ip in entity.ips:
                if not isinstance(ip, str):
                    continue
                parts = ip.split(".")
                if len(parts) == 4:
                    keys.append(f"{parts[0]}.{parts[1]}.{parts[2]}.0/24")
            return keys

        index = self._index(entities, subnets)
        found = []
        for subnet, owners in index.items():
            pattern = self._build(
                PatternType.IP_RANGE, subnet, owners, SUBNET_RULE, {"type": "subnet_match"}
            )
            if pattern:
                found.append(pattern)
        return found

    def run_pattern_detection(self, scope_id: Optional[str]) -> Dict[str, int]:
        """
        Detect patterns across a scope and persist them.

        Args:
            scope_id: Case/user scope to analyse

        Returns:
            Saved pattern counts per family plus 'total'.
        """
        if self.loader is None or self.store is None:
            raise ValueError("run_pattern_detection requires a loader and a store")

        entities = self.loader.load_candidate_entities(scope_id)
        counts = {"usernames": 0, "emails": 0, "passwords": 0, "ip_ranges": 0}
        families = {
            PatternType.USERNAME_REUSE: "usernames",
            PatternType.EMAIL_PATTERN: "emails",
            PatternType.PASSWORD_PATTERN: "passwords",
            PatternType.IP_RANGE: "ip_ranges",
        }

        for pattern in self.detect(entities):
            try:
                self.store.upsert_pattern(pattern)
            except Exception as e:
                logger.error(
                    f"Failed to save pattern {pattern.pattern_type.value}:{pattern.pattern_value}: {e}"
                )
                continue
            counts[families[pattern.pattern_type]] += 1

        counts["total"] = sum(counts.values())
        logger.info(f"Pattern detection for scope {scope_id}: {counts}")
        return counts

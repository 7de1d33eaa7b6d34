# tests/unit/test_matcher.py

import pytest

from casecorr.core.config import MatchWeightsConfig
from casecorr.correlate.consolidator import Consolidator, consolidate_records
from casecorr.correlate.matcher import MatchDetector, find_duplicate_groups
from casecorr.normalize.schema import ExtractedRecord, MatchGroup, SocialMediaHandle


@pytest.fixture
def detector():
    return MatchDetector()


class TestPairwiseMatch:
    """Test the weighted rule table for one record pair."""

    def test_email_only_is_match(self, detector):
        result = detector.pairwise_match(
            ExtractedRecord(email="J@X.com"), ExtractedRecord(email="j@x.com")
        )
        assert result.is_match
        assert result.confidence == 50
        assert result.reason == "email"

    def test_ip_only_below_threshold(self, detector):
        """Test a shared IP alone (25) does not reach the threshold (30)."""
        result = detector.pairwise_match(
            ExtractedRecord(ip="10.0.0.1"), ExtractedRecord(ip="10.0.0.1")
        )
        assert not result.is_match
        assert result.confidence == 25
        assert result.reason == "ip"

    def test_threshold_is_inclusive(self, detector):
        """Test a username alone (30) matches at exactly the threshold."""
        result = detector.pairwise_match(
            ExtractedRecord(username="Neo"), ExtractedRecord(username="neo")
        )
        assert result.is_match
        assert result.confidence == 30

    def test_no_shared_fields(self, detector):
        result = detector.pairwise_match(
            ExtractedRecord(email="a@x.com"), ExtractedRecord(phone="+1 555 123 4567")
        )
        assert not result.is_match
        assert result.confidence == 0
        assert result.reason == ""

    def test_partial_name_and_address(self, detector):
        """Test partial rules apply only when the exact rule does not."""
        result = detector.pairwise_match(
            ExtractedRecord(name="John Doe", address="1 Main St, Springfield"),
            ExtractedRecord(name="johnny", address="Springfield"),
        )
        assert result.confidence == 20 + 15
        assert result.reason == "name_partial,address_partial"

    def test_exact_name_wins_over_partial(self, detector):
        result = detector.pairwise_match(
            ExtractedRecord(name="John Doe"), ExtractedRecord(name="john doe")
        )
        assert result.confidence == 35
        assert result.reason == "name"

    def test_reasons_follow_rule_order(self, detector):
        result = detector.pairwise_match(
            ExtractedRecord(phone="+1 555 123 4567", email="a@x.com"),
            ExtractedRecord(email="a@x.com", phone="15551234567"),
        )
        assert result.reason == "email,phone"
        assert result.confidence == 90

    def test_confidence_capped_at_100(self, detector):
        record = ExtractedRecord(
            email="a@x.com",
            phone="+1 555 123 4567",
            username="neo",
            name="Thomas Anderson",
            ip="10.0.0.1",
            address="1 Main St, Springfield",
        )
        result = detector.pairwise_match(record, record)
        assert result.confidence == 100
        assert result.is_match

    def test_short_phone_does_not_match(self, detector):
        result = detector.pairwise_match(
            ExtractedRecord(phone="555-1234"), ExtractedRecord(phone="5551234")
        )
        assert result.confidence == 0

    def test_pairwise_match_is_symmetric(self, detector):
        records = [
            ExtractedRecord(email="a@x.com", name="John Doe"),
            ExtractedRecord(email="A@x.com", name="johnny", ip="10.0.0.1"),
            ExtractedRecord(address="Springfield", ip="10.0.0.1"),
            ExtractedRecord(address="1 Main St, springfield", username="neo"),
        ]
        for r1 in records:
            for r2 in records:
                assert detector.pairwise_match(r1, r2) == detector.pairwise_match(r2, r1)

    def test_custom_weights(self):
        detector = MatchDetector(MatchWeightsConfig(ip=40))
        result = detector.pairwise_match(
            ExtractedRecord(ip="10.0.0.1"), ExtractedRecord(ip="10.0.0.1")
        )
        assert result.is_match
        assert result.confidence == 40


class TestFindGroups:
    """Test greedy anchor-based grouping."""

    def test_email_scenario(self, detector):
        """Test two records sharing an email are grouped and the third is left alone."""
        records = [
            ExtractedRecord(email="j@x.com", name="John Doe"),
            ExtractedRecord(email="j@x.com", phone="555-1234"),
            ExtractedRecord(name="Jane Smith"),
        ]
        groups = detector.find_groups(records)
        assert len(groups) == 1
        assert groups[0].member_indices == [0, 1]
        assert groups[0].confidence == 50
        assert groups[0].match_reason == "email"

    def test_grouping_compares_against_anchor_only(self, detector):
        """Test members need to match the anchor, not each other."""
        records = [
            ExtractedRecord(email="a@x.com", phone="+1 555 123 4567"),
            ExtractedRecord(email="a@x.com"),
            ExtractedRecord(phone="15551234567"),
        ]
        groups = detector.find_groups(records)
        assert len(groups) == 1
        assert groups[0].member_indices == [0, 1, 2]
        assert groups[0].confidence == 50
        assert groups[0].match_reason == "email"

    def test_grouping_depends_on_order(self, detector):
        """Test the bridging record only joins when it is the anchor."""
        records = [
            ExtractedRecord(email="a@x.com"),
            ExtractedRecord(phone="15551234567"),
            ExtractedRecord(email="a@x.com", phone="+1 555 123 4567"),
        ]
        groups = detector.find_groups(records)
        assert [g.member_indices for g in groups] == [[0, 2]]

    def test_groups_are_disjoint_and_ordered(self, detector):
        records = [
            ExtractedRecord(username="neo"),
            ExtractedRecord(email="b@x.com"),
            ExtractedRecord(username="NEO"),
            ExtractedRecord(email="B@x.com"),
            ExtractedRecord(username="neo", email="b@x.com"),
        ]
        groups = detector.find_groups(records)
        assert [g.member_indices for g in groups] == [[0, 2, 4], [1, 3]]
        seen = set()
        for group in groups:
            assert group.member_indices[0] == min(group.member_indices)
            assert not seen.intersection(group.member_indices)
            seen.update(group.member_indices)

    def test_no_groups(self, detector):
        assert detector.find_groups([]) == []
        assert detector.find_groups([ExtractedRecord(email="a@x.com")]) == []
        assert find_duplicate_groups(
            [ExtractedRecord(ip="10.0.0.1"), ExtractedRecord(ip="10.0.0.1")]
        ) == []


class TestConsolidator:
    """Test merging of duplicate groups."""

    def test_scalars_first_non_empty_wins(self):
        merged = Consolidator().merge(
            [
                ExtractedRecord(email="a@x.com", name="   "),
                ExtractedRecord(email="other@x.com", name="Bob"),
                ExtractedRecord(name="Robert", phone="+1 555 123 4567"),
            ]
        )
        assert merged.email == "a@x.com"
        assert merged.name == "Bob"
        assert merged.phone == "+1 555 123 4567"
        assert merged.ip is None

    def test_raw_data_later_members_overwrite(self):
        merged = Consolidator().merge(
            [
                ExtractedRecord(email="a@x.com", raw_data={"source": "db1", "Email": "a@x.com"}),
                ExtractedRecord(email="a@x.com", raw_data={"source": "db2", "Phone": "123"}),
            ]
        )
        assert merged.raw_data == {"source": "db2", "Email": "a@x.com", "Phone": "123"}
        assert merged.source == "db2"

    def test_social_media_union(self):
        """Test handles are unioned by (platform, username) keeping the first URL."""
        merged = Consolidator().merge(
            [
                ExtractedRecord(
                    social_media=[
                        SocialMediaHandle(platform="vk", username="neo", url="https://vk.com/neo")
                    ]
                ),
                ExtractedRecord(
                    social_media=[
                        SocialMediaHandle(platform="vk", username="neo", url="https://vk.com/id1"),
                        SocialMediaHandle(platform="twitter", username="neo"),
                    ]
                ),
            ]
        )
        assert [h.key for h in merged.social_media] == [("vk", "neo"), ("twitter", "neo")]
        assert merged.social_media[0].url == "https://vk.com/neo"

    def test_empty_group_raises(self):
        with pytest.raises(ValueError, match="empty"):
            Consolidator().merge([])

    def test_single_record_returned_unchanged(self):
        record = ExtractedRecord(email="a@x.com")
        assert Consolidator().merge([record]) is record

    def test_inputs_not_modified(self):
        first = ExtractedRecord(email="a@x.com", raw_data={"source": "db1"})
        second = ExtractedRecord(name="Bob", raw_data={"source": "db2"})
        Consolidator().merge([first, second])
        assert first.raw_data == {"source": "db1"}
        assert first.name is None

    def test_consolidate_keeps_anchor_position(self):
        records = [
            ExtractedRecord(name="Jane Smith"),
            ExtractedRecord(email="j@x.com", name="John Doe"),
            ExtractedRecord(ip="10.0.0.1"),
            ExtractedRecord(email="j@x.com", phone="+1 555 123 4567"),
        ]
        groups = [MatchGroup(member_indices=[1, 3], confidence=50, match_reason="email")]
        output = consolidate_records(records, groups)
        assert len(output) == 3
        assert output[0] is records[0]
        assert output[1].name == "John Doe"
        assert output[1].phone == "+1 555 123 4567"
        assert output[2] is records[2]

    def test_consolidate_without_groups(self):
        records = [ExtractedRecord(email="a@x.com"), ExtractedRecord(email="b@x.com")]
        assert consolidate_records(records, []) == records

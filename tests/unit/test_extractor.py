# tests/unit/test_extractor.py

import pytest

from casecorr.correlate.extractor import RecordExtractor, extract_records
from casecorr.normalize.schema import SearchResult


@pytest.fixture
def extractor():
    return RecordExtractor()


def result(*rows, name="LinkedIn"):
    return SearchResult(database_name=name, data=list(rows))


class TestRecordExtractor:
    """Test identity field extraction from leak rows."""

    def test_extract_full_row(self, extractor):
        """Test every identity column is classified by its name."""
        row = {
            "Email": " john@example.com ",
            "Phone": "+1 (555) 123-4567",
            "Login": "jdoe",
            "FullName": "John Doe",
            "Password": "hunter2",
            "IP": "10.0.0.1",
            "Address": "1 Main St",
            "City": "Springfield",
            "Instagram": "john.d",
        }
        records = list(extractor.extract_from_result(result(row)))
        assert len(records) == 1
        record = records[0]
        assert record.email == "john@example.com"
        assert record.phone == "+1 (555) 123-4567"
        assert record.username == "jdoe"
        assert record.name == "John Doe"
        assert record.password == "hunter2"
        assert record.ip == "10.0.0.1"
        assert record.address == "1 Main St, Springfield"
        assert [h.key for h in record.social_media] == [("instagram", "john.d")]
        assert record.source == "LinkedIn"
        assert record.raw_data["Login"] == "jdoe"

    def test_invalid_values_are_dropped(self, extractor):
        row = {"Email": "not an email", "Phone": "12-34", "IP": "999.1", "Nick": "neo"}
        record = list(extractor.extract_from_result(result(row)))[0]
        assert record.email is None
        assert record.phone is None
        assert record.ip is None
        assert record.username == "neo"

    def test_rows_without_identity_are_skipped(self, extractor):
        rows = [{"Hash": "abc", "Email": ""}, {"Email": 42}, {"Email": "a@x.com"}]
        records = list(extractor.extract_from_result(result(*rows)))
        assert len(records) == 1
        assert records[0].email == "a@x.com"

    def test_extract_records_across_results(self):
        records = extract_records(
            [
                result({"Email": "a@x.com"}, name="DB1"),
                result({"Email": "b@x.com"}, {"Phone": "+44 20 7946 0958"}, name="DB2"),
            ]
        )
        assert [r.source for r in records] == ["DB1", "DB2", "DB2"]
        assert records[2].phone == "+44 20 7946 0958"

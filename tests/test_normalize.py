"""Unit tests for cvevault.services.normalize: severity bands, score/description extraction, entry mapping."""

import unittest

from cvevault.services.normalize import (
    entry_identifier,
    extract_description,
    extract_score,
    normalize_entry,
    severity_from_score,
)


def _entry(
    cve_id: str = "CVE-2024-0001",
    metrics: dict | None = None,
    descriptions: list | None = None,
) -> dict:
    """Build a minimal NVD 2.0 vulnerability entry."""
    return {
        "cve": {
            "id": cve_id,
            "published": "2024-01-02T10:00:00.000",
            "lastModified": "2024-01-03T11:00:00.000",
            "descriptions": descriptions
            if descriptions is not None
            else [{"lang": "en", "value": "Buffer overflow in foo."}],
            "metrics": metrics or {},
        }
    }


def _metric(score: float, source_type: str = "Primary") -> dict:
    return {"type": source_type, "cvssData": {"baseScore": score}}


class TestSeverityFromScore(unittest.TestCase):
    """Score thresholds map to severity categories."""

    def test_thresholds(self) -> None:
        self.assertEqual(severity_from_score(9.5), "CRITICAL")
        self.assertEqual(severity_from_score(9.0), "CRITICAL")
        self.assertEqual(severity_from_score(8.9), "HIGH")
        self.assertEqual(severity_from_score(7.0), "HIGH")
        self.assertEqual(severity_from_score(4.0), "MEDIUM")
        self.assertEqual(severity_from_score(3.9), "LOW")
        self.assertEqual(severity_from_score(0.1), "LOW")

    def test_zero_and_missing_are_unknown(self) -> None:
        self.assertEqual(severity_from_score(0), "UNKNOWN")
        self.assertEqual(severity_from_score(None), "UNKNOWN")


class TestExtractScore(unittest.TestCase):
    """extract_score prefers the newest CVSS version and the Primary source."""

    def test_prefers_v31_over_v2(self) -> None:
        metrics = {"cvssMetricV2": [_metric(5.0)], "cvssMetricV31": [_metric(9.8)]}
        self.assertEqual(extract_score(metrics), 9.8)

    def test_prefers_primary_source(self) -> None:
        metrics = {"cvssMetricV31": [_metric(6.1, "Secondary"), _metric(7.5, "Primary")]}
        self.assertEqual(extract_score(metrics), 7.5)

    def test_missing_metrics(self) -> None:
        self.assertIsNone(extract_score(None))
        self.assertIsNone(extract_score({}))
        self.assertIsNone(extract_score({"cvssMetricV31": [{"cvssData": {}}]}))

    def test_skips_malformed_metric_blocks(self) -> None:
        metrics = {
            "cvssMetricV31": [{"type": "Primary", "cvssData": ["bad"]}, _metric(6.5, "Secondary")],
        }
        self.assertEqual(extract_score(metrics), 6.5)
        self.assertIsNone(extract_score({"cvssMetricV31": [{"type": "Primary", "cvssData": "9.8"}]}))
        self.assertIsNone(extract_score(["not", "a", "dict"]))  # type: ignore[arg-type]


class TestExtractDescription(unittest.TestCase):
    def test_prefers_english(self) -> None:
        descriptions = [
            {"lang": "es", "value": "Desbordamiento."},
            {"lang": "en", "value": "Overflow."},
        ]
        self.assertEqual(extract_description(descriptions), "Overflow.")

    def test_falls_back_to_first_non_empty(self) -> None:
        descriptions = [{"lang": "es", "value": " "}, {"lang": "fr", "value": "Débordement."}]
        self.assertEqual(extract_description(descriptions), "Débordement.")
        self.assertEqual(extract_description(None), "")

    def test_skips_non_string_values(self) -> None:
        self.assertEqual(extract_description([{"lang": "en", "value": 42}]), "")
        descriptions = [{"lang": "en", "value": ["Overflow."]}, {"lang": "es", "value": "Desbordamiento."}]
        self.assertEqual(extract_description(descriptions), "Desbordamiento.")


class TestNormalizeEntry(unittest.TestCase):
    """normalize_entry maps one upstream entry to a VulnerabilityRecord."""

    def test_maps_fields(self) -> None:
        entry = _entry(metrics={"cvssMetricV31": [_metric(9.8)]})
        record = normalize_entry(entry)
        self.assertEqual(record.external_id, "CVE-2024-0001")
        self.assertEqual(record.description, "Buffer overflow in foo.")
        self.assertEqual(record.severity, "CRITICAL")
        self.assertEqual(record.score, 9.8)
        self.assertEqual(record.published_at, "2024-01-02T10:00:00.000")
        self.assertEqual(record.modified_at, "2024-01-03T11:00:00.000")
        self.assertEqual(record.raw, entry)
        self.assertIsNone(record.id)

    def test_unscored_entry_is_unknown_with_zero_score(self) -> None:
        record = normalize_entry(_entry())
        self.assertEqual(record.severity, "UNKNOWN")
        self.assertEqual(record.score, 0.0)

    def test_rejects_entry_without_id(self) -> None:
        with self.assertRaises(ValueError):
            normalize_entry(_entry(cve_id=""))
        with self.assertRaises(ValueError):
            normalize_entry({"cve": "not-an-object"})
        with self.assertRaises(ValueError):
            normalize_entry(["not", "a", "dict"])  # type: ignore[arg-type]

    def test_rejects_wrongly_typed_fields(self) -> None:
        with self.assertRaises(ValueError):
            normalize_entry({"cve": {"id": 12345}})
        with self.assertRaises(ValueError):
            normalize_entry(_entry(descriptions="Overflow."))  # type: ignore[arg-type]
        bad_published = _entry()
        bad_published["cve"]["published"] = 20240102
        with self.assertRaises(ValueError):
            normalize_entry(bad_published)

    def test_malformed_metrics_leave_entry_unscored(self) -> None:
        record = normalize_entry(_entry(metrics={"cvssMetricV31": [{"cvssData": ["bad"]}]}))
        self.assertEqual(record.severity, "UNKNOWN")
        self.assertEqual(record.score, 0.0)

    def test_rejects_overlong_id(self) -> None:
        with self.assertRaises(ValueError):
            normalize_entry(_entry(cve_id="CVE-" + "9" * 80))

    def test_entry_identifier(self) -> None:
        self.assertEqual(entry_identifier(_entry()), "CVE-2024-0001")
        self.assertEqual(entry_identifier({"cve": {}}), "UNKNOWN")
        self.assertEqual(entry_identifier(None), "UNKNOWN")


if __name__ == "__main__":
    unittest.main()

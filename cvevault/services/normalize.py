"""Normalize raw upstream (NVD CVE API 2.0) entries to the local record shape."""

from typing import Any

from cvevault.schemas.records import SeverityLevel, VulnerabilityRecord

_DEFAULT_SEVERITY: SeverityLevel = "UNKNOWN"
_DEFAULT_SCORE = 0.0

# Score thresholds -> severity, checked in order; a score of 0 or a missing score is UNKNOWN.
_SCORE_TO_SEVERITY: list[tuple[float, SeverityLevel]] = [
    (9.0, "CRITICAL"),
    (7.0, "HIGH"),
    (4.0, "MEDIUM"),
]

# Metric blocks in order of preference (newest CVSS version first).
CVSS_METRIC_KEYS = ("cvssMetricV40", "cvssMetricV31", "cvssMetricV30", "cvssMetricV2")

MAX_EXTERNAL_ID_LENGTH = 64


def severity_from_score(score: float | None) -> SeverityLevel:
    """
    Map a CVSS base score to a severity category.

    >=9.0 CRITICAL, >=7.0 HIGH, >=4.0 MEDIUM, >0 LOW; 0, negative or missing is UNKNOWN.
    """
    if score is None or score <= 0:
        return _DEFAULT_SEVERITY
    for threshold, severity in _SCORE_TO_SEVERITY:
        if score >= threshold:
            return severity
    return "LOW"


def extract_score(metrics: dict[str, Any] | None) -> float | None:
    """
    Return the base score of the preferred CVSS metric, or None when no usable score exists.

    Within a metric block the "Primary" source wins over secondary ones.
    """
    if not metrics or not isinstance(metrics, dict):
        return None
    for key in CVSS_METRIC_KEYS:
        entries = metrics.get(key)
        if not entries or not isinstance(entries, list):
            continue
        ordered = sorted(
            (e for e in entries if isinstance(e, dict)),
            key=lambda e: 0 if e.get("type") == "Primary" else 1,
        )
        for entry in ordered:
            cvss_data = entry.get("cvssData")
            if not isinstance(cvss_data, dict):
                continue
            base_score = cvss_data.get("baseScore")
            if isinstance(base_score, bool) or not isinstance(base_score, (int, float)):
                continue
            if 0 <= base_score <= 10:
                return float(base_score)
    return None


def extract_description(descriptions: list[dict[str, Any]] | None) -> str:
    """Prefer the English description; fall back to the first non-empty one."""
    if not descriptions:
        return ""
    fallback = ""
    for item in descriptions:
        if not isinstance(item, dict):
            continue
        value = item.get("value")
        if not isinstance(value, str):
            continue
        value = value.strip()
        if not value:
            continue
        if item.get("lang") == "en":
            return value
        if not fallback:
            fallback = value
    return fallback


def _timestamp(cve: dict[str, Any], key: str) -> str:
    value = cve.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"Upstream entry field 'cve.{key}' is not a string")
    return value


def normalize_entry(entry: dict[str, Any]) -> VulnerabilityRecord:
    """
    Convert one upstream entry ({"cve": {...}}) into a VulnerabilityRecord.

    The whole entry is kept as `raw`. Raises ValueError when the entry has no
    usable identifier or a field has the wrong type; callers treat that as a
    per-record rejection. Malformed metric blocks are skipped, not rejected.
    """
    if not isinstance(entry, dict):
        raise ValueError("Upstream entry must be an object")
    cve = entry.get("cve")
    if not isinstance(cve, dict):
        raise ValueError("Upstream entry is missing the 'cve' object")
    raw_id = cve.get("id")
    if raw_id is not None and not isinstance(raw_id, str):
        raise ValueError("Upstream entry has a non-string 'cve.id'")
    external_id = (raw_id or "").strip()
    if not external_id:
        raise ValueError("Upstream entry is missing 'cve.id'")
    if len(external_id) > MAX_EXTERNAL_ID_LENGTH:
        raise ValueError(f"Identifier longer than {MAX_EXTERNAL_ID_LENGTH} characters")

    score = extract_score(cve.get("metrics"))
    descriptions = cve.get("descriptions")
    if descriptions is not None and not isinstance(descriptions, list):
        raise ValueError("Upstream entry field 'cve.descriptions' is not a list")
    return VulnerabilityRecord(
        external_id=external_id,
        description=extract_description(descriptions),
        severity=severity_from_score(score),
        score=score if score is not None else _DEFAULT_SCORE,
        published_at=_timestamp(cve, "published"),
        modified_at=_timestamp(cve, "lastModified"),
        raw=entry,
    )


def entry_identifier(entry: Any) -> str:
    """Best-effort identifier of a raw entry for error reporting."""
    if isinstance(entry, dict):
        cve = entry.get("cve")
        if isinstance(cve, dict) and cve.get("id"):
            return str(cve["id"])[:MAX_EXTERNAL_ID_LENGTH]
    return "UNKNOWN"

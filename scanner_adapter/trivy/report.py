import datetime
import logging
from typing import Optional

from scanner_adapter.models import (
    ScanRequest, Scanner, Severity, VulnerabilityItem, VulnerabilityReport, Layer, CVSSDetails,
)

logger = logging.getLogger(__name__)

_TRIVY_SEVERITIES = {
    "UNKNOWN": Severity.UNKNOWN,
    "LOW": Severity.LOW,
    "MEDIUM": Severity.MEDIUM,
    "HIGH": Severity.HIGH,
    "CRITICAL": Severity.CRITICAL,
}

# Trivy lists CVSS scores per source; the NVD entry is preferred when present
_PREFERRED_CVSS_SOURCE = "nvd"


def _to_severity(value: Optional[str]) -> Severity:
    return _TRIVY_SEVERITIES.get((value or "").upper(), Severity.UNKNOWN)


def _to_cvss(cvss: dict) -> Optional[CVSSDetails]:
    if not cvss:
        return None
    entry = cvss.get(_PREFERRED_CVSS_SOURCE) or next(iter(cvss.values()))
    return CVSSDetails(
        score_v3=entry.get("V3Score"),
        score_v2=entry.get("V2Score"),
        vector_v3=entry.get("V3Vector"),
        vector_v2=entry.get("V2Vector"),
    )


def _to_links(vuln: dict) -> list[str]:
    if vuln.get("PrimaryURL"):
        return [vuln["PrimaryURL"]]
    return [ref for ref in vuln.get("References", []) if ref]


def convert_report(request: ScanRequest, scanner: Scanner, trivy_output: dict) -> VulnerabilityReport:
    """
    Convert Trivy's JSON output into the vulnerability report returned to the registry.

    Args:
        request: Scan request the report answers
        scanner: Identity of the scanner that produced the output
        trivy_output: Parsed ``trivy image --format json`` output

    Returns:
        VulnerabilityReport whose severity is the highest found, or Unknown when empty
    """
    vulnerabilities = []

    for result_item in trivy_output.get("Results") or []:
        for vuln in result_item.get("Vulnerabilities") or []:
            layer = vuln.get("Layer") or {}
            vulnerabilities.append(VulnerabilityItem(
                id=vuln.get("VulnerabilityID", ""),
                package=vuln.get("PkgName", ""),
                version=vuln.get("InstalledVersion", ""),
                fix_version=vuln.get("FixedVersion", ""),
                severity=_to_severity(vuln.get("Severity")),
                description=vuln.get("Description", ""),
                links=_to_links(vuln),
                layer=Layer(digest=layer.get("Digest"), diff_id=layer.get("DiffID")) if layer else None,
                preferred_cvss=_to_cvss(vuln.get("CVSS") or {}),
                cwe_ids=vuln.get("CweIDs") or [],
            ))

    severity = Severity.UNKNOWN
    for vulnerability in vulnerabilities:
        if vulnerability.severity.rank > severity.rank:
            severity = vulnerability.severity

    logger.info(f"Converted Trivy output: {len(vulnerabilities)} vulnerabilities, highest severity {severity.value}")

    return VulnerabilityReport(
        generated_at=datetime.datetime.now(datetime.timezone.utc),
        artifact=request.artifact,
        scanner=scanner,
        severity=severity,
        vulnerabilities=vulnerabilities,
    )

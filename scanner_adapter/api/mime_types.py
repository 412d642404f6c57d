"""
Media types exchanged with the registry and negotiation of the report type.

The set of report media types is versioned: the canonical vulnerability report
type plus the legacy Harbor report type. Anything else in the ``Accept`` header,
including ``*/*`` or an empty header, is rejected.
"""

from typing import Dict, List, Optional

from scanner_adapter.exceptions import UnsupportedMediaTypeError

HEADER_ACCEPT = "Accept"
HEADER_LOCATION = "Location"


class MimeType:

    def __init__(self, type_: str, subtype: str, params: Optional[Dict[str, str]] = None):
        self.type = type_.lower()
        self.subtype = subtype.lower()
        self.params = {key.lower(): value for key, value in (params or {}).items()}

    @classmethod
    def parse(cls, value: str) -> "MimeType":
        """
        Parse a single media type such as ``application/json; version=1.0``.

        Raises:
            ValueError: If the value is not of the form ``type/subtype[; key=value]*``
        """
        parts = [part.strip() for part in value.split(";")]
        full_type = parts[0]
        type_, sep, subtype = full_type.partition("/")
        if not sep or not type_ or not subtype or "/" in subtype or " " in full_type:
            raise ValueError(f"malformed media type: {value!r}")

        params = {}
        for part in parts[1:]:
            if not part:
                continue
            key, sep, param_value = part.partition("=")
            key, param_value = key.strip(), param_value.strip().strip('"')
            if not sep or not key or not param_value:
                raise ValueError(f"malformed media type parameter: {part!r}")
            params[key] = param_value

        return cls(type_, subtype, params)

    @property
    def is_wildcard(self) -> bool:
        return self.type == "*" or self.subtype == "*"

    def __eq__(self, other) -> bool:
        if not isinstance(other, MimeType):
            return NotImplemented
        return (self.type, self.subtype, self.params) == (other.type, other.subtype, other.params)

    def __hash__(self) -> int:
        return hash((self.type, self.subtype, tuple(sorted(self.params.items()))))

    def __str__(self) -> str:
        text = f"{self.type}/{self.subtype}"
        for key, value in self.params.items():
            text += f"; {key}={value}"
        return text

    def __repr__(self) -> str:
        return f"MimeType({str(self)!r})"


MIME_TYPE_OCI_IMAGE_MANIFEST = MimeType("application", "vnd.oci.image.manifest.v1+json")
MIME_TYPE_DOCKER_IMAGE_MANIFEST_V2 = MimeType("application", "vnd.docker.distribution.manifest.v2+json")
MIME_TYPE_SCAN_RESPONSE = MimeType("application", "vnd.scanner.adapter.scan.response+json", {"version": "1.0"})
MIME_TYPE_METADATA = MimeType("application", "vnd.scanner.adapter.metadata+json", {"version": "1.0"})
MIME_TYPE_ERROR = MimeType("application", "vnd.scanner.adapter.error", {"version": "1.0"})

MIME_TYPE_SECURITY_VULNERABILITY_REPORT = MimeType("application", "vnd.security.vulnerability.report", {"version": "1.1"})
MIME_TYPE_HARBOR_VULNERABILITY_REPORT = MimeType("application", "vnd.scanner.adapter.vuln.report.harbor+json", {"version": "1.0"})

# Canonical type first; only the canonical type is advertised in the metadata capabilities
REPORT_MIME_TYPES: List[MimeType] = [
    MIME_TYPE_SECURITY_VULNERABILITY_REPORT,
    MIME_TYPE_HARBOR_VULNERABILITY_REPORT,
]

CONSUMED_MIME_TYPES: List[MimeType] = [
    MIME_TYPE_OCI_IMAGE_MANIFEST,
    MIME_TYPE_DOCKER_IMAGE_MANIFEST_V2,
]


def negotiate_report_mime_type(accept: Optional[str]) -> MimeType:
    """
    Select the report media type from an ``Accept`` header.

    The header may list several media ranges separated by commas; the first one
    that is a recognized report type wins.

    Args:
        accept: Raw ``Accept`` header value, or None when absent

    Returns:
        One of REPORT_MIME_TYPES

    Raises:
        UnsupportedMediaTypeError: If no recognized report type is requested
    """
    header = accept or ""
    for media_range in header.split(","):
        if not media_range.strip():
            continue
        try:
            requested = MimeType.parse(media_range)
        except ValueError:
            continue
        # q-values do not take part in the comparison
        requested.params.pop("q", None)
        if requested.is_wildcard:
            continue
        if requested in REPORT_MIME_TYPES:
            return REPORT_MIME_TYPES[REPORT_MIME_TYPES.index(requested)]

    raise UnsupportedMediaTypeError(f"unsupported media type {header}")

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Union


class Registry(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str = ""
    authorization: str = ""

class Artifact(BaseModel):
    model_config = ConfigDict(extra="allow")

    repository: str = ""
    digest: str = ""
    tag: str = ""
    mime_type: str = ""

class ScanRequest(BaseModel):
    """Scan request as sent by the registry. Unknown fields are kept and passed on untouched."""
    model_config = ConfigDict(extra="allow")

    registry: Registry = Field(default_factory=Registry)
    artifact: Artifact = Field(default_factory=Artifact)

    @field_validator("registry", "artifact", mode="before")
    @classmethod
    def null_as_empty(cls, value):
        # An explicit null leaves the section empty, so the validator reports the missing field
        return {} if value is None else value

class ScanResponse(BaseModel):
    id: str

class ScanJobStatus(Enum):
    QUEUED = "Queued"
    PENDING = "Pending"
    FINISHED = "Finished"
    FAILED = "Failed"

    def can_transition_to(self, other: "ScanJobStatus") -> bool:
        """Status only moves forward: Queued -> Pending -> Finished | Failed."""
        allowed = {
            ScanJobStatus.QUEUED: {ScanJobStatus.PENDING, ScanJobStatus.FAILED},
            ScanJobStatus.PENDING: {ScanJobStatus.FINISHED, ScanJobStatus.FAILED},
            ScanJobStatus.FINISHED: set(),
            ScanJobStatus.FAILED: set(),
        }
        return other in allowed[self]

    def __str__(self) -> str:
        return self.value

class ScanJob(BaseModel):
    id: str
    # Kept as a plain string when the stored value is not a known status
    status: Union[ScanJobStatus, str] = Field(default=ScanJobStatus.QUEUED, union_mode="left_to_right")
    report: Any = None
    error: Optional[str] = None

class Error(BaseModel):
    http_code: int = Field(default=500, exclude=True)
    message: str

class Scanner(BaseModel):
    name: str
    vendor: str
    version: str

class Capability(BaseModel):
    consumes_mime_types: List[str]
    produces_mime_types: List[str]

class ScannerAdapterMetadata(BaseModel):
    scanner: Scanner
    capabilities: List[Capability]
    properties: Dict[str, str]

class VulnerabilityDBInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: Optional[int] = Field(default=None, alias="Version")
    next_update: Optional[datetime] = Field(default=None, alias="NextUpdate")
    updated_at: Optional[datetime] = Field(default=None, alias="UpdatedAt")
    downloaded_at: Optional[datetime] = Field(default=None, alias="DownloadedAt")

class VersionInfo(BaseModel):
    """Output of `trivy version --format json`."""
    model_config = ConfigDict(populate_by_name=True)

    version: str = Field(default="", alias="Version")
    vulnerability_db: Optional[VulnerabilityDBInfo] = Field(default=None, alias="VulnerabilityDB")
    java_db: Optional[VulnerabilityDBInfo] = Field(default=None, alias="JavaDB")

class Severity(Enum):
    UNKNOWN = "Unknown"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)

class Layer(BaseModel):
    digest: Optional[str] = None
    diff_id: Optional[str] = None

class CVSSDetails(BaseModel):
    score_v3: Optional[float] = None
    score_v2: Optional[float] = None
    vector_v3: Optional[str] = None
    vector_v2: Optional[str] = None

class VulnerabilityItem(BaseModel):
    id: str
    package: str
    version: str
    fix_version: str = ""
    severity: Severity
    description: str = ""
    links: List[str] = Field(default_factory=list)
    layer: Optional[Layer] = None
    preferred_cvss: Optional[CVSSDetails] = None
    cwe_ids: List[str] = Field(default_factory=list)

class VulnerabilityReport(BaseModel):
    generated_at: datetime
    artifact: Artifact
    scanner: Scanner
    severity: Severity
    vulnerabilities: List[VulnerabilityItem]

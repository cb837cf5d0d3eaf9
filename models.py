import json
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

class LicenseKeyStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    MISMATCHED = "mismatched"
    ASTRAY = "astray"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        # The authority is not consistent about casing ("Valid" vs "valid")
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
        return None

    @classmethod
    def parse(cls, value) -> "LicenseKeyStatus":
        """Status from the wire; values this client does not know are UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# Licensing Authority Wire Models
class ServerInfo(BaseModel):
    extensions: List[str] = Field(default_factory=list)
    pythonVersion: str
    databaseType: str
    databaseVersion: Optional[str] = None
    proc: bool
    platform: Optional[str] = None
    architecture: Optional[str] = None
    cpuCount: Optional[int] = None
    totalMemoryGb: Optional[float] = None
    hardwareId: Optional[str] = None

    model_config = ConfigDict(frozen=True)

class AttestationRequest(BaseModel):
    """
    Facts about this installation sent to the licensing authority.

    Only fields the authority accepts exist on this model; response-only
    fields live on AttestationResponse and can never be serialized here.
    """
    licenseKey: Optional[str] = None
    pluginLicenseKeys: Dict[str, Optional[str]] = Field(default_factory=dict)
    data: Optional[Any] = None
    requestUrl: str
    requestIp: Optional[str] = None
    requestTime: int
    requestPort: Optional[int] = None
    localVersion: str
    localEdition: str
    userEmail: str = ""
    showBeta: bool = False
    serverInfo: ServerInfo
    handle: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

class AttestationResponse(BaseModel):
    """License verdict returned by the licensing authority."""
    licenseKey: Optional[str] = None
    licenseKeyStatus: LicenseKeyStatus
    licensedEdition: str
    licensedDomain: Optional[str] = None
    editionTestableDomain: bool = False
    pluginLicenseKeyStatuses: Dict[str, LicenseKeyStatus] = Field(default_factory=dict)
    responseErrors: Optional[List[str]] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("pluginLicenseKeyStatuses", mode="before")
    @classmethod
    def _plugin_statuses(cls, value):
        # An empty map arrives as [] or null
        if not value:
            return {}
        if isinstance(value, dict):
            return {handle: LicenseKeyStatus.parse(status) for handle, status in value.items()}
        return value

    @field_validator("licenseKeyStatus", mode="before")
    @classmethod
    def _open_status(cls, value):
        # Newer authorities may report statuses this client predates
        if isinstance(value, str):
            return LicenseKeyStatus.parse(value)
        return value

    @classmethod
    def decode(cls, body: Union[str, bytes]) -> "AttestationResponse":
        """
        Decode a response body.

        Raises ValueError (pydantic's ValidationError included) if the body
        is not a JSON object or lacks required fields.
        """
        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError("Response body is not a JSON object")
        return cls.model_validate(payload)

# Outcome
class PhoneHomeOutcome(str, Enum):
    SUCCESS = "success"
    SUPPRESSED = "suppressed"
    SERVER_ERROR = "server_error"
    TRANSPORT_ERROR = "transport_error"
    UNEXPECTED_ERROR = "unexpected_error"

class PhoneHomeResult(BaseModel):
    outcome: PhoneHomeOutcome
    response: Optional[AttestationResponse] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return self.outcome == PhoneHomeOutcome.SUCCESS

# Service API Models
class PhoneHomeRequest(BaseModel):
    handle: str = "core"
    data: Optional[Any] = None
    userEmail: str = ""

class PluginLicenseKeyRequest(BaseModel):
    licenseKey: Optional[str] = None

class PluginLicenseStatus(BaseModel):
    handle: str
    hasLicenseKey: bool
    licenseKeyStatus: Optional[LicenseKeyStatus] = None

class LicenseStatusResponse(BaseModel):
    hasLicenseKey: bool
    licenseKeyStatus: Optional[LicenseKeyStatus] = None
    licensedEdition: Optional[str] = None
    licensedDomain: Optional[str] = None
    editionTestableDomain: bool = False
    connectFailure: bool = False
    plugins: List[PluginLicenseStatus] = Field(default_factory=list)

class HealthCheckResponse(BaseModel):
    status: str
    service: str
    version: str
    hardwareId: Optional[str] = None

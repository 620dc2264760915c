from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .versioning import parse_version


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DependencyReference(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    full_name: str = Field(..., min_length=1)
    version: str
    exact: bool = False

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        parse_version(value)
        return value

    def satisfied_by(self, version: str) -> bool:
        if self.exact:
            return parse_version(version) == parse_version(self.version)
        return parse_version(version) >= parse_version(self.version)

    def __str__(self) -> str:
        operator = "==" if self.exact else ">="
        return f"{self.full_name}{operator}{self.version}"


class Package(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    full_name: str = Field(..., min_length=1)
    namespace: str
    name: str
    version: str
    community: str
    dependencies: tuple[DependencyReference, ...] = ()
    last_updated: Optional[datetime] = None
    categories: frozenset[str] = frozenset()
    description: str = ""
    icon: Optional[str] = None
    download_url: Optional[str] = None
    downloads: int = 0
    rating: int = 0
    deprecated: bool = False

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        parse_version(value)
        return value

    @property
    def version_key(self) -> tuple[int, int, int]:
        return parse_version(self.version)


class Community(ApiModel):
    identifier: str
    name: str


class InstalledMod(ApiModel):
    full_name: str
    version: str
    installed_at: datetime
    files: list[str] = Field(default_factory=list)


class InstallRequest(ApiModel):
    community: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    include_deps: bool = False


class InstallResult(ApiModel):
    full_name: str
    success: bool
    message: Optional[str] = None


class InstallResponse(ApiModel):
    results: list[InstallResult]


class AutoStopSettingsRequest(ApiModel):
    enabled: Optional[bool] = None
    timeout_minutes: Optional[float] = Field(None, gt=0)


class AutoStopStatus(ApiModel):
    enabled: bool
    timeout_minutes: float
    idle_minutes: float


class AutoStopUpdateResponse(ApiModel):
    success: bool
    config: AutoStopStatus


class ContainerState(ApiModel):
    name: str
    status: str
    running: bool
    started_at: Optional[str] = None


class ServerActionResponse(ApiModel):
    success: bool
    message: str


class ServerLogsResponse(ApiModel):
    logs: str


class BackupInfo(ApiModel):
    filename: str
    size: int
    created: datetime


class BackupCreateResponse(ApiModel):
    success: bool
    filename: str
    message: str


class BackupRestoreRequest(ApiModel):
    filename: str = Field(..., min_length=1)


class BackupActionResponse(ApiModel):
    success: bool
    message: str

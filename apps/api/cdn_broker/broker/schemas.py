"""Service broker request and response models."""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from cdn_broker.models.route import split_domains


class ProvisionParameters(BaseModel):
    """Parameters accepted when creating a CDN route."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    domain: str
    origin: Optional[str] = None
    default_ttl: Optional[int] = Field(default=None, ge=0)
    headers: list[str] = Field(default_factory=list)
    forward_cookies: bool = Field(
        default=True, validation_alias=AliasChoices("forward_cookies", "cookies")
    )
    insecure_origin: bool = False

    @field_validator("domain")
    @classmethod
    def domain_not_empty(cls, value: str) -> str:
        domains = split_domains(value)
        if not domains:
            raise ValueError("must pass non-empty `domain`")
        return ",".join(domains)

    @field_validator("insecure_origin")
    @classmethod
    def reject_insecure_origin(cls, value: bool) -> bool:
        if value:
            raise ValueError("insecure origins are not supported")
        return value


class UpdateParameters(BaseModel):
    """Parameters accepted when updating a CDN route; all optional."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    domain: Optional[str] = None
    origin: Optional[str] = None
    default_ttl: Optional[int] = Field(default=None, ge=0)
    headers: Optional[list[str]] = None
    forward_cookies: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("forward_cookies", "cookies")
    )
    insecure_origin: bool = False

    @field_validator("insecure_origin")
    @classmethod
    def reject_insecure_origin(cls, value: bool) -> bool:
        if value:
            raise ValueError("insecure origins are not supported")
        return value


class ProvisionRequest(BaseModel):
    """Body of PUT /v2/service_instances/{instance_id}."""

    service_id: str
    plan_id: str
    organization_guid: Optional[str] = None
    space_guid: Optional[str] = None
    parameters: Optional[dict[str, Any]] = None
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def org_guid(self) -> str:
        return self.organization_guid or self.context.get("organization_guid", "")

    @property
    def space(self) -> str:
        return self.space_guid or self.context.get("space_guid", "")


class PreviousValues(BaseModel):
    service_id: Optional[str] = None
    plan_id: Optional[str] = None
    organization_id: Optional[str] = None
    space_id: Optional[str] = None


class UpdateRequest(BaseModel):
    """Body of PATCH /v2/service_instances/{instance_id}."""

    service_id: str
    plan_id: Optional[str] = None
    parameters: Optional[dict[str, Any]] = None
    previous_values: PreviousValues = Field(default_factory=PreviousValues)
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def org_guid(self) -> str:
        return self.context.get("organization_guid") or self.previous_values.organization_id or ""


class OperationResponse(BaseModel):
    operation: Optional[str] = None


class LastOperationResponse(BaseModel):
    state: str
    description: str


class InstanceResponse(BaseModel):
    service_id: Optional[str] = None
    plan_id: Optional[str] = None
    parameters: dict[str, Any]

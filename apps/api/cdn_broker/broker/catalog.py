"""Service catalog advertised to the platform."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ServicePlan(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    free: bool = True
    metadata: Optional[dict[str, Any]] = None


class Service(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    bindable: bool = False
    plan_updateable: bool = False
    instances_retrievable: bool = True
    tags: list[str] = Field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None
    plans: list[ServicePlan] = Field(min_length=1)


class Catalog(BaseModel):
    services: list[Service] = Field(default_factory=list)

    def find_service(self, service_id: str) -> Optional[Service]:
        for service in self.services:
            if service.id == service_id:
                return service
        return None


def load_catalog(path: str) -> Catalog:
    """Read and validate the catalog document."""
    raw = json.loads(Path(path).read_text())
    catalog = Catalog.model_validate(raw)
    logger.info(f"Loaded catalog with {len(catalog.services)} services", extra={"path": path})
    return catalog

"""Open Service Broker API routes."""

import logging
from contextlib import contextmanager

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from cdn_broker.broker.schemas import (
    InstanceResponse,
    LastOperationResponse,
    OperationResponse,
    ProvisionRequest,
    UpdateRequest,
)
from cdn_broker.broker.service import CdnServiceBroker
from cdn_broker.dependencies import get_broker
from cdn_broker.errors import BrokerError
from cdn_broker.utils.metrics import broker_requests

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v2", tags=["broker"])


@contextmanager
def observe(operation: str):
    """Count a broker request by outcome."""
    try:
        yield
    except BrokerError as e:
        broker_requests.labels(operation=operation, status=str(e.status_code)).inc()
        raise
    except Exception:
        broker_requests.labels(operation=operation, status="500").inc()
        raise
    broker_requests.labels(operation=operation, status="ok").inc()


@router.get("/catalog")
def get_catalog(broker: CdnServiceBroker = Depends(get_broker)):
    """Services and plans offered by this broker."""
    with observe("catalog"):
        return broker.services().model_dump(exclude_none=True)


@router.put(
    "/service_instances/{instance_id}",
    response_model=OperationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def provision(
    instance_id: str,
    body: ProvisionRequest,
    request: Request,
    accepts_incomplete: bool = Query(default=False),
    broker: CdnServiceBroker = Depends(get_broker),
):
    """Create a CDN route."""
    logger.info(
        "Provision requested",
        extra={
            "instance_id": instance_id,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )
    with observe("provision"):
        broker.provision(instance_id, body, accepts_incomplete)
    return OperationResponse(operation="provision")


@router.patch("/service_instances/{instance_id}", response_model=OperationResponse)
def update(
    instance_id: str,
    body: UpdateRequest,
    request: Request,
    accepts_incomplete: bool = Query(default=False),
    broker: CdnServiceBroker = Depends(get_broker),
):
    """Update a CDN route; 202 when a new certificate must be validated."""
    logger.info(
        "Update requested",
        extra={
            "instance_id": instance_id,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )
    with observe("update"):
        is_async = broker.update(instance_id, body, accepts_incomplete)
    if is_async:
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content={"operation": "update"})
    return JSONResponse(status_code=status.HTTP_200_OK, content={})


@router.delete(
    "/service_instances/{instance_id}",
    response_model=OperationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def deprovision(
    instance_id: str,
    request: Request,
    accepts_incomplete: bool = Query(default=False),
    broker: CdnServiceBroker = Depends(get_broker),
):
    """Disable the distribution and start deprovisioning."""
    logger.info(
        "Deprovision requested",
        extra={
            "instance_id": instance_id,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )
    with observe("deprovision"):
        broker.deprovision(instance_id, accepts_incomplete)
    return OperationResponse(operation="deprovision")


@router.get(
    "/service_instances/{instance_id}/last_operation",
    response_model=LastOperationResponse,
)
def last_operation(instance_id: str, broker: CdnServiceBroker = Depends(get_broker)):
    """Progress of the last asynchronous operation."""
    with observe("last_operation"):
        return broker.last_operation(instance_id)


@router.get("/service_instances/{instance_id}", response_model=InstanceResponse)
def get_instance(instance_id: str, broker: CdnServiceBroker = Depends(get_broker)):
    """Instance parameters."""
    with observe("get_instance"):
        return broker.get_instance(instance_id)


@router.put("/service_instances/{instance_id}/service_bindings/{binding_id}")
def bind(instance_id: str, binding_id: str, broker: CdnServiceBroker = Depends(get_broker)):
    with observe("bind"):
        broker.bind(instance_id, binding_id)


@router.delete("/service_instances/{instance_id}/service_bindings/{binding_id}")
def unbind(instance_id: str, binding_id: str, broker: CdnServiceBroker = Depends(get_broker)):
    with observe("unbind"):
        broker.unbind(instance_id, binding_id)

"""
LeaseWise Portfolio API
=======================
Properties and leases: the records clauses and documents hang off.
"""

import logging

from fastapi import APIRouter, status

from api.dependencies import RepositoryDep
from core.repository import LeaseNotFoundError, LeaseRecord, PropertyNotFoundError
from schemas import (
    ErrorResponse,
    LeaseCreate,
    LeaseDeleteResponse,
    LeaseResponse,
    PropertyCreate,
    PropertyResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Portfolio"])


def lease_response(lease: LeaseRecord, clause_count: int = 0) -> LeaseResponse:
    return LeaseResponse(
        id=lease.id,
        property_id=lease.property_id,
        tenant_name=lease.tenant_name,
        suite=lease.suite,
        square_feet=lease.square_feet,
        base_rent=lease.base_rent,
        lease_start=lease.lease_start,
        lease_end=lease.lease_end,
        property_name=lease.property_name,
        property_address=lease.property_address,
        clause_count=clause_count,
    )


@router.post(
    "/properties",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a property"
)
async def create_property(request: PropertyCreate, repository: RepositoryDep) -> PropertyResponse:
    prop = await repository.create_property(request.name, request.address)
    logger.info(f"Created property {prop.id}: {prop.name}")
    return PropertyResponse(id=prop.id, name=prop.name, address=prop.address, created_at=prop.created_at)


@router.get(
    "/properties/{property_id}",
    response_model=PropertyResponse,
    responses={404: {"model": ErrorResponse, "description": "Property not found"}},
    summary="Get a property"
)
async def get_property(property_id: str, repository: RepositoryDep) -> PropertyResponse:
    prop = await repository.get_property(property_id)
    if prop is None:
        raise PropertyNotFoundError(f"Property '{property_id}' not found")
    return PropertyResponse(id=prop.id, name=prop.name, address=prop.address, created_at=prop.created_at)


@router.post(
    "/leases",
    response_model=LeaseResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse, "description": "Property not found"}},
    summary="Register a lease"
)
async def create_lease(request: LeaseCreate, repository: RepositoryDep) -> LeaseResponse:
    lease = await repository.create_lease(
        request.property_id,
        request.tenant_name,
        **request.model_dump(exclude={"property_id", "tenant_name"}),
    )
    logger.info(f"Created lease {lease.id} for {lease.tenant_name}")
    return lease_response(lease)


@router.get(
    "/leases/{lease_id}",
    response_model=LeaseResponse,
    responses={404: {"model": ErrorResponse, "description": "Lease not found"}},
    summary="Get a lease"
)
async def get_lease(lease_id: str, repository: RepositoryDep) -> LeaseResponse:
    lease = await repository.get_lease(lease_id)
    if lease is None:
        raise LeaseNotFoundError(f"Lease '{lease_id}' not found")
    return lease_response(lease, await repository.count_clauses(lease_id))


@router.delete(
    "/leases/{lease_id}",
    response_model=LeaseDeleteResponse,
    responses={404: {"model": ErrorResponse, "description": "Lease not found"}},
    summary="Delete a lease and its clauses"
)
async def delete_lease(lease_id: str, repository: RepositoryDep) -> LeaseDeleteResponse:
    deleted = await repository.delete_lease(lease_id)
    logger.info(f"Deleted lease {lease_id} with {deleted} clauses")
    return LeaseDeleteResponse(lease_id=lease_id, deleted_clauses=deleted)

"""
Products Router

Public product list and the admin write endpoints. Each admin write is
broadcast on the realtime products stream by the catalog service.
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from teashop.auth import SessionUser, verify_admin
from teashop.services.catalog_service import CatalogService

from .deps import get_catalog_service

router = APIRouter(tags=["products"])


@router.get("/products/list")
async def list_products(service: CatalogService = Depends(get_catalog_service)):
    return [product.to_dict() for product in await service.list_products()]


@router.post("/admin/products", status_code=201)
async def create_product(
    data: Dict[str, Any] = Body(...),
    _admin: SessionUser = Depends(verify_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return (await service.create_product(data)).to_dict()


@router.put("/admin/products/{product_id}")
async def update_product(
    product_id: str,
    data: Dict[str, Any] = Body(...),
    _admin: SessionUser = Depends(verify_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    return (await service.update_product(product_id, data)).to_dict()


@router.delete("/admin/products/{product_id}")
async def delete_product(
    product_id: str,
    _admin: SessionUser = Depends(verify_admin),
    service: CatalogService = Depends(get_catalog_service),
):
    await service.delete_product(product_id)
    return {"message": "Deleted"}

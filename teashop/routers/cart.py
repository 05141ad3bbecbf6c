"""
Cart Router

Server cart lines of the session user. Prices in responses are computed
here; quantities sent by the client are the only input trusted.
"""
from fastapi import APIRouter, Depends

from teashop.auth import SessionUser, verify_session
from teashop.logging import get_logger
from teashop.services.cart_service import CartService

from .deps import get_cart_service
from .models import AddToCartRequest, MergeCartRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


@router.post("/add", status_code=201)
async def add_to_cart(
    request: AddToCartRequest,
    user: SessionUser = Depends(verify_session),
    service: CartService = Depends(get_cart_service),
):
    record = await service.add_item(user.user_id, request.product_id, request.quantity, request.unit)
    return record.to_dict()


@router.get("/list")
async def list_cart(
    user: SessionUser = Depends(verify_session),
    service: CartService = Depends(get_cart_service),
):
    return [record.to_dict() for record in await service.list_items(user.user_id)]


@router.post("/merge")
async def merge_cart(
    request: MergeCartRequest,
    user: SessionUser = Depends(verify_session),
    service: CartService = Depends(get_cart_service),
):
    merged = await service.merge_items(user.user_id, request.items)
    return [record.to_dict() for record in merged]


@router.delete("/{item_id}")
async def delete_cart_item(
    item_id: str,
    user: SessionUser = Depends(verify_session),
    service: CartService = Depends(get_cart_service),
):
    await service.delete_item(user.user_id, item_id)
    return {"message": "Deleted"}

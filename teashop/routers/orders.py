"""Orders Router - checkout with server-recomputed totals."""
from fastapi import APIRouter, Depends

from teashop.auth import SessionUser, verify_session
from teashop.services.cart_service import CartService

from .deps import get_cart_service
from .models import CreateOrderRequest

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/create", status_code=201)
async def create_order(
    request: CreateOrderRequest,
    user: SessionUser = Depends(verify_session),
    service: CartService = Depends(get_cart_service),
):
    order = await service.create_order(
        user.user_id,
        request.items,
        payment_method=request.payment_method,
        transaction_id=request.transaction_id,
        address=request.address,
        phone=request.phone,
    )
    return order.model_dump(mode="json", by_alias=True, exclude_none=True)

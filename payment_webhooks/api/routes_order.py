from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from payment_webhooks.crud.order import crud_order
from payment_webhooks.db.core import get_db_session
from payment_webhooks.schemas.order import CreateOrderRequest, OrderResponse, OrderStatusResponse

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderResponse, status_code=201)
async def create_order(request: CreateOrderRequest, db_session: AsyncSession = Depends(get_db_session)):
    return await crud_order.create_order(db_session=db_session, data=request)


@router.get("/{order_id}", response_model=OrderStatusResponse)
async def get_order_status(order_id: str, db_session: AsyncSession = Depends(get_db_session)):
    return await crud_order.get_order_status(db_session=db_session, order_id=order_id)

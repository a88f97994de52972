import asyncio
from payment_webhooks.core.exceptions import OrderAlreadyExistsError
from payment_webhooks.crud.order import crud_order
from payment_webhooks.db.core import async_session_factory, init_db
from payment_webhooks.schemas.order import CreateOrderRequest

DEMO_ORDERS = [
    CreateOrderRequest(order_id="ORD123", amount=4999, currency="USD", gateway_reference="pi_demo_123"),
    CreateOrderRequest(order_id="ORD124", amount=150000, currency="INR", gateway_reference="order_demo_124"),
    CreateOrderRequest(order_id="ORD125", amount=1200, currency="EUR"),
]


async def seed_data():
    await init_db()
    async with async_session_factory() as session:
        for data in DEMO_ORDERS:
            try:
                order = await crud_order.create_order(session, data)
                print(f"created order {order.order_id}")
            except OrderAlreadyExistsError:
                print(f"order {data.order_id} already exists")


if __name__ == "__main__":
    asyncio.run(seed_data())

import pytest

from tableside.app.db import create_test_session
from tableside.app.services import BroadcastHub, OrderService, UnitOfWork


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def sessions():
    factory, engine = await create_test_session()
    yield factory
    await engine.dispose()


@pytest.fixture
def hub():
    return BroadcastHub(write_timeout=0.2, queue_max=10)


@pytest.fixture
async def service(sessions, hub):
    svc = OrderService(sessions, hub)
    yield svc
    await svc.flush_broadcasts()
    hub.close_all()


@pytest.fixture
def in_uow(sessions):
    """Run ``step(uow)`` in one committed transaction and return its result."""

    async def run(step):
        async with sessions() as session:
            async with session.begin():
                uow = UnitOfWork.for_session(session)
                result = await step(uow)
        return result, uow.changed_tables

    return run

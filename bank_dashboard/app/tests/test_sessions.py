from uuid import uuid4

import pytest

from ..core.errors import SessionNotFoundError
from ..services import TransferSessionRegistry


@pytest.fixture
def capped_settings(settings):
    return settings.model_copy(update={"max_open_sessions": 2})


@pytest.mark.asyncio
async def test_open_loads_accounts_and_registers_session(authority, scheduler, settings) -> None:
    registry = TransferSessionRegistry()

    session = await registry.open(authority, scheduler, settings)

    assert len(registry) == 1
    assert registry.get(session.id) is session
    assert [account.id for account in session.machine.accounts] == ["acc-a", "acc-b", "acc-c"]
    assert authority.list_calls == 1


@pytest.mark.asyncio
async def test_least_recently_used_session_is_evicted_at_capacity(
    authority, scheduler, capped_settings
) -> None:
    registry = TransferSessionRegistry()
    first = await registry.open(authority, scheduler, capped_settings)
    second = await registry.open(authority, scheduler, capped_settings)
    registry.get(first.id)

    third = await registry.open(authority, scheduler, capped_settings)

    assert len(registry) == 2
    assert second.machine.closed is True
    with pytest.raises(SessionNotFoundError):
        registry.get(second.id)
    assert registry.get(first.id) is first
    assert registry.get(third.id) is third


@pytest.mark.asyncio
async def test_evicted_session_drops_its_timers(authority, scheduler, capped_settings) -> None:
    registry = TransferSessionRegistry()
    stale = await registry.open(authority, scheduler, capped_settings)
    stale.machine.update_details(amount="5")
    await stale.machine.submit_details()
    assert scheduler.pending

    await registry.open(authority, scheduler, capped_settings)
    await registry.open(authority, scheduler, capped_settings)

    assert stale.machine.closed is True
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_close_unknown_session_raises(authority, scheduler, settings) -> None:
    registry = TransferSessionRegistry()
    await registry.open(authority, scheduler, settings)

    with pytest.raises(SessionNotFoundError):
        registry.close(uuid4())

    registry.close_all()
    assert len(registry) == 0

import asyncio

import pytest

from page_session.serializer import CommandSerializer


async def test_one_command_at_a_time():
    serializer = CommandSerializer()
    running = 0
    peak = 0

    async def command():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    await asyncio.gather(*(serializer.run(command) for _ in range(5)))

    assert peak == 1
    assert not serializer.locked


async def test_commands_run_in_arrival_order():
    serializer = CommandSerializer()
    order = []

    async def command(i):
        await asyncio.sleep(0)
        order.append(i)

    await asyncio.gather(*(serializer.run(command, i) for i in range(5)))

    assert order == [0, 1, 2, 3, 4]


async def test_gate_is_released_when_command_fails():
    serializer = CommandSerializer()

    async def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await serializer.run(broken)

    assert not serializer.locked
    assert await serializer.run(asyncio.sleep, 0, "next") == "next"


async def test_gate_is_released_after_timeout():
    serializer = CommandSerializer()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(serializer.run(asyncio.sleep, 10), timeout=0.01)

    assert not serializer.locked


async def test_serialized_decorator():
    serializer = CommandSerializer()
    seen = []

    @serializer.serialized
    async def command(value):
        assert serializer.locked
        seen.append(value)
        return value * 2

    assert await command(21) == 42
    assert seen == [21]
    assert command.__name__ == "command"

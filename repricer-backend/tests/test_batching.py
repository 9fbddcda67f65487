import asyncio

import pytest

from repricer.services.batching import process_in_batches


@pytest.mark.asyncio
async def test_waves_of_five_with_pause_between(sleep):
    in_flight = 0
    peak = 0
    waves: list[list[int]] = []
    current: list[int] = []

    async def handler(item: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        current.append(item)
        await asyncio.sleep(0)
        in_flight -= 1
        return item * 10

    async def recording_sleep(seconds: float) -> None:
        waves.append(list(current))
        current.clear()
        await sleep(seconds)

    results = await process_in_batches(list(range(12)), 5, handler, 0.5, sleep=recording_sleep)
    waves.append(list(current))

    assert results == [i * 10 for i in range(12)]
    assert [len(w) for w in waves] == [5, 5, 2]
    assert sleep.calls == [0.5, 0.5]
    assert peak <= 5


@pytest.mark.asyncio
async def test_no_pause_for_a_single_wave(sleep):
    async def handler(item):
        return item

    assert await process_in_batches([1, 2, 3], 5, handler, 0.5, sleep=sleep) == [1, 2, 3]
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_empty_input(sleep):
    async def handler(item):
        raise AssertionError("not called")

    assert await process_in_batches([], 5, handler, sleep=sleep) == []
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_rejects_empty_waves():
    async def handler(item):
        return item

    with pytest.raises(ValueError):
        await process_in_batches([1], 0, handler)


@pytest.mark.asyncio
async def test_stop_when_finishes_the_current_wave_only(sleep):
    seen: list[int] = []

    async def handler(item: int) -> int:
        seen.append(item)
        return item

    results = await process_in_batches(
        list(range(7)), 3, handler, 0.5, sleep=sleep, stop_when=lambda: 1 in seen
    )

    assert results == [0, 1, 2]
    assert seen == [0, 1, 2]
    assert sleep.calls == []

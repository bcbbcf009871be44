"""Tests for the bounded-concurrency pipeline."""

import asyncio

import pytest

from content_migration.migration.pipeline import ConcurrencyBoundedPipeline


@pytest.mark.asyncio
async def test_never_exceeds_the_concurrency_bound():
    in_flight = 0
    peak = 0

    async def work(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.001)
        in_flight -= 1
        return item * 2

    results = []
    pipeline = ConcurrencyBoundedPipeline(
        "double",
        work,
        on_success=lambda item, result: results.append(result),
        concurrency=3,
        queue_size=2,
    )

    processed = await pipeline.run(range(20))

    assert processed == 20
    assert peak <= 3
    assert sorted(results) == [i * 2 for i in range(20)]


@pytest.mark.asyncio
async def test_failures_are_isolated_and_every_item_is_counted():
    async def work(item):
        if item % 3 == 0:
            raise ValueError(f"bad {item}")
        return item

    succeeded, failed, increments = [], [], []
    pipeline = ConcurrencyBoundedPipeline(
        "mixed",
        work,
        on_success=lambda item, result: succeeded.append(item),
        on_error=lambda error, item: failed.append((item, str(error))),
        on_increment=lambda: increments.append(1),
        concurrency=4,
    )

    await pipeline.run(range(9))

    assert sorted(succeeded) == [1, 2, 4, 5, 7, 8]
    assert sorted(item for item, _ in failed) == [0, 3, 6]
    assert len(increments) == 9


@pytest.mark.asyncio
async def test_on_success_errors_are_routed_to_on_error():
    async def work(item):
        return item

    def on_success(item, result):
        raise RuntimeError("cannot record")

    errors = []
    pipeline = ConcurrencyBoundedPipeline(
        "record",
        work,
        on_success=on_success,
        on_error=lambda error, item: errors.append(type(error)),
    )

    await pipeline.run([1, 2])

    assert errors == [RuntimeError, RuntimeError]


@pytest.mark.asyncio
async def test_accepts_async_iterables_and_async_callbacks():
    async def produce():
        for i in range(5):
            await asyncio.sleep(0)
            yield i

    async def work(item):
        return item

    seen = []

    async def on_success(item, result):
        await asyncio.sleep(0)
        seen.append(result)

    pipeline = ConcurrencyBoundedPipeline("async", work, on_success=on_success, concurrency=2)

    await pipeline.run(produce())

    assert sorted(seen) == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_producer_failure_propagates_and_stops_workers():
    def produce():
        yield 1
        raise OSError("disk gone")

    async def work(item):
        return item

    pipeline = ConcurrencyBoundedPipeline("broken", work, concurrency=2)

    with pytest.raises(OSError):
        await pipeline.run(produce())


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        ConcurrencyBoundedPipeline("zero", lambda item: item, concurrency=0)

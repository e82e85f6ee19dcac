"""Tests for the inference thread pool."""

from __future__ import annotations

import asyncio
import threading

import pytest

from facescope.config import Settings
from facescope.errors import ServiceBusyError
from facescope.ml.inference import InferencePool


class TestInferencePool:
    async def test_run_returns_result_off_loop_thread(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))
        loop_thread = threading.get_ident()
        try:
            worker_thread = await pool.run(threading.get_ident)
            assert worker_thread != loop_thread
            assert await pool.run(pow, 2, 10) == 1024
        finally:
            pool.shutdown()

    async def test_counters_return_to_zero(self) -> None:
        pool = InferencePool(Settings(max_concurrent=2))
        try:
            await asyncio.gather(*(pool.run(sum, [i, i]) for i in range(5)))
            assert pool.active_count == 0
            assert pool.queue_depth == 0
        finally:
            pool.shutdown()

    async def test_exceptions_propagate(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))

        def _boom() -> None:
            raise RuntimeError("boom")

        try:
            with pytest.raises(RuntimeError, match="boom"):
                await pool.run(_boom)
            # The slot is released after a failure.
            assert await pool.run(len, "abc") == 3
        finally:
            pool.shutdown()

    async def test_waits_without_timeout(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))
        release = threading.Event()
        try:
            first = asyncio.create_task(pool.run(release.wait, 5))
            await asyncio.sleep(0.05)
            second = asyncio.create_task(pool.run(len, "ab"))
            await asyncio.sleep(0.05)
            assert pool.queue_depth == 1
            assert not second.done()

            release.set()
            assert await first is True
            assert await second == 2
        finally:
            release.set()
            pool.shutdown()

    async def test_queue_timeout_raises_busy(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1, queue_timeout=0.05))
        release = threading.Event()
        try:
            first = asyncio.create_task(pool.run(release.wait, 5))
            await asyncio.sleep(0.01)
            with pytest.raises(ServiceBusyError):
                await pool.run(len, "ab")
            assert pool.queue_depth == 0

            release.set()
            assert await first is True
        finally:
            release.set()
            pool.shutdown()

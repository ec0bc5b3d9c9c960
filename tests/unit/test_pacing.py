"""
Unit Tests for Pacing Engine
============================

Tests for typewriter delivery: delay policy, prefix monotonicity and
per-answer teardown.
"""

import asyncio
from typing import Dict, List

import pytest

from answerstream.client.pacing import PacingEngine


class RecordingSleep:
    """Sleep replacement that records requested delays and yields control."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def _engine(deliveries: Dict[str, List[str]], sleep=None, **kwargs) -> PacingEngine:
    def on_deliver(answer_id: str, prefix: str) -> None:
        deliveries.setdefault(answer_id, []).append(prefix)

    return PacingEngine(
        on_deliver,
        base_delay=0.008,
        whitespace_delay=0.005,
        punctuation_delay=0.05,
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )


@pytest.mark.unit
class TestDelayPolicy:
    """Test content-aware delays."""

    @pytest.mark.parametrize(
        "char,expected",
        [("a", 0.008), (" ", 0.005), ("\t", 0.005), ("\n", 0.008), (",", 0.05), ("?", 0.05)],
    )
    def test_compute_delay(self, char, expected):
        """Test whitespace, punctuation and other characters."""
        assert _engine({}).compute_delay(char) == expected

    def test_defaults_from_settings(self, test_settings):
        """Test delays default to the configured milliseconds."""
        engine = PacingEngine(lambda answer_id, prefix: None)
        assert engine.base_delay == test_settings.pacing_base_delay_ms / 1000


@pytest.mark.unit
class TestPacingEngine:
    """Test per-answer animation queues."""

    @pytest.mark.asyncio
    async def test_prefixes_are_monotonic(self):
        """Test each delivery extends the previous one by one character."""
        deliveries: Dict[str, List[str]] = {}
        engine = _engine(deliveries)

        engine.enqueue("a", "Hi, ")
        engine.enqueue("a", "you.")
        engine.finish("a")
        await asyncio.wait_for(engine.wait_drained("a"), timeout=1)

        prefixes = deliveries["a"]
        assert prefixes[-1] == "Hi, you."
        for shorter, longer in zip(prefixes, prefixes[1:]):
            assert longer.startswith(shorter)
            assert len(longer) == len(shorter) + 1

    @pytest.mark.asyncio
    async def test_first_character_without_delay(self):
        """Test the first character is shown before any sleep."""
        sleep = RecordingSleep()
        deliveries: Dict[str, List[str]] = {}
        engine = _engine(deliveries, sleep=sleep)

        engine.enqueue("a", "a, b")
        engine.finish("a")
        await asyncio.wait_for(engine.wait_drained("a"), timeout=1)

        # No pause before "a"; each later character waits its own delay
        assert sleep.delays == [0.05, 0.005, 0.008]
        assert deliveries["a"][0] == "a"

    @pytest.mark.asyncio
    async def test_delay_follows_character_about_to_show(self):
        """Test each pause is chosen by the character revealed after it."""
        sleep = RecordingSleep()
        engine = PacingEngine(
            lambda answer_id, prefix: None,
            base_delay=1.0,
            whitespace_delay=2.0,
            punctuation_delay=3.0,
            sleep=sleep,
        )

        engine.enqueue("a", "x.y z")
        engine.finish("a")
        await asyncio.wait_for(engine.wait_drained("a"), timeout=1)

        assert sleep.delays == [3.0, 1.0, 2.0, 1.0]

    @pytest.mark.asyncio
    async def test_entry_destroyed_after_drain(self):
        """Test a finished queue is removed and on_drained fires once."""
        drained = []
        engine = _engine({}, on_drained=lambda answer_id, text: drained.append((answer_id, text)))

        engine.enqueue("a", "ok")
        engine.finish("a")
        await asyncio.wait_for(engine.wait_drained("a"), timeout=1)

        assert not engine.is_active("a")
        assert drained == [("a", "ok")]

    @pytest.mark.asyncio
    async def test_flush_remaining_delivers_everything(self):
        """Test flushing reveals the pending text at once."""
        gate = asyncio.Event()

        async def blocking_sleep(delay: float) -> None:
            await gate.wait()

        deliveries: Dict[str, List[str]] = {}
        engine = _engine(deliveries, sleep=blocking_sleep)

        engine.enqueue("a", "abcdef")
        await asyncio.sleep(0.01)
        assert deliveries["a"] == ["a"]

        await engine.flush_remaining("a")
        assert deliveries["a"][-1] == "abcdef"

        gate.set()
        engine.finish("a")
        await asyncio.wait_for(engine.wait_drained("a"), timeout=1)
        assert deliveries["a"][-1] == "abcdef"

    @pytest.mark.asyncio
    async def test_cancel_stops_one_answer_only(self):
        """Test cancelling one answer leaves the other animating."""
        deliveries: Dict[str, List[str]] = {}
        engine = _engine(deliveries)

        engine.enqueue("a", "a" * 50)
        engine.enqueue("b", "bbb")
        await asyncio.sleep(0)
        engine.cancel("a")
        engine.finish("b")
        await asyncio.wait_for(engine.wait_drained("b"), timeout=1)

        assert not engine.is_active("a")
        assert len(deliveries["a"][-1]) < 50
        assert deliveries["b"][-1] == "bbb"

    @pytest.mark.asyncio
    async def test_enqueue_after_finish_ignored(self):
        """Test text arriving after finish is not animated."""
        gate = asyncio.Event()

        async def blocking_sleep(delay: float) -> None:
            await gate.wait()

        deliveries: Dict[str, List[str]] = {}
        engine = _engine(deliveries, sleep=blocking_sleep)

        engine.enqueue("a", "ab")
        engine.finish("a")
        engine.enqueue("a", "cd")
        gate.set()
        await asyncio.wait_for(engine.wait_drained("a"), timeout=1)

        assert deliveries["a"][-1] == "ab"

    @pytest.mark.asyncio
    async def test_close_cancels_everything(self):
        """Test close tears down every queue."""
        engine = _engine({})
        engine.enqueue("a", "x" * 100)
        engine.enqueue("b", "y" * 100)

        await engine.close()

        assert not engine.is_active("a")
        assert not engine.is_active("b")

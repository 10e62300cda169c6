"""
Tests for feeshare/pacing.py
"""

import pytest
import trio

from feeshare.pacing import FixedDelayPacer, Pacer


class TestPacers:

    @pytest.mark.trio
    async def test_base_pacer_counts_without_waiting(self, autojump_clock):
        pacer = Pacer()
        start = trio.current_time()
        await pacer.wait()
        await pacer.wait()
        assert pacer.waits == 2
        assert trio.current_time() == start

    @pytest.mark.trio
    async def test_fixed_delay(self, autojump_clock):
        pacer = FixedDelayPacer(1.0)
        start = trio.current_time()
        for _ in range(3):
            await pacer.wait()
        assert trio.current_time() - start == pytest.approx(3.0)

    @pytest.mark.trio
    async def test_zero_delay_does_not_sleep(self, autojump_clock):
        pacer = FixedDelayPacer(0)
        start = trio.current_time()
        await pacer.wait()
        assert trio.current_time() == start
        assert pacer.waits == 1

    @pytest.mark.trio
    async def test_reset_clears_count(self):
        pacer = FixedDelayPacer(0)
        await pacer.wait()
        pacer.reset()
        assert pacer.waits == 0

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            FixedDelayPacer(-1)

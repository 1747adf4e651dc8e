"""
Tests for the undo stack used by multi-step writes.
"""

import pytest

from certforge.services.compensation import CompensationStack


def recorder(log, name, fail=False):
    async def undo():
        log.append(name)
        if fail:
            raise RuntimeError(f"{name} failed")
    return undo


class TestCompensationStack:

    @pytest.mark.asyncio
    async def test_unwinds_newest_first(self):
        log = []
        stack = CompensationStack("test")
        stack.push("row", recorder(log, "row"))
        stack.push("upload", recorder(log, "upload"))
        stack.push("registry", recorder(log, "registry"))

        await stack.unwind()

        assert log == ["registry", "upload", "row"]
        assert len(stack) == 0

    @pytest.mark.asyncio
    async def test_failing_step_does_not_stop_unwind(self):
        log = []
        stack = CompensationStack("test")
        stack.push("row", recorder(log, "row"))
        stack.push("upload", recorder(log, "upload", fail=True))

        await stack.unwind()

        assert log == ["upload", "row"]

    @pytest.mark.asyncio
    async def test_commit_discards_steps(self):
        log = []
        stack = CompensationStack("test")
        stack.push("row", recorder(log, "row"))
        stack.commit()

        await stack.unwind()

        assert log == []

    @pytest.mark.asyncio
    async def test_absorb_keeps_order(self):
        log = []
        outer = CompensationStack("outer")
        inner = CompensationStack("inner")
        outer.push("row", recorder(log, "row"))
        inner.push("preview upload", recorder(log, "preview upload"))
        inner.push("preview registry", recorder(log, "preview registry"))

        outer.absorb(inner)
        await outer.unwind()

        assert len(inner) == 0
        assert log == ["preview registry", "preview upload", "row"]

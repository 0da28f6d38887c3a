"""Tests for wayfinder.cancellation — CancellationToken."""

import anyio
import pytest

from wayfinder.cancellation import CancellationToken
from wayfinder.errors import NavigationCancelled


class TestCancellationToken:
    def test_initially_active(self) -> None:
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason is None
        token.raise_if_cancelled()

    def test_cancel_keeps_first_reason(self) -> None:
        token = CancellationToken()
        token.cancel("superseded")
        token.cancel("disposed")
        assert token.cancelled
        assert token.reason == "superseded"

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.cancel("superseded")
        with pytest.raises(NavigationCancelled, match="superseded"):
            token.raise_if_cancelled()

    @pytest.mark.anyio
    async def test_wait_returns_once_cancelled(self) -> None:
        token = CancellationToken()
        async with anyio.create_task_group() as tg:
            tg.start_soon(token.wait)
            await anyio.sleep(0)
            token.cancel()

    @pytest.mark.anyio
    async def test_wait_after_cancel(self) -> None:
        token = CancellationToken()
        token.cancel()
        with anyio.fail_after(1):
            await token.wait()

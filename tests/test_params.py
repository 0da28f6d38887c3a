"""Tests for wayfinder.routing.params and data-function keyword resolution."""

import inspect

import pytest

from wayfinder._internal.invoke import invoke, resolve_kwargs
from wayfinder.routing.params import coerce_param


class TestCoerceParam:
    def test_int(self) -> None:
        assert coerce_param("42", int) == 42

    def test_float(self) -> None:
        assert coerce_param("1.5", float) == 1.5

    def test_unconvertible_keeps_string(self) -> None:
        assert coerce_param("abc", int) == "abc"

    def test_unsupported_annotation(self) -> None:
        assert coerce_param("x", list) == "x"

    def test_unannotated(self) -> None:
        assert coerce_param("x", inspect.Parameter.empty) == "x"


class TestResolveKwargs:
    def test_by_name(self) -> None:
        def loader(params, signal):
            return None

        kwargs = resolve_kwargs(loader, {"params": {"id": "1"}, "signal": "tok"}, {"id": "1"})
        assert kwargs == {"params": {"id": "1"}, "signal": "tok"}

    def test_path_param_coerced(self) -> None:
        def loader(project_id: int):
            return None

        assert resolve_kwargs(loader, {}, {"project_id": "7"}) == {"project_id": 7}

    def test_args_object(self) -> None:
        marker = object()

        def loader(args):
            return None

        assert resolve_kwargs(loader, {}, {}, args_object=marker) == {"args": marker}

    def test_var_keyword_gets_everything(self) -> None:
        def loader(**kwargs):
            return None

        available = {"params": {}, "location": "loc"}
        assert resolve_kwargs(loader, available, {}) == available

    def test_unresolvable_left_to_default(self) -> None:
        def loader(missing="fallback"):
            return missing

        assert resolve_kwargs(loader, {}, {}) == {}


class TestInvoke:
    @pytest.mark.anyio
    async def test_sync(self) -> None:
        assert await invoke(lambda x: x + 1, 1) == 2

    @pytest.mark.anyio
    async def test_async(self) -> None:
        async def double(x: int) -> int:
            return x * 2

        assert await invoke(double, 4) == 8

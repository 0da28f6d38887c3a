"""Tests for wayfinder.routing.route — Route and RouteMatch dataclasses."""

import dataclasses

import pytest

from wayfinder.routing.route import Route, RouteMatch


class TestRoute:
    def test_defaults(self) -> None:
        route = Route(path="/users")
        assert route.index is False
        assert route.children == ()
        assert route.loader is None
        assert route.action is None
        assert route.error_boundary is False
        assert route.id is None

    def test_children_become_tuple(self) -> None:
        route = Route(path="/", children=[Route(path="a")])
        assert isinstance(route.children, tuple)

    def test_frozen(self) -> None:
        route = Route(path="/users")
        with pytest.raises(dataclasses.FrozenInstanceError):
            route.path = "/other"  # type: ignore[misc]

    def test_handle_not_compared(self) -> None:
        assert Route(path="/a", handle={"crumb": "A"}) == Route(path="/a", handle={"crumb": "B"})


class TestRouteMatch:
    def test_id_from_route(self) -> None:
        match = RouteMatch(route=Route(path="/a", id="a"), params={}, pathname="/a", pathname_base="/a")
        assert match.id == "a"

    def test_id_empty_when_unassigned(self) -> None:
        match = RouteMatch(route=Route(path="/a"), params={}, pathname="/a", pathname_base="/a")
        assert match.id == ""

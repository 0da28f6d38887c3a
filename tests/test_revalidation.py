"""Tests for wayfinder.navigation.revalidation — which loaders run again."""

from wayfinder.history import HistoryAction
from wayfinder.location.forms import FormData, Submission
from wayfinder.location.path import Location
from wayfinder.navigation.revalidation import (
    FetchLoadMatch,
    ShouldRevalidateArgs,
    get_matches_to_load,
    is_new_loader,
    is_new_route_instance,
    should_revalidate_loader,
)
from wayfinder.navigation.state import RouterState
from wayfinder.routing.matcher import RouteTable
from wayfinder.routing.route import Route, RouteMatch


def _loader() -> dict[str, str]:
    return {}


def _table(should_revalidate=None) -> RouteTable:
    return RouteTable([
        Route(
            path="/",
            id="root",
            loader=_loader,
            children=[
                Route(path="projects/:project_id", id="project", loader=_loader,
                      should_revalidate=should_revalidate),
                Route(path="files/*", id="files", loader=_loader),
                Route(path="about", id="about"),
            ],
        )
    ])


def _state(table: RouteTable, pathname: str, search: str = "") -> RouterState:
    matches = table.match(pathname)
    assert matches is not None
    return RouterState(
        history_action=HistoryAction.POP,
        location=Location(pathname, search),
        matches=tuple(matches),
        initialized=True,
        loader_data={m.id: {"loaded": m.pathname} for m in matches if m.route.loader},
    )


def _match(table: RouteTable, pathname: str) -> list[RouteMatch]:
    matches = table.match(pathname)
    assert matches is not None
    return matches


def _ids(matches: list[RouteMatch]) -> list[str]:
    return [m.id for m in matches]


class TestHelpers:
    def test_is_new_loader(self) -> None:
        table = _table()
        current = _match(table, "/projects/1")
        assert is_new_loader({}, current[1], current[1])
        assert not is_new_loader({"project": 1}, current[1], current[1])
        assert is_new_loader({"project": 1}, None, current[1])

    def test_new_route_instance_on_param_change(self) -> None:
        table = _table()
        one = _match(table, "/projects/1")[1]
        two = _match(table, "/projects/2")[1]
        assert is_new_route_instance(one, two)
        assert not is_new_route_instance(one, one)

    def test_new_route_instance_on_splat_change(self) -> None:
        table = _table()
        a = _match(table, "/files/a")[1]
        b = _match(table, "/files/b")[1]
        assert is_new_route_instance(a, b)


class TestGetMatchesToLoad:
    def test_param_change_reloads_only_changed_route(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        to_load, fetchers = get_matches_to_load(
            state, _match(table, "/projects/2"), Location("/projects/2")
        )
        assert _ids(to_load) == ["project"]
        assert fetchers == []

    def test_search_change_reloads_everything(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state, _match(table, "/projects/1"), Location("/projects/1", "?tab=2")
        )
        assert _ids(to_load) == ["root", "project"]

    def test_same_url_reloads_everything(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state, _match(table, "/projects/1"), Location("/projects/1")
        )
        assert _ids(to_load) == ["root", "project"]

    def test_new_routes_always_load(self) -> None:
        table = _table()
        state = _state(table, "/about")
        to_load, _ = get_matches_to_load(
            state, _match(table, "/projects/1"), Location("/projects/1")
        )
        assert _ids(to_load) == ["project"]

    def test_routes_without_loader_skipped(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state, _match(table, "/about"), Location("/about"), revalidation_required=True
        )
        assert _ids(to_load) == ["root"]

    def test_revalidation_required_reloads_everything(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        submission = Submission("post", "/projects/1", FormData({"a": "1"}))
        to_load, _ = get_matches_to_load(
            state,
            _match(table, "/projects/1"),
            Location("/projects/1"),
            submission=submission,
            revalidation_required=True,
        )
        assert _ids(to_load) == ["root", "project"]

    def test_cancelled_deferred_routes_reload(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state,
            _match(table, "/projects/2"),
            Location("/projects/2"),
            cancelled_deferred_routes=["root"],
        )
        assert _ids(to_load) == ["root", "project"]

    def test_boundary_limits_candidates(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state,
            _match(table, "/projects/1"),
            Location("/projects/1"),
            revalidation_required=True,
            boundary_id="project",
        )
        assert _ids(to_load) == ["root"]

    def test_interrupted_only_reloads_cancelled_deferreds(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state,
            _match(table, "/projects/1"),
            Location("/projects/1"),
            revalidation_required=True,
            cancelled_deferred_routes=["root", "project"],
            boundary_id="project",
            interrupted_only=True,
        )
        assert _ids(to_load) == ["root"]


class TestShouldRevalidatePredicate:
    def test_predicate_can_opt_out(self) -> None:
        calls: list[ShouldRevalidateArgs] = []

        def never(args: ShouldRevalidateArgs) -> bool:
            calls.append(args)
            return False

        table = _table(should_revalidate=never)
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state,
            _match(table, "/projects/1"),
            Location("/projects/1"),
            revalidation_required=True,
            action_result={"ok": True},
        )
        assert _ids(to_load) == ["root"]
        assert calls[0].default_should_revalidate is True
        assert calls[0].action_result == {"ok": True}
        assert calls[0].next_params == {"project_id": "1"}

    def test_predicate_can_opt_in(self) -> None:
        table = RouteTable([
            Route(
                path="/",
                id="root",
                loader=_loader,
                should_revalidate=lambda args: True,
                children=[
                    Route(path="a", id="a", loader=_loader),
                    Route(path="b", id="b", loader=_loader),
                ],
            )
        ])
        state = _state(table, "/a")
        # The root keeps its params and search, so it would not reload by default
        to_load, _ = get_matches_to_load(state, _match(table, "/b"), Location("/b"))
        assert _ids(to_load) == ["root", "b"]

    def test_non_bool_falls_back_to_default(self) -> None:
        table = _table(should_revalidate=lambda args: None)
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state, _match(table, "/projects/1"), Location("/projects/1", "?q=1")
        )
        assert _ids(to_load) == ["root", "project"]

    def test_force_overrides_opt_out(self) -> None:
        table = _table(should_revalidate=lambda args: False)
        state = _state(table, "/projects/1")
        to_load, _ = get_matches_to_load(
            state, _match(table, "/projects/1"), Location("/projects/1"), force=True
        )
        assert _ids(to_load) == ["root", "project"]

    def test_should_revalidate_loader_force_first(self) -> None:
        table = _table(should_revalidate=lambda args: False)
        match = _match(table, "/projects/1")[1]
        location = Location("/projects/1")
        assert should_revalidate_loader(
            location, match, None, location, match, revalidation_required=False, force=True
        )
        assert not should_revalidate_loader(
            location, match, None, location, match, revalidation_required=True
        )


class TestFetcherRevalidation:
    def _load(self, table: RouteTable, *, revalidate: bool = True) -> dict[str, FetchLoadMatch]:
        matches = _match(table, "/projects/9")
        return {
            "sidebar": FetchLoadMatch(
                route_id="root",
                href="/projects/9",
                match=matches[-1],
                matches=tuple(matches),
                revalidate=revalidate,
            )
        }

    def test_reloads_when_revalidation_required(self) -> None:
        table = _table()
        state = _state(table, "/about")
        _, fetchers = get_matches_to_load(
            state,
            _match(table, "/about"),
            Location("/about"),
            revalidation_required=True,
            fetch_load_matches=self._load(table),
        )
        assert [f.key for f in fetchers] == ["sidebar"]
        assert fetchers[0].href == "/projects/9"

    def test_reloads_when_its_route_loads(self) -> None:
        table = _table()
        state = _state(table, "/about")
        _, fetchers = get_matches_to_load(
            state,
            _match(table, "/projects/1"),
            Location("/projects/1"),
            fetch_load_matches=self._load(table),
        )
        assert [f.key for f in fetchers] == ["sidebar"]

    def test_navigation_without_fetcher_route(self) -> None:
        table = _table()
        state = _state(table, "/projects/1")
        _, fetchers = get_matches_to_load(
            state,
            _match(table, "/files/a"),
            Location("/files/a"),
            fetch_load_matches=self._load(table),
        )
        assert fetchers == []

    def test_opted_out_fetcher(self) -> None:
        table = _table()
        state = _state(table, "/about")
        _, fetchers = get_matches_to_load(
            state,
            _match(table, "/about"),
            Location("/about"),
            revalidation_required=True,
            fetch_load_matches=self._load(table, revalidate=False),
        )
        assert fetchers == []

    def test_cancelled_fetcher_load_always_reloads(self) -> None:
        table = _table()
        state = _state(table, "/about")
        _, fetchers = get_matches_to_load(
            state,
            _match(table, "/about"),
            Location("/about"),
            cancelled_fetcher_loads={"sidebar"},
            fetch_load_matches=self._load(table, revalidate=False),
        )
        assert [f.key for f in fetchers] == ["sidebar"]

    def test_interrupted_only_skips_settled_fetchers(self) -> None:
        table = _table()
        state = _state(table, "/projects/9")
        _, fetchers = get_matches_to_load(
            state,
            _match(table, "/projects/9"),
            Location("/projects/9"),
            revalidation_required=True,
            fetch_load_matches=self._load(table),
            interrupted_only=True,
        )
        assert fetchers == []

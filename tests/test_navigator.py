"""Tests for Navigator — the navigation lifecycle end to end, driven through MemoryHistory."""

import logging
from typing import Any

import anyio
import pytest
from anyio import wait_all_tasks_blocked

from wayfinder import (
    BadRequest,
    MemoryHistory,
    Navigator,
    Redirect,
    Route,
    RouterConfig,
    defer,
    redirect,
)
from wayfinder.errors import AbortedDeferredError
from wayfinder.navigation import HydrationState, RouterState
from wayfinder.testing import ControlledFunction


class Recorder:
    """Loaders and an action that record the order they ran in."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def loader(self, route_id: str):
        def load(params):
            self.calls.append(route_id)
            return {"route": route_id, **params}

        return load

    def save_project(self, form_data):
        self.calls.append("action")
        title = form_data.get("title")
        if not title:
            raise BadRequest("title is required", internal=False)
        return {"saved": title}


def _broken():
    raise ValueError("tasks table is gone")


def _private():
    raise Redirect("/login")


def _legacy(form_data):
    return redirect("/projects/7", int(form_data.get("status", "302")))


def _routes(rec: Recorder) -> list[Route]:
    return [
        Route(
            path="/",
            id="root",
            loader=rec.loader("root"),
            error_boundary=True,
            children=[
                Route(index=True, id="home", loader=rec.loader("home")),
                Route(
                    path="projects/:project_id",
                    id="project",
                    loader=rec.loader("project"),
                    action=rec.save_project,
                    error_boundary=True,
                    children=[Route(path="broken", id="broken", loader=_broken)],
                ),
                Route(path="private", id="private", loader=_private),
                Route(path="login", id="login", loader=rec.loader("login")),
                Route(path="legacy", id="legacy", action=_legacy),
                Route(path="about", id="about"),
            ],
        ),
    ]


async def _ready(navigator: Navigator) -> RouterState:
    return await navigator.store.wait_for(lambda s: s.initialized and s.navigation.is_idle)


class TestConstruction:
    def test_starts_uninitialized_when_loaders_must_run(self) -> None:
        navigator = Navigator(_routes(Recorder()))
        assert not navigator.state.initialized
        assert [m.id for m in navigator.state.matches] == ["root", "home"]

    def test_initialized_without_loaders(self) -> None:
        navigator = Navigator([Route(path="/", id="root")])
        assert navigator.state.initialized

    def test_unmatched_initial_location(self) -> None:
        navigator = Navigator(_routes(Recorder()), history=MemoryHistory(["/nope"]))
        assert navigator.state.errors is not None
        assert navigator.state.errors["root"].status == 404

    @pytest.mark.anyio
    async def test_hydration_skips_initial_load(self) -> None:
        rec = Recorder()
        navigator = Navigator(
            _routes(rec), hydration_data=HydrationState(loader_data={"root": "r", "home": "h"})
        )
        assert navigator.state.initialized
        async with navigator:
            await wait_all_tasks_blocked()
        assert rec.calls == []
        assert navigator.state.loader_data == {"root": "r", "home": "h"}

    @pytest.mark.anyio
    async def test_navigate_requires_running_navigator(self) -> None:
        navigator = Navigator(_routes(Recorder()))
        with pytest.raises(RuntimeError, match="not running"):
            await navigator.navigate("/about")

    @pytest.mark.anyio
    async def test_cannot_enter_twice(self) -> None:
        async with Navigator([Route(path="/")]) as navigator:
            with pytest.raises(RuntimeError, match="already running"):
                await navigator.__aenter__()
        assert not navigator.running


class TestLoading:
    @pytest.mark.anyio
    async def test_initial_load(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            state = await _ready(navigator)
        assert sorted(rec.calls) == ["home", "root"]
        assert state.loader_data == {"root": {"route": "root"}, "home": {"route": "home"}}

    @pytest.mark.anyio
    async def test_only_changed_routes_reload(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            state = await navigator.navigate("/projects/7")
        assert rec.calls == ["project"]
        assert state.loader_data == {
            "root": {"route": "root"},
            "project": {"route": "project", "project_id": "7"},
        }
        assert navigator.history.location.pathname == "/projects/7"
        assert state.history_action.value == "PUSH"

    @pytest.mark.anyio
    async def test_navigation_states(self) -> None:
        async with Navigator(_routes(Recorder())) as navigator:
            await _ready(navigator)
            states: list[RouterState] = []
            navigator.subscribe(states.append)
            await navigator.navigate("/projects/7")
        assert [s.navigation.state for s in states] == ["loading", "idle"]
        assert states[0].navigation.location is not None
        assert states[0].navigation.location.pathname == "/projects/7"
        assert states[0].location.pathname == "/"

    @pytest.mark.anyio
    async def test_same_url_reloads_everything(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            await navigator.navigate("/")
        assert sorted(rec.calls) == ["home", "root"]

    @pytest.mark.anyio
    async def test_search_change_reloads_everything(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            state = await navigator.navigate("/?page=2")
        assert sorted(rec.calls) == ["home", "root"]
        assert state.location.search == "?page=2"

    @pytest.mark.anyio
    async def test_hash_change_runs_no_loaders(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            state = await navigator.navigate("/#top")
        assert rec.calls == []
        assert state.location.hash == "#top"
        assert len(navigator.history.entries) == 2

    @pytest.mark.anyio
    async def test_hash_change_with_revalidate_runs_loaders(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            state = await navigator.navigate("/#top", revalidate=True)
        assert sorted(rec.calls) == ["home", "root"]
        assert state.location.hash == "#top"

    @pytest.mark.anyio
    async def test_hash_change_during_initial_load_still_loads(self) -> None:
        loader = ControlledFunction("root")
        routes = [Route(path="/", id="root", loader=loader, children=[Route(index=True, id="home")])]
        async with Navigator(routes) as navigator, anyio.create_task_group() as tg:
            first = await loader.next_call()
            tg.start_soon(navigator.navigate, "#top")
            again = await loader.next_call()
            assert first.signal is not None
            assert first.signal.cancelled
            first.resolve({"user": "stale"})
            again.resolve({"user": "ada"})
            state = await _ready(navigator)
        assert state.loader_data == {"root": {"user": "ada"}}
        assert state.location.hash == "#top"

    @pytest.mark.anyio
    async def test_not_found(self) -> None:
        async with Navigator(_routes(Recorder())) as navigator:
            await _ready(navigator)
            state = await navigator.navigate("/nope")
            assert state.errors is not None
            assert state.errors["root"].status == 404
            assert [m.id for m in state.matches] == ["root"]
            assert state.location.pathname == "/nope"

            state = await navigator.navigate("/")
        assert state.errors is None

    @pytest.mark.anyio
    async def test_loader_error_goes_to_nearest_boundary(self) -> None:
        async with Navigator(_routes(Recorder())) as navigator:
            await _ready(navigator)
            state = await navigator.navigate("/projects/7/broken")
        assert state.errors is not None
        assert list(state.errors) == ["project"]
        assert isinstance(state.errors["project"], ValueError)
        assert set(state.loader_data) == {"root", "project"}

    @pytest.mark.anyio
    async def test_loader_redirect(self) -> None:
        async with Navigator(_routes(Recorder())) as navigator:
            await _ready(navigator)
            state = await navigator.navigate("/private")
        assert state.location.pathname == "/login"
        assert "login" in state.loader_data
        assert "private" not in state.loader_data
        assert [e.pathname for e in navigator.history.entries] == ["/", "/login"]

    @pytest.mark.anyio
    async def test_pop_navigation(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            await navigator.navigate("/projects/7")
            rec.calls.clear()
            await navigator.navigate(-1)
            state = await navigator.store.wait_for(
                lambda s: s.location.pathname == "/" and s.navigation.is_idle
            )
        assert state.history_action.value == "POP"
        assert navigator.history.index == 0
        assert rec.calls == ["home"]

    @pytest.mark.anyio
    async def test_get_submission_serializes_into_search(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            state = await navigator.navigate("/projects/7", form_data={"q": "roadmap"})
        assert state.location.search == "?q=roadmap"
        assert "action" not in rec.calls


class TestSuperseding:
    @pytest.mark.anyio
    async def test_later_navigation_wins(self) -> None:
        slow = ControlledFunction("slow")
        routes = [
            Route(path="/", id="root", children=[
                Route(index=True, id="home"),
                Route(path="slow", id="slow", loader=slow),
                Route(path="fast", id="fast", loader=lambda: "fast"),
            ]),
        ]
        async with Navigator(routes) as navigator, anyio.create_task_group() as tg:
            tg.start_soon(navigator.navigate, "/slow")
            call = await slow.next_call()
            state = await navigator.navigate("/fast")
            assert call.signal is not None
            assert call.signal.cancelled
            call.resolve("too late")
            await wait_all_tasks_blocked()

        state = navigator.state
        assert state.location.pathname == "/fast"
        assert state.loader_data == {"fast": "fast"}
        assert [e.pathname for e in navigator.history.entries] == ["/", "/fast"]


class TestSubmissions:
    @pytest.mark.anyio
    async def test_action_then_each_loader_once(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            await navigator.navigate("/projects/7")
            rec.calls.clear()
            states: list[RouterState] = []
            navigator.subscribe(states.append)
            state = await navigator.submit({"title": "Roadmap"})

        assert rec.calls[0] == "action"
        assert sorted(rec.calls[1:]) == ["project", "root"]
        assert state.action_data == {"project": {"saved": "Roadmap"}}
        assert [s.navigation.state for s in states] == ["submitting", "loading", "idle"]
        # Submitting to the current location replaces its entry
        assert state.history_action.value == "REPLACE"
        assert len(navigator.history.entries) == 2

    @pytest.mark.anyio
    async def test_action_data_cleared_by_next_navigation(self) -> None:
        async with Navigator(_routes(Recorder())) as navigator:
            await _ready(navigator)
            await navigator.navigate("/projects/7")
            await navigator.submit({"title": "Roadmap"})
            state = await navigator.navigate("/")
        assert state.action_data is None

    @pytest.mark.anyio
    async def test_action_error_skips_loaders(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            await navigator.navigate("/projects/7")
            rec.calls.clear()
            state = await navigator.submit({"title": ""})
        assert rec.calls == ["action"]
        assert state.errors is not None
        assert state.errors["project"].status == 400
        assert state.action_data is None
        assert state.history_action.value == "PUSH"
        assert len(navigator.history.entries) == 3

    @pytest.mark.anyio
    async def test_missing_action(self) -> None:
        async with Navigator(_routes(Recorder())) as navigator:
            await _ready(navigator)
            state = await navigator.navigate("/about", form_method="post", form_data={"a": "1"})
        assert state.errors is not None
        assert state.errors["root"].status == 405
        assert "did not provide an action for route 'about'" in str(state.errors["root"])

    @pytest.mark.anyio
    async def test_invalid_method(self) -> None:
        async with Navigator(_routes(Recorder())) as navigator:
            await _ready(navigator)
            state = await navigator.navigate("/about", form_method="trace", form_data={"a": "1"})
        assert state.errors is not None
        assert state.errors["root"].status == 405

    @pytest.mark.anyio
    async def test_307_resubmits_to_new_location(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            state = await navigator.navigate(
                "/legacy", form_method="post", form_data={"title": "Moved", "status": "307"}
            )
        assert "action" in rec.calls
        assert state.location.pathname == "/projects/7"
        assert state.action_data == {"project": {"saved": "Moved"}}

    @pytest.mark.anyio
    async def test_302_after_action_loads(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            state = await navigator.navigate(
                "/legacy", form_method="post", form_data={"title": "Moved", "status": "302"}
            )
        assert "action" not in rec.calls
        assert sorted(rec.calls) == ["project", "root"]
        assert state.location.pathname == "/projects/7"
        assert state.action_data is None
        assert state.navigation.is_idle


class TestRevalidate:
    @pytest.mark.anyio
    async def test_from_idle(self) -> None:
        rec = Recorder()
        async with Navigator(_routes(rec)) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            states: list[RouterState] = []
            navigator.subscribe(states.append)
            await navigator.revalidate()
        assert sorted(rec.calls) == ["home", "root"]
        assert [(s.navigation.state, s.revalidation) for s in states] == [
            ("idle", "loading"),
            ("idle", "idle"),
        ]
        assert len(navigator.history.entries) == 1

    @pytest.mark.anyio
    async def test_force_bypasses_predicates(self) -> None:
        rec = Recorder()

        def never(args: Any) -> bool:
            return False

        routes = [
            Route(path="/", id="root", loader=rec.loader("root"), should_revalidate=never,
                  children=[Route(index=True, id="home", loader=rec.loader("home"))]),
        ]
        async with Navigator(routes) as navigator:
            await _ready(navigator)
            rec.calls.clear()
            await navigator.revalidate()
            assert rec.calls == ["home"]
            rec.calls.clear()
            await navigator.revalidate(force=True)
        assert sorted(rec.calls) == ["home", "root"]


class TestDeferred:
    def _routes(self, release: anyio.Event) -> list[Route]:
        async def slow_stats() -> int:
            await release.wait()
            return 42

        def load_dashboard():
            return defer(title="Dashboard", stats=slow_stats())

        return [
            Route(path="/", id="root", children=[
                Route(index=True, id="home"),
                Route(path="dashboard", id="dashboard", loader=load_dashboard),
            ]),
        ]

    @pytest.mark.anyio
    async def test_values_settle_after_commit(self) -> None:
        release = anyio.Event()
        async with Navigator(self._routes(release)) as navigator:
            state = await navigator.navigate("/dashboard")
            data = state.loader_data["dashboard"]
            assert data["title"] == "Dashboard"
            assert not data["stats"].done
            assert "dashboard" in navigator.active_deferreds

            release.set()
            assert await data["stats"] == 42
            await wait_all_tasks_blocked()
            assert navigator.active_deferreds == {}

    @pytest.mark.anyio
    async def test_leaving_the_route_cancels(self) -> None:
        async with Navigator(self._routes(anyio.Event())) as navigator:
            state = await navigator.navigate("/dashboard")
            stats = state.loader_data["dashboard"]["stats"]
            await navigator.navigate("/")
            await wait_all_tasks_blocked()
            assert isinstance(stats.error, AbortedDeferredError)
            assert navigator.active_deferreds == {}

    @pytest.mark.anyio
    async def test_exit_cancels_pending_values(self) -> None:
        async with Navigator(self._routes(anyio.Event())) as navigator:
            state = await navigator.navigate("/dashboard")
            stats = state.loader_data["dashboard"]["stats"]
        assert isinstance(stats.error, AbortedDeferredError)

    @pytest.mark.anyio
    async def test_failed_submission_reloads_interrupted_layout(self) -> None:
        loads: list[int] = []
        never = anyio.Event()

        async def count_members(n: int) -> int:
            if n == 1:
                await never.wait()
            return n * 10

        def load_team():
            loads.append(len(loads) + 1)
            return defer(name="Core", members=count_members(len(loads)))

        def rename_team(form_data):
            raise BadRequest("name is required", internal=False)

        routes = [
            Route(path="/", id="root", children=[
                Route(index=True, id="home"),
                Route(path="team", id="team", loader=load_team, children=[
                    Route(path="settings", id="settings", action=rename_team, error_boundary=True),
                ]),
            ]),
        ]
        async with Navigator(routes) as navigator:
            state = await navigator.navigate("/team/settings")
            first = state.loader_data["team"]["members"]
            state = await navigator.submit({"name": ""})

        assert isinstance(first.error, AbortedDeferredError)
        assert loads == [1, 2]
        assert state.errors is not None
        assert state.errors["settings"].status == 400
        assert state.loader_data["team"]["members"].value == 20


class TestBasename:
    @pytest.mark.anyio
    async def test_paths_are_relative_to_basename(self) -> None:
        rec = Recorder()
        navigator = Navigator(
            _routes(rec),
            history=MemoryHistory(["/app"]),
            config=RouterConfig(basename="/app"),
        )
        async with navigator:
            await _ready(navigator)
            state = await navigator.navigate("/about")
            assert navigator.create_href("/projects/7") == "/app/projects/7"
        assert state.location.pathname == "/app/about"
        assert [m.id for m in state.matches] == ["root", "about"]
        assert navigator.history.location.pathname == "/app/about"


class TestLogging:
    @pytest.mark.anyio
    async def test_commits_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="wayfinder.navigation"):
            async with Navigator([Route(path="/"), Route(path="/about")]) as navigator:
                await navigator.navigate("/about")
        assert "Navigated to /about (PUSH)" in caplog.text

    @pytest.mark.anyio
    async def test_lifecycle_logging_off(self, caplog: pytest.LogCaptureFixture) -> None:
        config = RouterConfig(lifecycle_logging=False)
        with caplog.at_level(logging.INFO, logger="wayfinder.navigation"):
            async with Navigator([Route(path="/"), Route(path="/about")], config=config) as navigator:
                await navigator.navigate("/about")
        assert "Navigated to" not in caplog.text

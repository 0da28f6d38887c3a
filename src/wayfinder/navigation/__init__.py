"""The navigation state machine, its state snapshots and the store."""

from wayfinder.navigation.navigator import Navigator
from wayfinder.navigation.revalidation import ShouldRevalidateArgs
from wayfinder.navigation.state import (
    IDLE_FETCHER,
    IDLE_NAVIGATION,
    Fetcher,
    HydrationState,
    Navigation,
    RouterState,
)
from wayfinder.navigation.store import NavigationStore

__all__ = [
    "IDLE_FETCHER",
    "IDLE_NAVIGATION",
    "Fetcher",
    "HydrationState",
    "Navigation",
    "NavigationStore",
    "Navigator",
    "RouterState",
    "ShouldRevalidateArgs",
]

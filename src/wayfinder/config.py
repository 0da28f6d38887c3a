"""Navigator configuration.

One frozen ``RouterConfig`` per navigator. Every field has a default;
values are checked once, at construction.
"""

from dataclasses import dataclass

from wayfinder.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class RouterConfig:
    """Navigator configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = RouterConfig(basename="/app", lifecycle_logging=False)
    """

    # Matching
    basename: str = "/"
    case_sensitive: bool = False  # Default for routes that don't set their own

    # Subscribers
    subscriber_buffer: int = 256  # Per-stream queue depth for NavigationStore.updates()

    # Logging
    lifecycle_logging: bool = True  # INFO line per committed navigation

    def __post_init__(self) -> None:
        if not self.basename.startswith("/"):
            msg = f"basename must start with '/', got {self.basename!r}"
            raise ConfigurationError(msg)
        if self.subscriber_buffer < 1:
            msg = f"subscriber_buffer must be positive, got {self.subscriber_buffer}"
            raise ConfigurationError(msg)

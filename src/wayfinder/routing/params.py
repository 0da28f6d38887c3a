"""Path parameter coercion for data-function arguments.

Params are always captured as strings. When a loader annotates a
parameter (``def load(user_id: int)``) the captured value is converted
with the matching converter before the call.
"""

from typing import Any

# Supported annotation -> converter
CONVERTERS: dict[type, type] = {
    str: str,
    int: int,
    float: float,
}


def coerce_param(value: str, annotation: Any) -> Any:
    """Convert a captured path parameter string to the annotated type.

    Unannotated, unsupported and unconvertible values come back as the
    original string, so the data function still runs and can decide.
    """
    converter = CONVERTERS.get(annotation) if isinstance(annotation, type) else None
    if converter is None:
        return value
    try:
        return converter(value)
    except (TypeError, ValueError):
        return value

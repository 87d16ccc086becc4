from typing import Any

from beanie import Link


def link_id(value: Any) -> str | None:
    """Id of a Link[...] field whether it was fetched or not."""
    if value is None:
        return None
    if isinstance(value, Link):
        return str(value.ref.id)
    return str(value.id)

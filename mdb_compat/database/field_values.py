"""
Field value sentinels for ``update()``.

    await ref.update({"tags": array_union("vip", "repeat")})
    await ref.update({"tags": array_remove("trial")})
"""

from typing import Any

from .snapshots import to_storage_value


class ArrayUnion:
    """Add elements to an array field, skipping ones already present."""

    __slots__ = ("elements",)

    def __init__(self, elements: tuple[Any, ...]):
        self.elements = [to_storage_value(e) for e in elements]

    def __repr__(self) -> str:
        return f"ArrayUnion({self.elements!r})"


class ArrayRemove:
    """Remove every occurrence of the given elements from an array field."""

    __slots__ = ("elements",)

    def __init__(self, elements: tuple[Any, ...]):
        self.elements = [to_storage_value(e) for e in elements]

    def __repr__(self) -> str:
        return f"ArrayRemove({self.elements!r})"


def array_union(*elements: Any) -> ArrayUnion:
    return ArrayUnion(elements)


def array_remove(*elements: Any) -> ArrayRemove:
    return ArrayRemove(elements)


def split_update(data: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """
    Split update data into MongoDB update operators.

    Returns:
        Update document with ``$set`` and, when sentinels are used,
        ``$addToSet`` / ``$pullAll``
    """
    set_fields: dict[str, Any] = {}
    add_to_set: dict[str, Any] = {}
    pull_all: dict[str, Any] = {}

    for field, value in data.items():
        if isinstance(value, ArrayUnion):
            add_to_set[field] = {"$each": value.elements}
        elif isinstance(value, ArrayRemove):
            pull_all[field] = value.elements
        else:
            set_fields[field] = to_storage_value(value)

    update: dict[str, dict[str, Any]] = {"$set": set_fields}
    if add_to_set:
        update["$addToSet"] = add_to_set
    if pull_all:
        update["$pullAll"] = pull_all
    return update

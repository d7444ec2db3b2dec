"""
Item and snapshot types for the mirrored collection.
"""

from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

ItemId = Union[int, str]

# A snapshot is immutable; every mutation publishes a new tuple.
Snapshot = Tuple[Any, ...]


class MirrorItem(BaseModel):
    """Default item type: an ``id`` plus whatever the backend sends."""

    model_config = ConfigDict(extra="allow")

    id: ItemId


def item_id(item: Any) -> ItemId:
    """Return the identifier of a mapping or attribute-style item."""
    if isinstance(item, Mapping):
        return item["id"]
    return item.id


def find_item(snapshot: Sequence[Any], target: ItemId) -> Optional[Any]:
    """Return the first item in ``snapshot`` whose id equals ``target``."""
    for candidate in snapshot:
        if item_id(candidate) == target:
            return candidate
    return None


def decode_item(payload: Any) -> MirrorItem:
    return MirrorItem.model_validate(payload)


def encode_item(item: Any) -> Dict[str, Any]:
    """Serialize an item into a JSON request body."""
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json")
    if is_dataclass(item) and not isinstance(item, type):
        return asdict(item)
    if isinstance(item, Mapping):
        return dict(item)
    return dict(vars(item))

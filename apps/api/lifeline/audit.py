"""
LIFELINE Audit Hashing

Content-addressed fingerprints for reproducibility tokens. Values are
serialized as key-sorted compact JSON and hashed with a 32-bit FNV-1a style
hash, rendered as `h` + 8 hex digits. Field order never affects the hash.
"""

import json
import re
from typing import Any, Iterable, List

from pydantic import BaseModel

from lifeline.models import ActionState

_FNV_OFFSET = 2166136261
_MASK32 = 0xFFFFFFFF
_BULLET = re.compile(r"^•\s*")

MAX_WHY_TOP = 5


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return value


def stable_stringify(value: Any) -> str:
    """Compact JSON with keys sorted at every level."""
    return json.dumps(_plain(value), sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def deterministic_hash(value: Any) -> str:
    text = stable_stringify(value)
    h = _FNV_OFFSET
    for ch in text:
        h ^= ord(ch)
        h = (h + (h << 1) + (h << 4) + (h << 7) + (h << 8) + (h << 24)) & _MASK32
    return f"h{h:08x}"


def build_state_hash(state: ActionState) -> str:
    return deterministic_hash(state)


def build_catalog_hash(catalog: Iterable[BaseModel]) -> str:
    """Hash of the full, ordered catalog; reordering or editing any action changes it."""
    return deterministic_hash([action.model_dump(mode="json") for action in catalog])


def build_why_top(reasons: Iterable[str]) -> List[str]:
    """At most five justification lines, each with a single leading bullet."""
    return [f"• {_BULLET.sub('', reason)}" for reason in list(reasons)[:MAX_WHY_TOP]]

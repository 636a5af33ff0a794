"""Entity identifiers: client-issued temporary ids and server-assigned ids.

Records created optimistically carry a ``LocalId`` until the server confirms
them; confirmed records carry a ``ServerId``. The two are distinct types, so a
temporary id can never be mistaken for (or collide with) a real server id.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True, slots=True)
class LocalId:
    """Temporary identifier issued by the client for a pending create."""

    sequence: int
    issued_ns: int

    def __str__(self) -> str:
        return f"tmp-{self.sequence}"


@dataclass(frozen=True, slots=True)
class ServerId:
    """Identifier assigned by the remote service."""

    value: int | str

    def __str__(self) -> str:
        return str(self.value)

    @property
    def path_segment(self) -> str:
        """Return the id as it appears in resource URLs."""
        return str(self.value)


EntityId = Union[LocalId, ServerId]


class LocalIdFactory:
    """Issue process-unique ``LocalId`` values.

    Sequence numbers increase monotonically; the high-resolution clock reading
    only adds provenance and is not used for uniqueness.
    """

    def __init__(self, *, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def next_id(self) -> LocalId:
        """Return the next unused temporary id."""
        return LocalId(sequence=next(self._counter), issued_ns=time.monotonic_ns())


def as_server_id(value: object) -> ServerId:
    """Coerce a raw server id (or an existing ``ServerId``) into ``ServerId``."""
    if isinstance(value, ServerId):
        return value
    if isinstance(value, LocalId):
        raise TypeError(f"{value} is a temporary id, not a server id")
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise TypeError(f"unsupported server id value: {value!r}")
    return ServerId(value=value)

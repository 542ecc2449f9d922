from __future__ import annotations

import uuid
from typing import Protocol


class IdGenerator(Protocol):
    def __call__(self) -> str:
        ...


def uuid4_id() -> str:
    return str(uuid.uuid4())

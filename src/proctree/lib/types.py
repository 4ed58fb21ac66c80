"""Process handles."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proctree.lib.ports import SupportsPid


@dataclass(frozen=True, slots=True)
class ProcessHandle:
    """Opaque reference to one OS process.

    `pid` is None when spawning failed before the OS assigned an id. The
    handle is only meaningful until the OS reaps the process; nothing here
    tracks liveness.
    """

    pid: int | None
    platform: str = field(default=sys.platform)

    @classmethod
    def of(cls, process: SupportsPid) -> ProcessHandle:
        """Build a handle from any process object exposing `.pid`."""

        return cls(pid=getattr(process, "pid", None))

"""
Decode Attempts — per-trial isolation and explicit outcomes.

Every trial (version probe, direct scan, orphan scan) runs inside its own
AttemptContext:

    Started ──► Committed   (record accepted, caller inserts it)
            └─► Discarded   (decode failure or predicate rejection)

The context is created right before the decode and closed right after,
whatever the outcome. Its cache and relocation map die with it, so a
malformed trial can never leave state behind for the next one.

Rejection is the overwhelmingly common outcome of brute-force scanning,
so it is a value (Rejected), not an exception that callers must catch.
"""

import enum
import struct
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .errors import DecodeError

logger = logging.getLogger(__name__)

# Low-level failures a decoder may leak on garbage input
TRIAL_FAILURES = (
    DecodeError, struct.error, IndexError, ValueError, OverflowError, TypeError,
)


class AttemptState(enum.Enum):
    STARTED = "started"
    COMMITTED = "committed"
    DISCARDED = "discarded"


@dataclass
class AttemptContext:
    """Transient state owned by exactly one decode trial."""
    offset: int
    cache: dict = field(default_factory=dict)          # (kind, offset) → decoded object
    relocations: dict = field(default_factory=dict)    # field offset → target address
    trace: Optional[list[str]] = None                  # decode log lines (tracing only)
    state: AttemptState = AttemptState.STARTED

    def cached(self, key, factory: Callable[[], Any]):
        """Return the cached object for `key`, building it on first use."""
        if key in self.cache:
            return self.cache[key]
        value = factory()
        self.cache[key] = value
        return value

    def relocate(self, field_offset: int, address: int):
        self.relocations[field_offset] = address

    def log(self, offset: int, label: str, value):
        if self.trace is not None:
            self.trace.append(f"{offset:08X} {label}: {value}")

    def close(self, state: AttemptState):
        self.cache.clear()
        self.relocations.clear()
        self.state = state


@dataclass(frozen=True)
class Accepted:
    record: Any
    trace: tuple[str, ...] = ()

    accepted = True


@dataclass(frozen=True)
class Rejected:
    reason: str

    accepted = False


Outcome = Union[Accepted, Rejected]


def run_trial(
    offset: int,
    decode: Callable[[AttemptContext], Any],
    accept: Optional[Callable[[Any], Optional[str]]] = None,
    trace: bool = False,
) -> Outcome:
    """
    Run one isolated decode trial at `offset`.

    Args:
        offset:  Image offset being tried (recorded on the context).
        decode:  Called with a fresh AttemptContext; returns the decoded
                 object, None for "nothing here", or raises a decode failure.
        accept:  Optional predicate returning a rejection reason, or None
                 to accept.
        trace:   Collect decode log lines into Accepted.trace.
    """
    ctx = AttemptContext(offset=offset, trace=[] if trace else None)
    try:
        record = decode(ctx)
    except TRIAL_FAILURES as e:
        ctx.close(AttemptState.DISCARDED)
        return Rejected(f"{type(e).__name__}: {e}")

    if record is None:
        ctx.close(AttemptState.DISCARDED)
        return Rejected("no match")

    reason = accept(record) if accept else None
    if reason is not None:
        ctx.close(AttemptState.DISCARDED)
        return Rejected(reason)

    lines = tuple(ctx.trace) if ctx.trace is not None else ()
    ctx.close(AttemptState.COMMITTED)
    return Accepted(record, lines)

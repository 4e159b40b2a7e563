"""Unique extension generation for parked mailboxes.

Two layers:

    generate_unique_extension()
        Pure function. Rejection-samples the inclusive range [lower, upper]
        until it draws a value not in the exclusion set. Only looks at the
        exclusion set it is given, never at remote state.

    ParkedExtensionAllocator.commit(write)
        The exclusion set is a snapshot, not a lock: a locally-free candidate
        can still collide with a concurrent writer when it is committed. The
        allocator generates a candidate, awaits write(candidate), and on a
        RemoteRejectionError adds the rejected candidate to the exclusion set
        and tries a fresh one, within a fixed attempt budget. Spending the
        budget raises ExhaustedRetryError.

The allocator lives for one run and keeps every candidate it rejected or
committed, so a later conflict in the same run cannot reuse a parked value.
"""

import logging
import random
from typing import Awaitable, Callable, Iterable, Optional

from ...api.exceptions import ExhaustedRetryError, RemoteRejectionError
from ...api.resilience import retry_with_budget

logger = logging.getLogger(__name__)

EXHAUSTED_MESSAGE = "unable to find a free parked extension"


def _in_range_values(excluded: Iterable[str], lower: int, upper: int) -> set[int]:
    values = set()
    for item in excluded:
        try:
            value = int(str(item).strip())
        except ValueError:
            continue
        if lower <= value <= upper:
            values.add(value)
    return values


def generate_unique_extension(
    lower: int,
    upper: int,
    excluded: Iterable[str],
    rng: Optional[random.Random] = None,
    exhausted_message: Optional[str] = None,
) -> str:
    """Draw an extension from [lower, upper] that is not excluded.

    Args:
        lower: Inclusive lower bound
        upper: Inclusive upper bound
        excluded: Extensions already taken. Non-numeric and out-of-range
            entries are ignored.
        rng: Random source (seeded in tests)
        exhausted_message: Error message when the range has no free value

    Returns:
        The extension as a decimal string

    Raises:
        ValueError: If lower > upper
        ExhaustedRetryError: If every value in the range is excluded
    """
    if lower > upper:
        raise ValueError(f"Invalid extension range: {lower}-{upper}")

    rng = rng or random.Random()
    taken = _in_range_values(excluded, lower, upper)
    size = upper - lower + 1

    if len(taken) >= size:
        raise ExhaustedRetryError(
            exhausted_message or f"No free extension left in range {lower}-{upper}",
            attempts=0,
            details={"lower": lower, "upper": upper, "excluded": len(taken)},
        )

    while True:
        candidate = rng.randint(lower, upper)
        if candidate not in taken:
            return str(candidate)


class ParkedExtensionAllocator:
    """Commits claimants to parked extensions for the duration of one run.

    Usage:
        allocator = ParkedExtensionAllocator(9000, 9999, roster_extensions)
        parked = await allocator.commit(lambda ext: action.run(..., ext))
    """

    def __init__(
        self,
        lower: int,
        upper: int,
        excluded: Iterable[str] = (),
        max_attempts: int = 10,
        rng: Optional[random.Random] = None,
    ):
        if lower > upper:
            raise ValueError(f"Invalid extension range: {lower}-{upper}")
        self.lower = lower
        self.upper = upper
        self.max_attempts = max_attempts
        self._rng = rng or random.Random()
        self._excluded: set[str] = {str(e).strip() for e in excluded if str(e).strip()}

    @property
    def excluded(self) -> frozenset[str]:
        """Snapshot of every extension this run must not hand out."""
        return frozenset(self._excluded)

    def exclude(self, extension: str) -> None:
        self._excluded.add(str(extension))

    def next_candidate(self) -> str:
        """Generate a candidate without committing it."""
        return generate_unique_extension(
            self.lower,
            self.upper,
            self._excluded,
            self._rng,
            exhausted_message=EXHAUSTED_MESSAGE,
        )

    async def commit(self, write: Callable[[str], Awaitable[object]]) -> str:
        """Commit a fresh parked extension through write().

        Args:
            write: Awaitable taking the candidate. Raising RemoteRejectionError
                marks the candidate as taken and consumes one attempt.

        Returns:
            The committed extension

        Raises:
            ExhaustedRetryError: If no candidate committed within the budget
                (or the range ran out of free values)
        """
        state = {"candidate": self.next_candidate()}

        async def attempt(number: int) -> str:
            candidate = state["candidate"]
            logger.info(
                f"Committing parked extension [{candidate}] "
                f"(attempt {number}/{self.max_attempts})"
            )
            await write(candidate)
            return candidate

        def on_rejected(exc: Exception, number: int) -> None:
            rejected = state["candidate"]
            self.exclude(rejected)
            state["candidate"] = self.next_candidate()
            logger.info(
                f"Parked extension [{rejected}] was rejected, "
                f"retrying with [{state['candidate']}]"
            )

        try:
            committed = await retry_with_budget(
                attempt,
                max_attempts=self.max_attempts,
                retryable_exceptions=(RemoteRejectionError,),
                on_retry=on_rejected,
                exhausted_message=EXHAUSTED_MESSAGE,
            )
        except ExhaustedRetryError:
            self.exclude(state["candidate"])
            raise

        self.exclude(committed)
        return committed

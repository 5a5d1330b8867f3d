from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_CHAIN_DEPTH = 5
DEFAULT_CHAIN_BREAK_COOLDOWN_SECONDS = 5


@dataclass(frozen=True)
class DispatchDecision:
    immediate: bool
    delay_seconds: int
    depth: int
    reason: str


class BackoffPolicy:
    """Fixed delay between attempts; 0 asks for an immediate re-dispatch."""

    def __init__(self, *, delay_seconds: int) -> None:
        self._delay_seconds = max(0, int(delay_seconds))

    def delay_before_retry(self) -> int:
        return self._delay_seconds


class ChainDepthGuard:
    """Caps consecutive immediate re-dispatches before a scheduled cooldown.

    ``depth`` counts immediate hops since the last scheduled restart. Once it
    reaches ``max_depth`` the chain is broken through the scheduled path and
    the next hop starts again at depth 1.
    """

    def __init__(
        self,
        *,
        max_depth: int = DEFAULT_MAX_CHAIN_DEPTH,
        cooldown_seconds: int = DEFAULT_CHAIN_BREAK_COOLDOWN_SECONDS,
    ) -> None:
        self._max_depth = max(1, int(max_depth))
        self._cooldown_seconds = max(1, int(cooldown_seconds))

    @property
    def max_depth(self) -> int:
        return self._max_depth

    def route(self, *, depth: int, delay_seconds: int) -> DispatchDecision:
        if delay_seconds > 0:
            return DispatchDecision(
                immediate=False,
                delay_seconds=int(delay_seconds),
                depth=1,
                reason="backoff_delay",
            )
        if depth < self._max_depth:
            return DispatchDecision(
                immediate=True,
                delay_seconds=0,
                depth=depth + 1,
                reason="immediate",
            )
        return DispatchDecision(
            immediate=False,
            delay_seconds=self._cooldown_seconds,
            depth=1,
            reason="chain_depth_cooldown",
        )

"""
Initial Driver-State Bootstrap

The driver-state estimator may not be ready when the orchestrator starts.
Poll it with exponential backoff (100 ms * 2^attempt between attempts)
inside an overall timeout, then fall back to the default state
(stress 20, focus 80) with a warning.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

from drivesafe.config import SafetyConfig
from drivesafe.models.context import DriverState


DriverStateSource = Callable[[], Union[Any, Awaitable[Any], None]]


async def fetch_driver_state(source: DriverStateSource,
                             max_attempts: int = 5,
                             base_delay: float = 0.1,
                             timeout: float = 5.0) -> Optional[Any]:
    """
    Poll source until it yields a state

    Args:
        source: Callable returning a driver state (or an awaitable of one),
            None while not ready
        max_attempts: Number of polls
        base_delay: Delay before the second poll; doubles each retry
        timeout: Overall bound in seconds

    Returns:
        The first non-None state, or None when attempts or time run out
    """

    async def _poll():
        for attempt in range(max_attempts):
            try:
                state = source()
                if inspect.isawaitable(state):
                    state = await state
            except Exception as e:
                print(f"[BOOTSTRAP] Driver state source error "
                      f"(attempt {attempt + 1}/{max_attempts}): {e}")
                state = None

            if state is not None:
                return state

            if attempt < max_attempts - 1:
                await asyncio.sleep(base_delay * (2 ** attempt))

        return None

    try:
        return await asyncio.wait_for(_poll(), timeout=timeout)
    except asyncio.TimeoutError:
        print(f"[BOOTSTRAP] Driver state fetch timed out after {timeout:.1f}s")
        return None


async def bootstrap_driver_state(source: Optional[DriverStateSource],
                                 config: SafetyConfig = None) -> Tuple[Any, bool]:
    """
    Resolve the initial driver state

    Returns:
        (state, from_source) where state is the default DriverState when
        the source never answered
    """
    config = config or SafetyConfig()
    default = DriverState(stress=config.default_driver_stress,
                          focus=config.default_driver_focus)

    if source is None:
        return default, False

    state = await fetch_driver_state(
        source,
        max_attempts=config.bootstrap_max_attempts,
        base_delay=config.bootstrap_base_delay_sec,
        timeout=config.bootstrap_timeout_sec,
    )

    if state is None:
        print("[WARN] Failed to fetch initial driver state after retries, using defaults "
              f"(stress={default.stress:.0f}, focus={default.focus:.0f})")
        return default, False

    print("[BOOTSTRAP] Initial driver state loaded")
    return state, True

"""
In-Process Event Bus

Event names and a synchronous publish/subscribe bus connecting the risk
engine, the prediction scheduler, the safety orchestrator and any UI or
analytics consumers.

Handlers run to completion in subscription order on the emitting call
stack. A failing handler is logged and never stops its siblings.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class EventType(str, Enum):
    """Event names used on the bus"""

    # Prediction
    PREDICTION_TICK = "ai:predictionTick"
    RISK_UPDATE = "ai:riskUpdate"

    # Inputs from external collaborators
    WEATHER_UPDATED = "weather:updated"
    DRIVER_STATE_CHANGED = "emotion:stateChanged"

    # Safety outputs
    SAFETY_ALERT = "safety:alert"
    HUD_FLASH = "safety:hudFlash"
    WEATHER_ADAPTED = "safety:weatherAdapted"
    DRIVER_STATE_ADAPTED = "safety:driverStateAdapted"


EventHandler = Callable[[Any], None]


class Subscription:
    """One registration of a handler; identity, not equality, removes it"""

    __slots__ = ('handler', 'active')

    def __init__(self, handler: EventHandler):
        self.handler = handler
        self.active = True


class EventBus:
    """
    Observer registry keyed by event name

    Registering the same handler twice yields two independent
    subscriptions; each unsubscribe callable removes only its own.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(EventType.RISK_UPDATE, on_risk)
        bus.emit(EventType.RISK_UPDATE, update)
        unsubscribe()   # safe to call again, or after clear()
    """

    def __init__(self):
        self._listeners: Dict[str, List[Subscription]] = {}

    @staticmethod
    def _key(event) -> str:
        return event.value if isinstance(event, EventType) else str(event)

    def subscribe(self, event, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler

        Returns:
            Idempotent unsubscribe callable bound to this registration
        """
        key = self._key(event)
        subscription = Subscription(handler)
        self._listeners.setdefault(key, []).append(subscription)

        def unsubscribe():
            self._remove(key, subscription)

        return unsubscribe

    def unsubscribe(self, event, handler: EventHandler):
        """Remove the oldest live registration of handler; no-op if none"""
        key = self._key(event)
        for subscription in self._listeners.get(key, ()):
            if subscription.handler == handler:
                self._remove(key, subscription)
                return

    def _remove(self, key: str, subscription: Subscription):
        if not subscription.active:
            return
        subscription.active = False

        subscriptions = self._listeners.get(key)
        if not subscriptions:
            return
        # Identity match: equal bound methods from other registrations stay
        self._listeners[key] = [s for s in subscriptions if s is not subscription]
        if not self._listeners[key]:
            del self._listeners[key]

    def emit(self, event, payload: Any = None):
        """Deliver payload to every handler of event"""
        key = self._key(event)
        # Snapshot so handlers may (un)subscribe while being called
        for subscription in list(self._listeners.get(key, ())):
            try:
                subscription.handler(payload)
            except Exception as e:
                print(f"[EVENTS] Error in handler for {key}: {e}")

    def clear(self):
        """Drop every subscription"""
        for subscriptions in self._listeners.values():
            for subscription in subscriptions:
                subscription.active = False
        self._listeners.clear()

    def get_listener_count(self, event: Optional[Any] = None) -> int:
        """Handlers for one event, or across all events"""
        if event is not None:
            return len(self._listeners.get(self._key(event), ()))
        return sum(len(h) for h in self._listeners.values())


# Global event bus instance
_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus (created on first use)"""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus

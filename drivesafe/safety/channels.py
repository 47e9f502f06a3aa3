"""
Alert Dispatch Channels

Sinks for the three driver-facing channels (voice, haptic, HUD flash) plus
an optional analytics sink, and the dispatcher that fires them.

Each channel is dispatched independently: a failing channel is logged and
never blocks its siblings. Sinks are fire-and-forget; a sink that returns
an awaitable is scheduled on the running loop and never awaited here.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, Optional, Set, Union

from drivesafe.config import SafetyConfig
from drivesafe.events import EventBus, EventType
from drivesafe.models.safety import (
    AlertLevel,
    HapticPattern,
    HapticPreferences,
    SafetyAlert,
)


class VoiceAnnouncer:
    """Speech output; override announce() to hook up a TTS engine"""

    def announce(self, message: str, options: Dict[str, Any]):
        print(f"[VOICE] ({options.get('priority')}) {message}")


class HapticActuator:
    """Vibration output; override vibrate() to drive the motor"""

    def vibrate(self, pattern: str, intensity: float):
        print(f"[HAPTIC] {pattern} x{intensity:.2f}")


class HUDFlash:
    """Visual flash output"""

    def trigger(self, options: Dict[str, Any]):
        print(f"[HUD] Flash {options.get('color')} for {options.get('durationMs')}ms")


class EventBusHUDFlash(HUDFlash):
    """HUD flash published as a safety:hudFlash event for UI components"""

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus

    def trigger(self, options: Dict[str, Any]):
        self.event_bus.emit(EventType.HUD_FLASH, dict(options))


class AnalyticsSink:
    """Receives every dispatched alert"""

    def record(self, alert: SafetyAlert):
        pass


PreferencesSource = Union[HapticPreferences, Callable[[], HapticPreferences]]


class AlertDispatcher:
    """
    Fire one SafetyAlert across all channels

    Channels:
    - voice:     always
    - haptic:    when the alert has a pattern and the user enabled haptics
    - hud:       critical alerts only (requires_hud_flash)
    - analytics: always, if a sink is configured
    """

    def __init__(self,
                 voice: VoiceAnnouncer = None,
                 haptics: HapticActuator = None,
                 hud: HUDFlash = None,
                 analytics: AnalyticsSink = None,
                 preferences: PreferencesSource = None,
                 config: SafetyConfig = None):
        """
        Initialize dispatcher

        Args:
            voice: Voice announcer sink
            haptics: Haptic actuator sink
            hud: HUD flash sink
            analytics: Analytics sink (optional)
            preferences: HapticPreferences or a callable returning them
            config: SafetyConfig (cooldowns used as voice throttle, flash style)
        """
        self.voice = voice
        self.haptics = haptics
        self.hud = hud
        self.analytics = analytics
        self.config = config or SafetyConfig()
        self._preferences = preferences

        # Awaitables returned by async sinks, held until done
        self._pending: Set[asyncio.Future] = set()

        # Statistics
        self.channel_failures: Dict[str, int] = {'voice': 0, 'haptic': 0, 'hud': 0, 'analytics': 0}

    def get_preferences(self) -> HapticPreferences:
        source = self._preferences
        if source is None:
            return HapticPreferences()
        if callable(source):
            try:
                return source() or HapticPreferences()
            except Exception as e:
                print(f"[DISPATCH] Preferences unavailable, using defaults: {e}")
                return HapticPreferences()
        return source

    def dispatch(self, alert: SafetyAlert) -> Dict[str, bool]:
        """
        Fire every applicable channel

        Returns:
            channel -> whether the sink was invoked without raising
        """
        results = {}

        if self.voice:
            results['voice'] = self._fire('voice', self.voice.announce,
                                          alert.message, self.build_voice_options(alert))

        if self.haptics and alert.haptic_pattern != HapticPattern.NONE:
            preferences = self.get_preferences()
            if preferences.haptics_enabled:
                results['haptic'] = self._fire('haptic', self.haptics.vibrate,
                                               alert.haptic_pattern.value,
                                               preferences.haptics_intensity)

        if self.hud and alert.requires_hud_flash:
            results['hud'] = self._fire('hud', self.hud.trigger, {
                'color': self.config.hud_flash_color,
                'durationMs': self.config.hud_flash_duration_ms
            })

        if self.analytics:
            results['analytics'] = self._fire('analytics', self.analytics.record, alert)

        return results

    def build_voice_options(self, alert: SafetyAlert) -> Dict[str, Any]:
        """announce() options: priority, critical flag, throttle and dedupe key"""
        return {
            'priority': 'high' if alert.level == AlertLevel.CRITICAL else 'normal',
            'isCritical': alert.level == AlertLevel.CRITICAL,
            'throttleMs': int(self.config.cooldown_for(alert.level.value) * 1000),
            'entityId': f"safety-{alert.level.value}"
        }

    def _fire(self, channel: str, func: Callable, *args) -> bool:
        try:
            result = func(*args)
        except Exception as e:
            self.channel_failures[channel] += 1
            print(f"[DISPATCH] Error on {channel} channel: {e}")
            return False

        if inspect.isawaitable(result):
            self._schedule(channel, result)
        return True

    def _schedule(self, channel: str, awaitable):
        """Run an async sink in the background"""
        try:
            loop = asyncio.get_running_loop()
            future = asyncio.ensure_future(awaitable, loop=loop)
        except RuntimeError as e:
            # No running loop to host the coroutine
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.channel_failures[channel] += 1
            print(f"[DISPATCH] Cannot schedule async {channel} sink: {e}")
            return

        self._pending.add(future)
        future.add_done_callback(lambda f: self._on_done(channel, f))

    def _on_done(self, channel: str, future: asyncio.Future):
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.channel_failures[channel] += 1
            print(f"[DISPATCH] Async {channel} sink failed: {error}")

    def cancel_pending(self):
        """Cancel in-flight async sink calls"""
        for future in list(self._pending):
            future.cancel()
        self._pending.clear()

    def get_statistics(self) -> dict:
        return {
            'pending': len(self._pending),
            'channelFailures': dict(self.channel_failures)
        }

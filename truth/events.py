"""
Event Emitter
=============

Named-event publish/subscribe used by stores to announce ``change``, ``destroy``
and ``empty``. Subscribing returns a ``Subscription`` handle; the handle is the only
thing a subscriber needs to keep in order to release the listener later.

Delivery is synchronous and in subscription order. Listeners registered or
released while an event is being emitted take effect from the next emit, except
that a released listener is never called again, even later in the same emit.
Exceptions raised by listeners propagate to the emitter's caller.
"""

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional


class Subscription:
    """
    Handle for one listener on one event.

    Provides methods to pause, resume, and unsubscribe.
    """

    def __init__(
        self,
        emitter: "EventEmitter",
        event: str,
        callback: Callable[..., Any],
        once: bool = False,
    ):
        self.event = event
        self.callback = callback
        self.once = once
        self.active = True
        self.released = False
        self._emitter = emitter

    def pause(self) -> None:
        """Pause this subscription (stop receiving notifications)."""
        self.active = False

    def resume(self) -> None:
        """Resume this subscription unless it was released."""
        if not self.released:
            self.active = True

    def unsubscribe(self) -> bool:
        """Release the listener. Returns False if it was already released."""
        if self.released:
            return False
        self._emitter._release(self)
        return True

    def notify(self, *args: Any) -> None:
        if not self.active or self.released:
            return
        if self.once:
            self.unsubscribe()
        self.callback(*args)

    def __repr__(self) -> str:
        state = "released" if self.released else ("active" if self.active else "paused")
        name = getattr(self.callback, "__name__", repr(self.callback))
        return f"Subscription({self.event!r}, {name}, {state})"


class EventEmitter:
    """
    Minimal named-event emitter.

    Usage:
        emitter = EventEmitter()
        sub = emitter.on("change", lambda *args: print(args))
        emitter.emit("change", [], [], ())
        sub.unsubscribe()
    """

    def __init__(self):
        self._listeners: Dict[str, List[Subscription]] = defaultdict(list)

    def on(self, event: str, callback: Callable[..., Any]) -> Subscription:
        """Subscribe ``callback`` to every future ``event``."""
        return self._subscribe(event, callback, once=False)

    def once(self, event: str, callback: Callable[..., Any]) -> Subscription:
        """Subscribe ``callback`` to the next ``event`` only."""
        return self._subscribe(event, callback, once=True)

    def off(self, event: str, callback: Optional[Callable[..., Any]] = None) -> int:
        """
        Release listeners of ``event``.

        With a callback only the subscriptions made with that exact callable are
        released; without one, every listener of the event is. Returns the number
        of released subscriptions.
        """
        released = 0
        for subscription in list(self._listeners.get(event, ())):
            if callback is None or subscription.callback is callback:
                subscription.unsubscribe()
                released += 1
        return released

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of ``event``; returns whether any listener existed."""
        listeners = tuple(self._listeners.get(event, ()))
        for subscription in listeners:
            subscription.notify(*args)
        return bool(listeners)

    def listeners(self, event: str) -> List[Subscription]:
        return list(self._listeners.get(event, ()))

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        """Release every listener of every event."""
        for event in list(self._listeners):
            self.off(event)
        self._listeners.clear()

    def _subscribe(self, event: str, callback: Callable[..., Any], once: bool) -> Subscription:
        if not callable(callback):
            raise TypeError(f"Listener for {event!r} must be callable, got {callback!r}")
        subscription = Subscription(self, event, callback, once=once)
        self._listeners[event].append(subscription)
        return subscription

    def _release(self, subscription: Subscription) -> None:
        subscription.active = False
        subscription.released = True
        listeners = self._listeners.get(subscription.event)
        if listeners is None:
            return
        try:
            listeners.remove(subscription)
        except ValueError:
            pass
        if not listeners:
            del self._listeners[subscription.event]

"""Change notification shared by the stateful ledger components."""

from __future__ import annotations

from typing import Callable, List


ChangeListener = Callable[[str], None]


class ChangeNotifier:
    """Mixin that lets the persistence layer observe every mutation."""

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable removes it again."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, reason: str) -> None:
        for listener in list(self._listeners):
            listener(reason)

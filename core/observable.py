"""
Observable state holder used to publish session and connectivity changes
"""

from typing import Callable, Generic, List, TypeVar

from .logging_config import get_logger

T = TypeVar("T")

Listener = Callable[[T, T], None]


class ObservableValue(Generic[T]):
    """Holds a single current value and notifies listeners on every change.

    Listeners receive ``(old_value, new_value)``. Setting a value equal to the
    current one is not a change and notifies nobody.
    """

    def __init__(self, initial: T, name: str = "value"):
        self.logger = get_logger(__name__)
        self.name = name
        self._value = initial
        self._listeners: List[Listener] = []
        self.change_count = 0

    @property
    def value(self) -> T:
        return self._value

    def get(self) -> T:
        """Get current value"""
        return self._value

    def set(self, new_value: T) -> bool:
        """
        Replace the current value

        Returns:
            True if the value changed and listeners were notified
        """
        old_value = self._value
        if new_value == old_value:
            return False

        self._value = new_value
        self.change_count += 1
        self._notify(old_value, new_value)
        return True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe():
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, old_value: T, new_value: T) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(old_value, new_value)
            except Exception as e:
                self.logger.error(f"Error in {self.name} listener: {e}", exc_info=True)

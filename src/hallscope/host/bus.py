"""Fan-out of host notifications to in-process subscribers.

The notification listener puts every `Notification` it receives on the bus;
components subscribe by notification class (or by its `type` string) and get
an unsubscribe handle back.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Type, TypeVar, Union

from loguru import logger

from hallscope.types import Notification

N = TypeVar("N", bound=Notification)


class EventBus:
    def __init__(self):
        self._subscribers: dict[str, list[Callable[[Notification], None]]] = (
            defaultdict(list)
        )

    @staticmethod
    def _key(notif_type: Union[str, Type[Notification]]) -> str:
        if isinstance(notif_type, str):
            return notif_type
        # the discriminator default on the subclass
        return notif_type.__dataclass_fields__["type"].default

    def subscribe(
        self,
        notif_type: Union[str, Type[N]],
        callback: Callable[[N], None],
    ) -> Callable[[], None]:
        key = self._key(notif_type)
        self._subscribers[key].append(callback)
        logger.trace("Subscribed {} to '{}'.", callback, key)

        def unsubscribe():
            try:
                self._subscribers[key].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, notif: Notification) -> None:
        for callback in list(self._subscribers.get(notif.type, ())):
            try:
                callback(notif)
            except Exception:
                logger.exception("Error in subscriber for '{}'.", notif.type)

    def subscriber_count(self, notif_type: Union[str, Type[Notification]]) -> int:
        return len(self._subscribers.get(self._key(notif_type), ()))

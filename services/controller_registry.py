from collections import OrderedDict
from typing import Callable, Optional

from core.config import settings
from core.logger import logger
from services.attempt_controller import AttemptController, AttemptState


class ControllerRegistry:
    """
    One live attempt controller per bot user.

    At most MAX_OPEN_QUIZ_VIEWS controllers are kept. When a new one would
    exceed that, the least recently used controller without a running attempt
    is torn down, or the least recently used one when every attempt is running.
    A torn down attempt stays resumable from the session store.
    """
    _instance = None
    _controllers: "OrderedDict[int, AttemptController]" = OrderedDict()

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ControllerRegistry, cls).__new__(cls)
        return cls._instance

    def __len__(self):
        return len(self._controllers)

    def get(self, user_id: int) -> Optional[AttemptController]:
        controller = self._controllers.get(user_id)
        if controller is not None:
            self._controllers.move_to_end(user_id)
        return controller

    def register(self, user_id: int, controller: AttemptController):
        """Register a controller for a user, tearing down any previous one."""
        current = self._controllers.get(user_id)
        if current is not None and current is not controller:
            current.teardown()
            logger.debug("Replaced quiz controller", user_id=user_id, content_id=current.content_id)
        self._controllers[user_id] = controller
        self._controllers.move_to_end(user_id)
        self._evict(keep=user_id)

    def _evict(self, keep: int):
        while len(self._controllers) > settings.MAX_OPEN_QUIZ_VIEWS:
            candidates = [uid for uid in self._controllers if uid != keep]
            if not candidates:
                return
            idle = [uid for uid in candidates if self._controllers[uid].state != AttemptState.IN_PROGRESS]
            user_id = (idle or candidates)[0]
            controller = self._controllers.pop(user_id)
            controller.teardown()
            logger.info("Evicted quiz controller", user_id=user_id, content_id=controller.content_id,
                        state=controller.state)

    def open(self, user_id: int, content_id: str,
             factory: Callable[[], AttemptController]) -> AttemptController:
        """Controller for this user and quiz; built with factory when missing."""
        current = self.get(user_id)
        if current is not None and current.content_id == content_id:
            return current
        controller = factory()
        self.register(user_id, controller)
        return controller

    def remove(self, user_id: int):
        controller = self._controllers.pop(user_id, None)
        if controller is not None:
            controller.teardown()

    def clear(self):
        for user_id in list(self._controllers):
            self.remove(user_id)


registry = ControllerRegistry()

"""
Wizard Session Registry - one WizardController per user
Keeps each user's wizard state (step pointer, pending call, last error) between requests.
"""
import logging
import threading
from typing import Callable, Dict

from .wizard_controller import WizardController

logger = logging.getLogger(__name__)


class WizardSessionRegistry:
    """Registry of wizard controllers keyed by user id"""

    def __init__(self, factory: Callable[[], WizardController]):
        """
        Args:
            factory: Builds a fresh controller for a user's first request
        """
        self._factory = factory
        self._sessions: Dict[str, WizardController] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> WizardController:
        """The user's controller, created on first use"""
        with self._lock:
            controller = self._sessions.get(user_id)
            if controller is None:
                controller = self._factory()
                self._sessions[user_id] = controller
                logger.info(f"Started wizard session for user {user_id}")
            return controller

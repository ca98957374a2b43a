"""
Interaction tracking. Appends behavior events that feed future collaborative and content profiles.
Tracking never raises: failures are logged and reported through the return value.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from common.constants import PATHS
from common.errors import InvalidInput
from common.utils import setup_logging

from .data_models import BehaviorStore, UserBehavior

logger = setup_logging(__name__, PATHS["app_log_file"])

# Interaction type -> stored behavior type
INTERACTION_TYPES = {
    "view": "view",
    "click": "view",
    "purchase": "purchase",
}


class InteractionTracker:
    """Sole writer of UserBehavior records."""

    def __init__(self, behavior_store: BehaviorStore, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.behavior_store = behavior_store
        self._clock = clock

    def track_interaction(
        self,
        user_id: str,
        product_id: str,
        interaction_type: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Append one behavior for user_id. Returns False (after logging) instead of raising."""
        try:
            behavior = self.build_behavior(user_id, product_id, interaction_type, context)
            self.behavior_store.append_user_behavior(user_id, behavior)
        except InvalidInput as e:
            logger.warning(f"Rejected interaction user={user_id!r} product={product_id!r}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to track interaction user={user_id} product={product_id}: {e}")
            return False

        logger.info(f"Tracked {interaction_type} user={user_id} product={product_id}")
        return True

    def build_behavior(
        self,
        user_id: str,
        product_id: str,
        interaction_type: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> UserBehavior:
        if not user_id or not product_id:
            raise InvalidInput("user_id and product_id must be non-empty")
        if interaction_type not in INTERACTION_TYPES:
            raise InvalidInput(f"Unknown interaction type '{interaction_type}'")

        return {
            "type": INTERACTION_TYPES[interaction_type],
            "product_id": product_id,
            "timestamp": self._clock(),
            "value": None,
            "context": dict(context) if context else {"source": "recommendation"},
        }

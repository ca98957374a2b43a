from datetime import datetime, timezone

import pytest

from common.errors import UpstreamFailure
from recommenders import InMemoryBehaviorStore, InteractionTracker

FIXED_NOW = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


class FailingStore(InMemoryBehaviorStore):
    def append_user_behavior(self, user_id, behavior):
        raise UpstreamFailure("disk full")


@pytest.fixture
def store():
    return InMemoryBehaviorStore()


@pytest.fixture
def tracker(store):
    return InteractionTracker(store, clock=lambda: FIXED_NOW)


def test_view_is_recorded_with_default_context(tracker, store):
    assert tracker.track_interaction("u1", "p1", "view") is True

    (behavior,) = store.get_user_behaviors("u1")
    assert behavior == {
        "type": "view",
        "product_id": "p1",
        "timestamp": FIXED_NOW,
        "value": None,
        "context": {"source": "recommendation"},
    }


def test_click_is_stored_as_view_and_keeps_context(tracker, store):
    assert tracker.track_interaction("u1", "p2", "click", {"source": "email", "position": 3})

    (behavior,) = store.get_user_behaviors("u1")
    assert behavior["type"] == "view"
    assert behavior["context"] == {"source": "email", "position": 3}


def test_purchase_is_recorded(tracker, store):
    tracker.track_interaction("u1", "p3", "purchase")
    assert store.get_user_behaviors("u1")[0]["type"] == "purchase"


@pytest.mark.parametrize(
    "user_id,product_id,interaction_type",
    [("", "p1", "view"), ("u1", "", "view"), ("u1", "p1", "wishlist"), ("u1", "p1", "hover")],
)
def test_invalid_interactions_are_rejected_without_raising(tracker, store, user_id, product_id, interaction_type):
    assert tracker.track_interaction(user_id, product_id, interaction_type) is False
    assert store.get_all_user_behaviors() == {}


def test_store_failure_returns_false():
    tracker = InteractionTracker(FailingStore())
    assert tracker.track_interaction("u1", "p1", "view") is False

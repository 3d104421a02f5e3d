from datetime import datetime, timedelta

import pytest

from namaste_loyalty.models.redemption import Redemption
from namaste_loyalty.services.redemption_lifecycle import (
    RedemptionState,
    can_mark_used,
    countdown,
    expires_at_for,
    redemption_state,
    seconds_remaining,
)

CREATED = datetime(2026, 1, 1, 12, 0, 0)


def make_redemption(used=False, expires_at=CREATED + timedelta(minutes=15)):
    return Redemption(used=used, created_at=CREATED, expires_at=expires_at)


def test_expiry_by_category():
    assert expires_at_for("in_store_item", CREATED) == CREATED + timedelta(minutes=15)
    assert expires_at_for("in_store_discount", CREATED) == CREATED + timedelta(minutes=15)
    assert expires_at_for("direct_order_coupon", CREATED) == CREATED + timedelta(days=30)


def test_unknown_category_raises():
    with pytest.raises(ValueError):
        expires_at_for("gift_card", CREATED)


def test_states():
    redemption = make_redemption()
    assert redemption_state(redemption, CREATED) is RedemptionState.ACTIVE
    assert redemption_state(redemption, CREATED + timedelta(minutes=15)) is RedemptionState.EXPIRED
    assert redemption_state(make_redemption(used=True), CREATED) is RedemptionState.USED
    # 已使用优先于过期
    assert redemption_state(make_redemption(used=True), CREATED + timedelta(days=1)) is RedemptionState.USED


def test_countdown():
    redemption = make_redemption()
    assert countdown(redemption, CREATED) == "15:00"
    assert countdown(redemption, CREATED + timedelta(minutes=14, seconds=55)) == "0:05"
    assert countdown(redemption, CREATED + timedelta(minutes=15)) is None
    assert seconds_remaining(redemption, CREATED + timedelta(minutes=15)) == 0


def test_only_active_can_be_marked_used():
    assert can_mark_used(make_redemption(), CREATED)
    assert not can_mark_used(make_redemption(used=True), CREATED)
    assert not can_mark_used(make_redemption(), CREATED + timedelta(hours=1))

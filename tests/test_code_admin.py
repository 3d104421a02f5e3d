import pytest
from sqlalchemy import select

from namaste_loyalty.models.delivery_code import DeliveryCode
from namaste_loyalty.routers.common import ledger_http_error
from namaste_loyalty.services import code_admin, ledger
from namaste_loyalty.services.ledger import LedgerOperationError
from namaste_loyalty.utils.checksum import verify_checksum

from conftest import create_code, create_user


@pytest.mark.anyio
async def test_generate_codes(db):
    batch = await code_admin.generate_codes(db, count=20, prefix="namaste", points_awarded=8, expiry_days=30)

    assert len(batch.codes) == 20
    assert len(set(batch.codes)) == 20
    for code in batch.codes:
        assert code.startswith("NAMASTE-")
        assert len(code) == len("NAMASTE-") + 8 + 1
        assert verify_checksum(code)

    stored = (await db.execute(select(DeliveryCode).where(DeliveryCode.batch_id == batch.batch_id))).scalars().all()
    assert {c.code for c in stored} == set(batch.codes)
    assert all(c.points_awarded == 8 and not c.is_used for c in stored)


@pytest.mark.anyio
async def test_generate_codes_defaults(db):
    batch = await code_admin.generate_codes(db, count=1)
    assert batch.points_awarded == 5
    assert batch.codes[0].startswith("NAMASTE-")


@pytest.mark.anyio
@pytest.mark.parametrize("count", [0, 301])
async def test_generate_codes_rejects_bad_count(db, count):
    with pytest.raises(LedgerOperationError) as exc_info:
        await code_admin.generate_codes(db, count=count)
    assert exc_info.value.error_code == "INVALID_COUNT"


@pytest.mark.anyio
async def test_generate_codes_gives_up_on_collisions(db, monkeypatch):
    monkeypatch.setattr(code_admin, "generate_code_candidate", lambda prefix: "NAMASTE-AAAAAAAAH")

    with pytest.raises(LedgerOperationError) as exc_info:
        await code_admin.generate_codes(db, count=2)
    assert exc_info.value.error_code == "GENERATION_FAILED"
    assert ledger_http_error(exc_info.value).status_code == 503

    remaining = await db.execute(select(DeliveryCode))
    assert remaining.scalars().all() == []


@pytest.mark.anyio
async def test_generated_code_can_be_redeemed(db, limiter):
    user = await create_user(db)
    batch = await code_admin.generate_codes(db, count=1, points_awarded=3)

    result = await ledger.redeem_delivery_code(db, batch.codes[0], user.id, None, limiter)
    assert result.success
    assert result.points_added == 3


@pytest.mark.anyio
async def test_list_codes_filters(db):
    first = await code_admin.generate_codes(db, count=3, prefix="LUNCH")
    await code_admin.generate_codes(db, count=2, prefix="DINNER")

    lunch = await code_admin.list_codes(db, prefix="lunch")
    assert {c.code for c in lunch} == set(first.codes)

    by_batch = await code_admin.list_codes(db, batch_id=first.batch_id, page_size=2)
    assert len(by_batch) == 2

    assert await code_admin.list_codes(db, is_used=True) == []


@pytest.mark.anyio
async def test_invalidated_code_is_rejected_as_expired(db, limiter):
    user = await create_user(db)
    batch = await code_admin.generate_codes(db, count=1)

    invalidated = await code_admin.invalidate_code(db, batch.codes[0].lower())
    assert not invalidated.is_used

    result = await ledger.redeem_delivery_code(db, batch.codes[0], user.id, None, limiter)
    assert result.error_code == "EXPIRED"


@pytest.mark.anyio
async def test_invalidate_errors(db):
    await create_code(db, "NAMASTE-ABC123H", is_used=True)

    with pytest.raises(LedgerOperationError) as exc_info:
        await code_admin.invalidate_code(db, "NAMASTE-ABC123H")
    assert exc_info.value.error_code == "ALREADY_USED"

    with pytest.raises(LedgerOperationError) as exc_info:
        await code_admin.invalidate_code(db, "NAMASTE-NOPE")
    assert exc_info.value.error_code == "INVALID_CODE"

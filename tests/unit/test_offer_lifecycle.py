"""
Offer negotiation: making, accepting, rejecting and expiring offers, then
unlocking contact and completing the transaction.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from app.features.part_requests.domain.errors import (
    NotFound,
    RequestValidationError,
    StateConflict,
)
from app.features.part_requests.domain.models import (
    Actor,
    OfferStatus,
    RequestStatus,
    RequestVisibility,
    UserType,
)

BUYER = Actor(user_id="buyer-1", user_type=UserType.BUYER)
SELLER = Actor(user_id="seller-1", user_type=UserType.SUPPLIER)
OTHER_SELLER = Actor(user_id="seller-2", user_type=UserType.SUPPLIER)
ADMIN = Actor(user_id="admin-1", user_type=UserType.ADMIN)


@pytest.fixture
def parties(store):
    store.add_profile("buyer-1", UserType.BUYER, phone="+233201234567")
    store.add_profile("seller-1", UserType.SUPPLIER, phone="+233501000001", first_name="Kofi")
    store.add_profile("seller-2", UserType.SUPPLIER, phone="+233501000002")
    return store


# MakeOffer


@pytest.mark.asyncio
async def test_supplier_offer_notifies_buyer(store, pipeline, parties):
    request = store.seed_request()

    offer = await pipeline.make_offer(SELLER, request.id, "1250.5", " Genuine part ")

    assert offer.status == OfferStatus.PENDING
    assert offer.price == Decimal("1250.5")
    assert offer.message == "Genuine part"
    [notification] = store.notifications_for("buyer-1")
    assert notification.message == (
        "You received an offer of GHS 1,250.50 for your Brake pads request from a verified supplier!"
    )
    assert notification.event_key == f"new_offer:{offer.id}"


@pytest.mark.asyncio
async def test_buyer_cannot_make_offer(store, pipeline):
    request = store.seed_request(owner_id="someone-else")

    with pytest.raises(NotFound):
        await pipeline.make_offer(BUYER, request.id, 100)


@pytest.mark.asyncio
async def test_supplier_cannot_offer_on_own_request(store, pipeline):
    request = store.seed_request(owner_id="seller-1")

    with pytest.raises(RequestValidationError):
        await pipeline.make_offer(SELLER, request.id, 100)


@pytest.mark.asyncio
async def test_unpublished_request_is_invisible_to_suppliers(store, pipeline):
    request = store.seed_request(visibility=RequestVisibility.PENDING_REVIEW)

    with pytest.raises(NotFound):
        await pipeline.make_offer(SELLER, request.id, 100)


@pytest.mark.parametrize("price", [0, -10, "abc", "NaN", "Infinity"])
@pytest.mark.asyncio
async def test_invalid_price_is_rejected(store, pipeline, price):
    request = store.seed_request()

    with pytest.raises(RequestValidationError) as exc_info:
        await pipeline.make_offer(SELLER, request.id, price)

    assert exc_info.value.field == "price"
    assert store.offers == {}


@pytest.mark.asyncio
async def test_offer_after_acceptance_is_still_allowed_while_offer_received(store, pipeline, parties):
    request = store.seed_request(status=RequestStatus.OFFER_RECEIVED)

    offer = await pipeline.make_offer(OTHER_SELLER, request.id, 90)

    assert offer.status == OfferStatus.PENDING


@pytest.mark.asyncio
async def test_offer_on_completed_request_conflicts(store, pipeline):
    request = store.seed_request(status=RequestStatus.COMPLETED)

    with pytest.raises(StateConflict):
        await pipeline.make_offer(SELLER, request.id, 100)


# AcceptOffer


@pytest.mark.asyncio
async def test_accept_moves_request_and_unlocks_contact_flag(store, pipeline, parties):
    request = store.seed_request()
    offer = store.seed_offer(request.id, seller_id="seller-1")
    sibling = store.seed_offer(request.id, seller_id="seller-2")

    result = await pipeline.accept_offer(BUYER, offer.id)

    assert result.offer.status == OfferStatus.ACCEPTED
    assert result.offer.buyer_id == "buyer-1"
    assert result.offer.contact_unlocked is True
    assert result.request.status == RequestStatus.OFFER_RECEIVED
    assert result.rejected_sibling_ids == []
    assert sibling.status == OfferStatus.PENDING

    keys = sorted((n.user_id, n.event_key) for n in store.notifications)
    assert keys == [
        ("buyer-1", f"contact_unlocked:{offer.id}"),
        ("buyer-1", f"offer_accepted:{offer.id}"),
        ("seller-1", f"contact_unlocked:{offer.id}"),
        ("seller-1", f"offer_accepted:{offer.id}"),
    ]


@pytest.mark.asyncio
async def test_accept_sends_each_party_the_other_contact(store, pipeline, parties):
    request = store.seed_request()
    offer = store.seed_offer(request.id, seller_id="seller-1")

    await pipeline.accept_offer(BUYER, offer.id)

    buyer_messages = [n.message for n in store.notifications_for("buyer-1")]
    seller_messages = [n.message for n in store.notifications_for("seller-1")]
    assert any("Supplier contact: +233501000001" in m for m in buyer_messages)
    assert any("Customer contact: +233201234567" in m for m in seller_messages)


@pytest.mark.asyncio
async def test_accept_rejects_siblings_when_configured(store, build_pipeline, parties):
    pipeline = build_pipeline(auto_reject_siblings=True)
    request = store.seed_request()
    offer = store.seed_offer(request.id, seller_id="seller-1")
    sibling = store.seed_offer(request.id, seller_id="seller-2")

    result = await pipeline.accept_offer(BUYER, offer.id)

    assert result.rejected_sibling_ids == [sibling.id]
    assert sibling.status == OfferStatus.REJECTED


@pytest.mark.asyncio
async def test_accept_without_unlock_flag_leaves_contact_locked(store, build_pipeline, parties):
    pipeline = build_pipeline(unlock_contact_on_accept=False)
    request = store.seed_request()
    offer = store.seed_offer(request.id)

    result = await pipeline.accept_offer(BUYER, offer.id)

    assert result.offer.contact_unlocked is False
    assert all("contact" not in n.message for n in store.notifications)


@pytest.mark.asyncio
async def test_concurrent_accepts_on_one_request_have_a_single_winner(store, pipeline, parties):
    request = store.seed_request()
    first = store.seed_offer(request.id, seller_id="seller-1")
    second = store.seed_offer(request.id, seller_id="seller-2")

    results = await asyncio.gather(
        pipeline.accept_offer(BUYER, first.id),
        pipeline.accept_offer(BUYER, second.id),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, StateConflict)]
    assert len(winners) == 1
    assert len(losers) == 1

    accepted = [o for o in store.offers.values() if o.status == OfferStatus.ACCEPTED]
    assert len(accepted) == 1
    assert request.status == RequestStatus.OFFER_RECEIVED


@pytest.mark.asyncio
async def test_second_accept_of_same_offer_conflicts(store, pipeline, parties):
    request = store.seed_request()
    offer = store.seed_offer(request.id)
    await pipeline.accept_offer(BUYER, offer.id)

    with pytest.raises(StateConflict):
        await pipeline.accept_offer(BUYER, offer.id)


@pytest.mark.asyncio
async def test_only_owner_or_admin_can_accept(store, pipeline, parties):
    request = store.seed_request()
    offer = store.seed_offer(request.id)

    with pytest.raises(NotFound):
        await pipeline.accept_offer(OTHER_SELLER, offer.id)

    result = await pipeline.accept_offer(ADMIN, offer.id)
    assert result.offer.buyer_id == "buyer-1"


@pytest.mark.asyncio
async def test_accept_on_cancelled_request_conflicts(store, pipeline):
    request = store.seed_request(status=RequestStatus.CANCELLED)
    offer = store.seed_offer(request.id)

    with pytest.raises(StateConflict):
        await pipeline.accept_offer(BUYER, offer.id)


# RejectOffer


@pytest.mark.asyncio
async def test_reject_offer_notifies_seller(store, pipeline, parties):
    request = store.seed_request()
    offer = store.seed_offer(request.id)

    rejected = await pipeline.reject_offer(BUYER, offer.id)

    assert rejected.status == OfferStatus.REJECTED
    [notification] = store.notifications_for("seller-1")
    assert "declined" in notification.message

    with pytest.raises(StateConflict):
        await pipeline.reject_offer(BUYER, offer.id)


# UnlockContact / CompleteTransaction


@pytest.mark.asyncio
async def test_unlock_before_accept_conflicts(store, pipeline, parties):
    request = store.seed_request()
    offer = store.seed_offer(request.id)

    with pytest.raises(StateConflict):
        await pipeline.unlock_contact(BUYER, offer.id)

    assert request.status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_complete_before_unlock_conflicts(store, build_pipeline, parties):
    pipeline = build_pipeline(unlock_contact_on_accept=False)
    request = store.seed_request()
    offer = store.seed_offer(request.id)
    await pipeline.accept_offer(BUYER, offer.id)

    with pytest.raises(StateConflict):
        await pipeline.complete_transaction(BUYER, offer.id)

    assert request.status == RequestStatus.OFFER_RECEIVED


@pytest.mark.asyncio
async def test_full_negotiation_flow(store, pipeline, parties):
    request = store.seed_request()
    offer = await pipeline.make_offer(SELLER, request.id, "300")
    await pipeline.accept_offer(BUYER, offer.id)

    unlocked = await pipeline.unlock_contact(BUYER, offer.id)

    assert unlocked.request.status == RequestStatus.CONTACT_UNLOCKED
    assert unlocked.offer.contact_unlocked is True
    buyer_messages = [n.message for n in store.notifications_for("buyer-1")]
    seller_messages = [n.message for n in store.notifications_for("seller-1")]
    assert (
        "Payment confirmed! Supplier contact: +233501000001. You can now contact them directly."
        in buyer_messages
    )
    assert "Customer paid for your offer! Customer contact: +233201234567" in seller_messages
    assert sum("Supplier contact" in m for m in buyer_messages) == 1

    store.advance(hours=3)
    completed = await pipeline.complete_transaction(BUYER, offer.id)

    assert completed.request.status == RequestStatus.COMPLETED
    assert completed.offer.transaction_completed is True
    assert completed.offer.completed_at == store.now

    with pytest.raises(StateConflict):
        await pipeline.complete_transaction(BUYER, offer.id)


@pytest.mark.asyncio
async def test_unlock_with_seller_missing_phone_skips_both_parties(store, pipeline):
    store.add_profile("seller-1", UserType.SUPPLIER, phone=None)
    request = store.seed_request()
    offer = store.seed_offer(request.id)
    await pipeline.accept_offer(BUYER, offer.id)
    before = len(store.notifications)

    result = await pipeline.unlock_contact(BUYER, offer.id)

    assert result.request.status == RequestStatus.CONTACT_UNLOCKED
    assert len(store.notifications) == before


# ExpireStaleOffers


@pytest.mark.asyncio
async def test_expire_stale_offers_uses_ttl(store, pipeline):
    request = store.seed_request()
    old = store.seed_offer(request.id, created_at=store.now - timedelta(days=14, minutes=1))
    young = store.seed_offer(request.id, created_at=store.now - timedelta(days=13))

    expired = await pipeline.expire_stale_offers()

    assert [o.id for o in expired] == [old.id]
    assert young.status == OfferStatus.PENDING


@pytest.mark.asyncio
async def test_expired_offer_cannot_be_accepted(store, pipeline):
    request = store.seed_request()
    offer = store.seed_offer(request.id, created_at=store.now - timedelta(days=20))
    await pipeline.expire_stale_offers()

    with pytest.raises(StateConflict):
        await pipeline.accept_offer(BUYER, offer.id)


# CancelRequest / ListOffers


@pytest.mark.asyncio
async def test_owner_can_cancel_open_request(store, pipeline):
    request = store.seed_request(status=RequestStatus.OFFER_RECEIVED)

    cancelled = await pipeline.cancel_request(BUYER, request.id)

    assert cancelled.status == RequestStatus.CANCELLED

    with pytest.raises(StateConflict):
        await pipeline.cancel_request(BUYER, request.id)


@pytest.mark.asyncio
async def test_stranger_cannot_cancel(store, pipeline):
    request = store.seed_request()

    with pytest.raises(NotFound):
        await pipeline.cancel_request(SELLER, request.id)


@pytest.mark.asyncio
async def test_list_offers_scopes_by_caller(store, pipeline):
    request = store.seed_request()
    mine = store.seed_offer(request.id, seller_id="seller-1")
    store.seed_offer(request.id, seller_id="seller-2")

    assert len(await pipeline.list_offers(BUYER, request.id)) == 2
    assert len(await pipeline.list_offers(ADMIN, request.id)) == 2
    assert [o.id for o in await pipeline.list_offers(SELLER, request.id)] == [mine.id]


@pytest.mark.asyncio
async def test_list_offers_on_hidden_request_is_not_found_for_strangers(store, pipeline):
    request = store.seed_request(visibility=RequestVisibility.BLOCKED)

    with pytest.raises(NotFound):
        await pipeline.list_offers(SELLER, request.id)


# GetRequest


@pytest.mark.asyncio
async def test_supplier_sees_published_request_without_moderation(store, pipeline):
    request = store.seed_request()

    detail = await pipeline.get_request(SELLER, request.id)

    assert detail.request.id == request.id
    assert detail.moderation is None


@pytest.mark.parametrize(
    "visibility", [RequestVisibility.PENDING_REVIEW, RequestVisibility.BLOCKED]
)
@pytest.mark.asyncio
async def test_supplier_cannot_see_unpublished_request(store, pipeline, visibility):
    request = store.seed_request(visibility=visibility)

    with pytest.raises(NotFound):
        await pipeline.get_request(SELLER, request.id)


@pytest.mark.asyncio
async def test_other_buyer_cannot_see_published_request(store, pipeline):
    request = store.seed_request(owner_id="buyer-2")

    with pytest.raises(NotFound):
        await pipeline.get_request(BUYER, request.id)

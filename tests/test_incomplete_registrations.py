"""Claiming incomplete registrations for endpoint resolution."""
import asyncio
from datetime import timedelta

from push_registration.services.registration_store import (
    CLAIM_MARKER_PREFIX,
    ReadConsistency,
    RegistrationStore,
    is_claim_marker,
)

from conftest import make_device, make_registration


async def test_claims_registration_with_device_and_no_endpoint(store):
    await store.save(make_registration("T2", make_device()), "A1")
    await store.save(make_registration("T2", make_device()), "A1")

    records = await store.find_incomplete_registrations()

    assert len(records) == 1
    [record] = records
    assert record.token == "T2"
    assert record.endpoint
    assert record.endpoint.startswith(CLAIM_MARKER_PREFIX)
    assert is_claim_marker(record.endpoint)


async def test_registrations_without_device_are_never_claimed(store):
    await store.save(make_registration("no-device"), "A1")

    assert await store.find_incomplete_registrations() == []


async def test_resolved_registrations_are_not_claimed(store):
    await store.save(make_registration("T1", make_device()), "A1")
    await store.save_endpoint("T1", "https://push/abc")

    assert await store.find_incomplete_registrations() == []


async def test_claimed_registrations_are_ordered_by_updated_descending(store, clock):
    for token in ("T1", "T2", "T3"):
        await store.save(make_registration(token, make_device()), "A1")
        clock.advance()

    records = await store.find_incomplete_registrations()

    assert [r.token for r in records] == ["T3", "T2", "T1"]
    assert len({r.endpoint for r in records}) == 1


async def test_each_batch_gets_its_own_marker(store):
    await store.save(make_registration("T1", make_device()), "A1")
    [first] = await store.find_incomplete_registrations()
    await store.save(make_registration("T2", make_device()), "A1")
    [second] = await store.find_incomplete_registrations()

    assert second.token == "T2"
    assert first.endpoint != second.endpoint


async def test_claim_does_not_touch_updated(store, clock):
    saved = await store.save(make_registration("T1", make_device()), "A1")
    clock.advance(10)

    [record] = await store.find_incomplete_registrations()

    assert record.updated == saved.record.updated
    assert record.created == saved.record.created


async def test_claimed_registration_is_not_returned_again(store):
    await store.save(make_registration("T1", make_device()), "A1")

    assert len(await store.find_incomplete_registrations()) == 1
    assert await store.find_incomplete_registrations() == []


async def test_unresolved_claim_stays_stranded_without_lease(store, clock):
    await store.save(make_registration("T1", make_device()), "A1")
    [claimed] = await store.find_incomplete_registrations()
    clock.advance(60 * 60 * 24 * 365)

    assert await store.find_incomplete_registrations() == []
    [record] = await store.find_by_auth_id("A1", consistency=ReadConsistency.PRIMARY)
    assert record.endpoint == claimed.endpoint


async def test_resolver_overwrites_marker_with_real_endpoint(store):
    await store.save(make_registration("T1", make_device()), "A1")
    [claimed] = await store.find_incomplete_registrations()

    assert await store.save_endpoint(claimed.token, "https://push/real") is True

    [record] = await store.find_by_auth_id("A1", consistency=ReadConsistency.PRIMARY)
    assert record.endpoint == "https://push/real"
    assert not is_claim_marker(record.endpoint)


async def test_expired_claim_is_reclaimed_with_lease(database, clock):
    store = RegistrationStore(database, clock=clock, claim_lease=timedelta(minutes=5))
    await store.ensure_indexes()
    await store.save(make_registration("T1", make_device()), "A1")
    [first] = await store.find_incomplete_registrations()

    clock.advance(60)
    assert await store.find_incomplete_registrations() == []

    clock.advance(5 * 60)
    [again] = await store.find_incomplete_registrations()
    assert again.token == "T1"
    assert again.endpoint != first.endpoint


async def test_lease_never_reclaims_resolved_registrations(database, clock):
    store = RegistrationStore(database, clock=clock, claim_lease=timedelta(minutes=5))
    await store.ensure_indexes()
    await store.save(make_registration("T1", make_device()), "A1")
    await store.find_incomplete_registrations()
    await store.save_endpoint("T1", "https://push/real")

    clock.advance(60 * 60)

    assert await store.find_incomplete_registrations() == []


async def test_concurrent_claims_partition_registrations(database, clock):
    first_store = RegistrationStore(database, clock=clock)
    second_store = RegistrationStore(database, clock=clock)
    await first_store.ensure_indexes()
    tokens = {f"T{i}" for i in range(25)}
    for token in tokens:
        await first_store.save(make_registration(token, make_device()), "A1")

    first, second = await asyncio.gather(
        first_store.find_incomplete_registrations(),
        second_store.find_incomplete_registrations(),
    )

    first_tokens = {r.token for r in first}
    second_tokens = {r.token for r in second}
    assert first_tokens.isdisjoint(second_tokens)
    assert first_tokens | second_tokens == tokens


def test_is_claim_marker():
    assert is_claim_marker(f"{CLAIM_MARKER_PREFIX}abc_")
    assert not is_claim_marker("https://push/abc")
    assert not is_claim_marker(None)
    assert not is_claim_marker("")

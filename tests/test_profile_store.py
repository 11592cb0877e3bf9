import pytest

from conftest import settle, start_services
from onthespot.errors import ValidationError
from onthespot.services.profile_store import level_for_points, progress_for_points


@pytest.mark.parametrize(
    "points, level",
    [(0, "Rookie"), (200, "Rookie"), (201, "Pro Spotter"), (500, "Pro Spotter"), (501, "Campus Legend")],
)
def test_level_for_points(points, level):
    assert level_for_points(points) == level


def test_progress_for_points():
    assert progress_for_points(0) == 0
    assert progress_for_points(150) == 0.75
    assert progress_for_points(400) == 0


async def test_points_delta_is_written_atomically(services, store):
    assert services.profile.apply_points_delta(10) is True
    assert services.profile.apply_points_delta(0) is False
    services.profile.record_spot_added()
    await settle(services)

    doc = await store.get("users", "alice")
    assert doc["points"] == 60
    assert doc["spotsAdded"] == 1
    assert services.profile.contribution_points == 60
    assert services.profile.user_level == "Rookie"
    assert services.profile.progress_to_next_level == 0.3


async def test_negative_points_are_rejected(services):
    with pytest.raises(ValidationError):
        services.profile.apply_points_delta(-5)


async def test_signed_out_profile_mutations_are_noops(store):
    services = await start_services(store, user_id=None)
    try:
        assert services.profile.record_status_update() is False
        assert services.profile.save_profile("Nobody") is None
    finally:
        await services.stop()


async def test_save_profile_merges_into_user_document(services, store):
    await store.set("users", "alice", {"hiddenSpots": ["spot-1"], "points": 30})
    await settle(services)

    services.profile.save_profile("Alice Lee", bio="CS major", home_location="Seoul", tags=["coffee"])
    await settle(services)

    doc = await store.get("users", "alice")
    assert doc["name"] == "Alice Lee"
    assert doc["location"] == "Seoul"
    assert doc["tags"] == ["coffee"]
    assert doc["hiddenSpots"] == ["spot-1"]
    assert doc["points"] == 30
    assert services.profile.display_name == "Alice Lee"


async def test_remote_update_overwrites_local_fields(services, store):
    await store.set("users", "alice", {"name": "Renamed", "points": 420})
    await settle(services)

    assert services.profile.display_name == "Renamed"
    assert services.profile.user_level == "Pro Spotter"


async def test_sign_out_resets_profile(services, store):
    await store.set("users", "alice", {"name": "Alice", "points": 99})
    await settle(services)

    services.session.sign_out()
    await settle(services)

    assert services.profile.contribution_points == 0
    assert services.profile.profile.value.user_id is None


async def test_fetch_user_profile_falls_back(services, store):
    await store.set("users", "bob", {"name": "Bob", "bio": "hi", "points": 250})

    bob = await services.profile.fetch_user_profile("bob")
    ghost = await services.profile.fetch_user_profile("ghost")

    assert (bob.name, bob.contribution_points, bob.user_id) == ("Bob", 250, "bob")
    assert (ghost.name, ghost.bio) == ("Unknown User", "No Bio")

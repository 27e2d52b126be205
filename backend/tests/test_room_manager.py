"""Tests for room creation, listing, membership and cascade delete."""
import asyncio

import pytest

from core.errors import CapacityError, ForbiddenError, NotFoundError, ValidationError

pytestmark = pytest.mark.anyio


def member_ids(room):
    return [m.id for m in room.members]


class TestCreateRoom:

    async def test_creator_is_sole_member(self, room_manager):
        room = await room_manager.create_room("general", "", "u1")
        assert room.creator.id == "u1"
        assert member_ids(room) == ["u1"]

    async def test_defaults(self, room_manager):
        room = await room_manager.create_room("general", None, "u1")
        assert room.is_public is True
        assert room.max_members == 50
        assert room.tags == []
        assert room.description == ""

    async def test_creator_and_members_are_resolved(self, room_manager):
        room = await room_manager.create_room("general", "", "u1")
        assert room.creator.display_name == "Ada"
        assert room.creator.avatar_url == "https://example.com/ada.png"
        assert room.members[0].display_name == "Ada"

    async def test_unknown_user_resolves_to_bare_id(self, room_manager):
        room = await room_manager.create_room("general", "", "ghost")
        assert room.creator.id == "ghost"
        assert room.creator.display_name is None

    async def test_name_is_trimmed_and_required(self, room_manager):
        room = await room_manager.create_room("  rust-study  ", "", "u1")
        assert room.name == "rust-study"
        with pytest.raises(ValidationError):
            await room_manager.create_room("   ", "", "u1")

    async def test_creator_required(self, room_manager):
        with pytest.raises(ValidationError):
            await room_manager.create_room("general", "", "")

    async def test_max_members_must_be_positive(self, room_manager):
        with pytest.raises(ValidationError):
            await room_manager.create_room("general", "", "u1", max_members=0)

    async def test_description_is_sanitized(self, room_manager):
        room = await room_manager.create_room("general", "<b>hi</b> ```x<y```", "u1")
        assert room.description == "&lt;b&gt;hi&lt;/b&gt; ```x<y```"


class TestListRooms:

    async def test_only_public_rooms_newest_first(self, room_manager):
        await room_manager.create_room("first", "", "u1")
        await room_manager.create_room("hidden", "", "u1", is_public=False)
        await room_manager.create_room("second", "", "u1")

        rooms, total_pages = await room_manager.list_rooms()
        assert [r.name for r in rooms] == ["second", "first"]
        assert total_pages == 1

    async def test_search_is_case_insensitive_substring(self, room_manager):
        await room_manager.create_room("Rust Study", "", "u1")
        await room_manager.create_room("python", "", "u1")

        rooms, _ = await room_manager.list_rooms(search="rUST")
        assert [r.name for r in rooms] == ["Rust Study"]

    async def test_search_is_literal_not_regex(self, room_manager):
        await room_manager.create_room("c++ club", "", "u1")
        await room_manager.create_room("cpp", "", "u1")

        rooms, _ = await room_manager.list_rooms(search="c++")
        assert [r.name for r in rooms] == ["c++ club"]

    async def test_tag_filter_matches_any(self, room_manager):
        await room_manager.create_room("a", "", "u1", tags=["rust"])
        await room_manager.create_room("b", "", "u1", tags=["go", "python"])
        await room_manager.create_room("c", "", "u1", tags=["java"])

        rooms, _ = await room_manager.list_rooms(tags="python, rust")
        assert sorted(r.name for r in rooms) == ["a", "b"]

    async def test_pagination(self, room_manager):
        for i in range(5):
            await room_manager.create_room(f"room-{i}", "", "u1")

        page1, total_pages = await room_manager.list_rooms(page=1, page_size=2)
        page3, _ = await room_manager.list_rooms(page=3, page_size=2)
        assert total_pages == 3
        assert [r.name for r in page1] == ["room-4", "room-3"]
        assert [r.name for r in page3] == ["room-0"]

    async def test_empty_listing_has_zero_pages(self, room_manager):
        rooms, total_pages = await room_manager.list_rooms()
        assert rooms == []
        assert total_pages == 0

    async def test_rejects_bad_paging(self, room_manager):
        with pytest.raises(ValidationError):
            await room_manager.list_rooms(page=0)
        with pytest.raises(ValidationError):
            await room_manager.list_rooms(page_size=0)


class TestMembership:

    async def test_join_is_idempotent(self, room_manager):
        room = await room_manager.create_room("general", "", "u1")
        once = await room_manager.join_room(room.id, "u2")
        twice = await room_manager.join_room(room.id, "u2")
        assert member_ids(once) == member_ids(twice) == ["u1", "u2"]

    async def test_join_unknown_room(self, room_manager):
        with pytest.raises(NotFoundError):
            await room_manager.join_room("missing", "u2")

    async def test_full_room_rejects_join_and_keeps_members(self, room_manager):
        room = await room_manager.create_room("tiny", "", "u1", max_members=1)
        with pytest.raises(CapacityError):
            await room_manager.join_room(room.id, "u2")
        detail = await room_manager.get_room(room.id)
        assert member_ids(detail) == ["u1"]

    async def test_existing_member_can_rejoin_full_room(self, room_manager):
        room = await room_manager.create_room("tiny", "", "u1", max_members=1)
        again = await room_manager.join_room(room.id, "u1")
        assert member_ids(again) == ["u1"]

    async def test_creator_cannot_leave(self, room_manager):
        room = await room_manager.create_room("general", "", "u1")
        await room_manager.join_room(room.id, "u2")
        with pytest.raises(ForbiddenError):
            await room_manager.leave_room(room.id, "u1")
        detail = await room_manager.get_room(room.id)
        assert member_ids(detail) == ["u1", "u2"]

    async def test_leave_non_member_is_noop(self, room_manager):
        room = await room_manager.create_room("general", "", "u1")
        await room_manager.leave_room(room.id, "u3")
        detail = await room_manager.get_room(room.id)
        assert member_ids(detail) == ["u1"]

    async def test_leave_unknown_room(self, room_manager):
        with pytest.raises(NotFoundError):
            await room_manager.leave_room("missing", "u2")

    async def test_rust_study_scenario(self, room_manager):
        room = await room_manager.create_room("rust-study", "", "u1", max_members=2)
        assert member_ids(room) == ["u1"]

        room = await room_manager.join_room(room.id, "u2")
        assert member_ids(room) == ["u1", "u2"]

        with pytest.raises(CapacityError):
            await room_manager.join_room(room.id, "u3")
        assert member_ids(await room_manager.get_room(room.id)) == ["u1", "u2"]

        with pytest.raises(ForbiddenError):
            await room_manager.leave_room(room.id, "u1")

        await room_manager.leave_room(room.id, "u2")
        assert member_ids(await room_manager.get_room(room.id)) == ["u1"]

    async def test_concurrent_joins_respect_capacity(self, room_manager):
        room = await room_manager.create_room("race", "", "u1", max_members=3)

        results = await asyncio.gather(
            *(room_manager.join_room(room.id, f"user-{i}") for i in range(10)),
            return_exceptions=True,
        )

        joined = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, CapacityError)]
        assert len(joined) == 2
        assert len(refused) == 8
        assert len((await room_manager.get_room(room.id)).members) == 3

    async def test_unknown_rooms_leave_no_locks_behind(self, room_manager):
        for n in range(500):
            with pytest.raises(NotFoundError):
                await room_manager.join_room(f"missing{n}", "u2")
            with pytest.raises(NotFoundError):
                await room_manager.leave_room(f"missing{n}", "u2")

        assert room_manager._locks == {}

    async def test_join_racing_delete_leaves_no_locks_behind(self, room_manager):
        room = await room_manager.create_room("general", "", "u1")

        await asyncio.gather(
            room_manager.delete_room(room.id),
            room_manager.join_room(room.id, "u2"),
            return_exceptions=True,
        )

        with pytest.raises(NotFoundError):
            await room_manager.get_room(room.id)
        assert room_manager._locks == {}


class TestGetAndDelete:

    async def test_get_unknown_room(self, room_manager):
        with pytest.raises(NotFoundError):
            await room_manager.get_room("missing")

    async def test_embedded_view_is_chronological(self, room_manager, message_log):
        room = await room_manager.create_room("general", "", "u1")
        for content in ("m1", "m2", "m3"):
            await message_log.append_message(room.id, "u1", content)

        detail = await room_manager.get_room(room.id)
        assert [m.content for m in detail.messages] == ["m1", "m2", "m3"]
        assert all(m.author.display_name == "Ada" for m in detail.messages)

    async def test_embedded_view_keeps_most_recent_window(self, state, room_manager, message_log):
        room_manager.embedded_message_limit = 3
        room = await room_manager.create_room("general", "", "u1")
        for i in range(5):
            await message_log.append_message(room.id, "u1", f"m{i}")

        detail = await room_manager.get_room(room.id)
        assert [m.content for m in detail.messages] == ["m2", "m3", "m4"]

    async def test_delete_cascades_to_messages(self, state, room_manager, message_log):
        room = await room_manager.create_room("general", "", "u1")
        other = await room_manager.create_room("other", "", "u1")
        await message_log.append_message(room.id, "u1", "bye")
        await message_log.append_message(other.id, "u1", "stay")

        await room_manager.delete_room(room.id)

        with pytest.raises(NotFoundError):
            await room_manager.get_room(room.id)
        assert await message_log.list_messages(room.id) == []
        assert await state.store.count("room_messages", lambda m: m.room_id == room.id) == 0
        assert [m.content for m in await message_log.list_messages(other.id)] == ["stay"]

    async def test_delete_unknown_room(self, room_manager):
        with pytest.raises(NotFoundError):
            await room_manager.delete_room("missing")

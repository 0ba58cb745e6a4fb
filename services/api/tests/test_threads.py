import asyncio

import pytest

from app.errors import ForbiddenError, NotFoundError, TransientStoreError, ValidationError
from app.services.threads import ThreadStore
from app.settings import ReplyDepthPolicy
from app.stores.metrics import NotificationType, UserRole


@pytest.fixture
def cast(store):
    """Project owner, two commenters and a moderator."""
    owner = store.add_user("owner")
    alice = store.add_user("alice")
    bob = store.add_user("bob")
    mod = store.add_user("mod", role=UserRole.MODERATOR)
    project = store.add_project(owner, "Showcase")
    return owner, alice, bob, mod, project


@pytest.mark.asyncio
async def test_create_top_level_comment(store, threads, cast):
    owner, alice, _, _, project = cast

    comment = await threads.create(project.id, alice, "  Nice work  ")

    assert comment.content == "Nice work"
    assert comment.is_top_level
    assert store.projects[project.id].comment_count == 1


@pytest.mark.asyncio
async def test_reply_increments_parent_reply_count_by_one(store, threads, cast):
    owner, alice, bob, _, project = cast
    top = await threads.create(project.id, alice, "Question?")

    reply = await threads.create(project.id, bob, "Answer.", parent_id=top.id)

    parent = store.comments[top.id]
    assert parent.reply_count == 1
    assert parent.reply_ids == [reply.id]
    assert reply.parent_id == top.id
    # comment_count counts replies too
    assert store.projects[project.id].comment_count == 2


@pytest.mark.asyncio
async def test_create_rejects_bad_content(threads, cast):
    _, alice, _, _, project = cast

    with pytest.raises(ValidationError):
        await threads.create(project.id, alice, "   ")
    with pytest.raises(ValidationError):
        await threads.create(project.id, alice, "x" * 1001)


@pytest.mark.asyncio
async def test_create_on_missing_project(threads, cast):
    _, alice, _, _, _ = cast

    with pytest.raises(NotFoundError):
        await threads.create(424242, alice, "hello")


@pytest.mark.asyncio
async def test_create_with_missing_parent(threads, cast):
    _, alice, _, _, project = cast

    with pytest.raises(NotFoundError):
        await threads.create(project.id, alice, "hello", parent_id=424242)


@pytest.mark.asyncio
async def test_create_with_parent_on_other_project(store, threads, cast):
    owner, alice, _, _, project = cast
    other = store.add_project(owner, "Other")
    foreign = await threads.create(other.id, alice, "elsewhere")

    with pytest.raises(ValidationError):
        await threads.create(project.id, alice, "hello", parent_id=foreign.id)


@pytest.mark.asyncio
async def test_reply_to_reply_is_flattened(store, threads, cast):
    _, alice, bob, _, project = cast
    top = await threads.create(project.id, alice, "top")
    reply = await threads.create(project.id, bob, "reply", parent_id=top.id)

    nested = await threads.create(project.id, alice, "nested", parent_id=reply.id)

    assert nested.parent_id == top.id
    assert store.comments[top.id].reply_ids == [reply.id, nested.id]
    assert store.comments[reply.id].reply_count == 0


@pytest.mark.asyncio
async def test_reply_to_reply_is_rejected_under_reject_policy(store, dispatcher, cast):
    _, alice, bob, _, project = cast
    threads = ThreadStore(store, dispatcher, reply_depth_policy=ReplyDepthPolicy.REJECT)
    top = await threads.create(project.id, alice, "top")
    reply = await threads.create(project.id, bob, "reply", parent_id=top.id)

    with pytest.raises(ValidationError):
        await threads.create(project.id, alice, "nested", parent_id=reply.id)

    assert store.comments[top.id].reply_count == 1


@pytest.mark.asyncio
async def test_edit_by_author(threads, cast):
    _, alice, _, _, project = cast
    comment = await threads.create(project.id, alice, "first")

    edited = await threads.edit(comment.id, alice, "second")

    assert edited.content == "second"
    assert edited.is_edited is True
    assert edited.edited_at is not None


@pytest.mark.asyncio
async def test_edit_by_non_author_is_forbidden(threads, cast):
    _, alice, _, mod, project = cast
    comment = await threads.create(project.id, alice, "first")

    with pytest.raises(ForbiddenError):
        await threads.edit(comment.id, mod, "moderated")


@pytest.mark.asyncio
async def test_edit_missing_or_deleted_comment(threads, cast):
    _, alice, _, _, project = cast
    comment = await threads.create(project.id, alice, "first")
    await threads.soft_delete(comment.id, alice)

    with pytest.raises(NotFoundError):
        await threads.edit(comment.id, alice, "again")
    with pytest.raises(NotFoundError):
        await threads.edit(424242, alice, "again")


@pytest.mark.asyncio
async def test_soft_delete_by_author_and_moderator(threads, cast):
    _, alice, bob, mod, project = cast
    first = await threads.create(project.id, alice, "one")
    second = await threads.create(project.id, bob, "two")

    by_author = await threads.soft_delete(first.id, alice)
    by_mod = await threads.soft_delete(second.id, mod)

    assert by_author.is_deleted and by_author.deleted_at is not None
    assert by_mod.is_deleted


@pytest.mark.asyncio
async def test_soft_delete_by_stranger_is_forbidden(threads, cast):
    _, alice, bob, _, project = cast
    comment = await threads.create(project.id, alice, "mine")

    with pytest.raises(ForbiddenError):
        await threads.soft_delete(comment.id, bob)


@pytest.mark.asyncio
async def test_repeat_soft_delete_is_a_no_op(store, threads, cast):
    _, alice, _, _, project = cast
    comment = await threads.create(project.id, alice, "mine")
    deleted = await threads.soft_delete(comment.id, alice)

    again = await threads.soft_delete(comment.id, alice)

    assert again.deleted_at == deleted.deleted_at
    assert store.calls["mark_comment_deleted"] == 1


@pytest.mark.asyncio
async def test_soft_delete_keeps_replies_and_counts(store, threads, cast):
    _, alice, bob, _, project = cast
    top = await threads.create(project.id, alice, "top")
    replies = [await threads.create(project.id, bob, f"r{i}", parent_id=top.id) for i in range(3)]

    await threads.soft_delete(top.id, alice)

    page = await threads.list_thread(project.id)
    assert len(page.comments) == 1
    tombstone = page.comments[0]
    assert tombstone.is_deleted is True
    assert tombstone.content is None
    assert tombstone.metrics.reply_count == 3
    assert [r.id for r in tombstone.replies] == [r.id for r in replies]
    assert store.projects[project.id].comment_count == 4


@pytest.mark.asyncio
async def test_deleted_comment_without_replies_is_not_listed(threads, cast):
    _, alice, _, _, project = cast
    kept = await threads.create(project.id, alice, "kept")
    gone = await threads.create(project.id, alice, "gone")

    await threads.soft_delete(gone.id, alice)

    page = await threads.list_thread(project.id)
    assert [c.id for c in page.comments] == [kept.id]
    assert page.pagination.total == 1


@pytest.mark.asyncio
async def test_deleted_reply_is_rendered_as_tombstone(threads, cast):
    _, alice, bob, _, project = cast
    top = await threads.create(project.id, alice, "top")
    reply = await threads.create(project.id, bob, "oops", parent_id=top.id)

    await threads.soft_delete(reply.id, bob)

    page = await threads.list_thread(project.id)
    rendered = page.comments[0].replies[0]
    assert rendered.id == reply.id
    assert rendered.is_deleted is True
    assert rendered.content is None


@pytest.mark.asyncio
async def test_toggle_like_twice_restores_like_count(store, threads, cast):
    _, alice, bob, _, project = cast
    comment = await threads.create(project.id, alice, "like me")

    liked, count = await threads.toggle_like(comment.id, bob.id)
    assert (liked, count) == (True, 1)
    liked, count = await threads.toggle_like(comment.id, bob.id)
    assert (liked, count) == (False, 0)
    assert store.comments[comment.id].like_count == 0
    assert not await store.has_liked(comment.id, bob.id)


@pytest.mark.asyncio
async def test_concurrent_likes_from_different_users_all_count(store, threads, cast):
    _, alice, _, _, project = cast
    comment = await threads.create(project.id, alice, "popular")
    likers = [store.add_user(f"fan{i}") for i in range(5)]

    await asyncio.gather(*(threads.toggle_like(comment.id, fan.id) for fan in likers))

    assert store.comments[comment.id].like_count == 5


@pytest.mark.asyncio
async def test_like_deleted_comment(threads, cast):
    _, alice, bob, _, project = cast
    comment = await threads.create(project.id, alice, "bye")
    await threads.soft_delete(comment.id, alice)

    with pytest.raises(NotFoundError):
        await threads.toggle_like(comment.id, bob.id)


@pytest.mark.asyncio
async def test_list_thread_orders_and_caps_replies(threads, cast):
    _, alice, bob, _, project = cast
    older = await threads.create(project.id, alice, "older")
    newer = await threads.create(project.id, alice, "newer")
    replies = [await threads.create(project.id, bob, f"r{i}", parent_id=older.id) for i in range(12)]

    page = await threads.list_thread(project.id)

    assert [c.id for c in page.comments] == [newer.id, older.id]
    listed = page.comments[1].replies
    assert len(listed) == 10
    assert [r.id for r in listed] == [r.id for r in replies[:10]]
    assert page.comments[1].metrics.reply_count == 12


@pytest.mark.asyncio
async def test_list_thread_pagination(threads, cast):
    _, alice, _, _, project = cast
    for i in range(5):
        await threads.create(project.id, alice, f"c{i}")

    page = await threads.list_thread(project.id, page=2, limit=2)

    assert [c.content for c in page.comments] == ["c2", "c1"]
    assert page.pagination.current == 2
    assert page.pagination.pages == 3
    assert page.pagination.total == 5
    assert page.pagination.has_next is True
    assert page.pagination.has_prev is True


@pytest.mark.asyncio
async def test_comment_notifies_project_author(store, threads, dispatcher, cast):
    owner, alice, _, _, project = cast

    await threads.create(project.id, alice, "Great project")
    await dispatcher.drain()

    (notification,) = store.notifications.values()
    assert notification.user_id == owner.id
    assert notification.type is NotificationType.COMMENT
    assert notification.title == "New Comment"
    assert notification.message == 'alice commented on your project "Showcase"'
    assert notification.data["commentPreview"] == "Great project"


@pytest.mark.asyncio
async def test_reply_notifies_comment_author_not_project_author(store, threads, dispatcher, cast):
    owner, alice, bob, _, project = cast
    top = await threads.create(project.id, alice, "top")
    await dispatcher.drain()
    store.notifications.clear()

    await threads.create(project.id, bob, "reply", parent_id=top.id)
    await dispatcher.drain()

    (notification,) = store.notifications.values()
    assert notification.user_id == alice.id
    assert notification.title == "Comment Reply"


@pytest.mark.asyncio
async def test_owner_commenting_on_own_project_is_not_notified(store, threads, dispatcher, cast):
    owner, _, _, _, project = cast

    await threads.create(project.id, owner, "Release notes")
    await dispatcher.drain()

    assert store.notifications == {}


@pytest.mark.asyncio
async def test_comment_succeeds_when_notification_fails(store, threads, dispatcher, cast):
    _, alice, _, _, project = cast
    store.fail_notifications = RuntimeError("notifications table locked")

    comment = await threads.create(project.id, alice, "still saved")
    await dispatcher.drain()

    assert store.comments[comment.id].content == "still saved"
    assert store.notifications == {}


@pytest.mark.asyncio
async def test_failed_reply_write_leaves_counters_and_notifications_untouched(
    store, threads, dispatcher, cast
):
    _, alice, bob, _, project = cast
    top = await threads.create(project.id, alice, "top")
    await dispatcher.drain()
    store.notifications.clear()
    store.fail_comment_writes = TransientStoreError("Metrics store is unavailable, retry later")

    with pytest.raises(TransientStoreError):
        await threads.create(project.id, bob, "lost reply", parent_id=top.id)
    await dispatcher.drain()

    assert list(store.comments) == [top.id]
    assert store.comments[top.id].reply_count == 0
    assert store.comments[top.id].reply_ids == []
    assert store.projects[project.id].comment_count == 1
    assert store.notifications == {}


@pytest.mark.asyncio
async def test_reply_to_own_comment_is_not_notified(store, threads, dispatcher, cast):
    _, alice, _, _, project = cast
    top = await threads.create(project.id, alice, "top")
    await dispatcher.drain()
    store.notifications.clear()

    reply = await threads.create(project.id, alice, "follow-up", parent_id=top.id)
    await dispatcher.drain()

    assert reply.parent_id == top.id
    assert store.notifications == {}

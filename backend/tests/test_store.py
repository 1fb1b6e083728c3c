import pytest

from mock_interview.errors import ForbiddenError, NotFoundError, ValidationError
from mock_interview.schemas import Feedback, SessionStatus, Summary, Turn

from conftest import FEEDBACK_JSON

SUMMARY = Summary(score=70, top_strengths=["Calm"], top_improvements=["Depth"], one_line_verdict="Good.")
FEEDBACK = Feedback.model_validate_json(FEEDBACK_JSON)


async def test_create_starts_in_progress(make_session, store):
    document = await make_session()
    assert document.status == SessionStatus.IN_PROGRESS
    assert document.turns == []
    assert (await store.get(document.id)).questions == document.questions


async def test_create_without_questions_fails(store):
    with pytest.raises(ValidationError):
        await store.create("user-1", "Engineer", "Senior", "Technical", [])


async def test_get_unknown_and_foreign(make_session, store):
    document = await make_session()
    with pytest.raises(NotFoundError):
        await store.get("missing")
    with pytest.raises(ForbiddenError):
        await store.get_owned(document.id, "someone-else")


async def test_complete_checks_owner_and_turn_count(make_session, store):
    document = await make_session(questions=["One?"])
    turns = [Turn(question="One?", answer="Yes."), Turn(question="Two?", answer="No.")]
    with pytest.raises(ForbiddenError):
        await store.complete(document.id, "intruder", turns[:1], [FEEDBACK], SUMMARY)
    with pytest.raises(ValidationError):
        await store.complete(document.id, "user-1", turns, [FEEDBACK, FEEDBACK], SUMMARY)
    completed = await store.complete(document.id, "user-1", turns[:1], [FEEDBACK], SUMMARY)
    assert completed.status == SessionStatus.COMPLETED
    assert completed.summary == SUMMARY
    assert completed.per_question_feedback == [FEEDBACK]


async def test_list_completed_filters(make_session, store):
    hr = await make_session(questions=["One?"])
    other = await store.create("user-1", "Data Analyst", "Senior", "Technical", ["Two?"])
    pending = await make_session(questions=["Three?"])
    foreign = await make_session(questions=["Four?"], owner_id="user-2")
    for document in (hr, other):
        await store.complete(document.id, "user-1", [], [], SUMMARY)
    await store.complete(foreign.id, "user-2", [], [], SUMMARY)

    ids = {d.id for d in await store.list_completed("user-1")}
    assert ids == {hr.id, other.id}
    assert pending.id not in ids
    assert [d.id for d in await store.list_completed("user-1", interview_type="Technical")] == [other.id]
    assert [d.id for d in await store.list_completed("user-1", search="analyst")] == [other.id]
    assert len(await store.list_completed("user-1", interview_type="All")) == 2


async def test_delete_and_discard(make_session, store):
    document = await make_session()
    with pytest.raises(ForbiddenError):
        await store.delete(document.id, "user-2")
    await store.delete(document.id, "user-1")
    with pytest.raises(NotFoundError):
        await store.delete(document.id, "user-1")

    kept = await make_session(questions=["One?"])
    await store.complete(kept.id, "user-1", [], [], SUMMARY)
    assert await store.discard(kept.id) is False
    assert (await store.get(kept.id)).status == SessionStatus.COMPLETED


async def test_completed_document_cannot_be_completed_again(make_session, store):
    document = await make_session(questions=["One?"])
    await store.complete(document.id, "user-1", [Turn(question="One?", answer="Yes.")], [FEEDBACK], SUMMARY)
    other = Summary(score=10, one_line_verdict="Overwritten.")
    with pytest.raises(ValidationError):
        await store.complete(document.id, "user-1", [], [], other)
    saved = await store.get(document.id)
    assert saved.summary.one_line_verdict == "Good."
    assert len(saved.turns) == 1


async def test_timestamps_are_utc_aware(make_session, store):
    document = await make_session(questions=["One?"])
    assert document.created_at.tzinfo is not None
    completed = await store.complete(document.id, "user-1", [], [], SUMMARY)
    assert completed.completed_at.utcoffset().total_seconds() == 0
    assert (await store.get(document.id)).created_at.tzinfo is not None


async def test_filters_apply_before_limit(make_session, store):
    older = await store.create("user-1", "Data Analyst", "Senior", "Technical", ["One?"])
    await store.complete(older.id, "user-1", [], [], SUMMARY)
    for _ in range(2):
        newer = await make_session(questions=["Two?"])
        await store.complete(newer.id, "user-1", [], [], SUMMARY)

    assert [d.id for d in await store.list_completed("user-1", search="ANALYST", limit=2)] == [older.id]
    assert [d.id for d in await store.list_completed("user-1", interview_type="Technical", limit=2)] == [older.id]
    assert len(await store.list_completed("user-1", limit=2)) == 2
    assert await store.list_completed("user-1", search="100%") == []

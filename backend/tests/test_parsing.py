import json

from mock_interview.parsing import (
    FEEDBACK_PARSE_NOTE,
    extract_json_block,
    parse_feedback,
    parse_questions,
    parse_summary,
    sanitize_questions,
)
from mock_interview.schemas import Feedback, Summary, dump


def test_feedback_round_trip_direct():
    feedback = Feedback(
        strengths=["Clear"], improvements=["Add numbers"], better_answer_sample=["One.", "Two.", "Three."]
    )
    result = parse_feedback(json.dumps(dump(feedback)))
    assert result.ok
    assert result.value == feedback


def test_summary_round_trip_wrapped_in_prose():
    summary = Summary(score=81, top_strengths=["Calm"], top_improvements=["Depth"], one_line_verdict="Good.")
    text = f"Sure! Here is the summary you asked for:\n```json\n{json.dumps(dump(summary))}\n```\nGood luck."
    result = parse_summary(text)
    assert result.ok
    assert result.value == summary


def test_feedback_falls_back_to_default_on_garbage():
    result = parse_feedback("I think the answer was fine overall.")
    assert not result.ok
    assert result.value.strengths == []
    assert result.value.improvements == [FEEDBACK_PARSE_NOTE]
    assert result.value.better_answer_sample == ["I think the answer was fine overall."]


def test_feedback_lists_are_capped_and_non_lists_dropped():
    payload = {
        "strengths": ["a", "b", "c"],
        "improvements": "not a list",
        "betterAnswerSample": [str(i) for i in range(9)],
    }
    result = parse_feedback(json.dumps(payload))
    assert result.ok
    assert result.value.strengths == ["a", "b"]
    assert result.value.improvements == []
    assert len(result.value.better_answer_sample) == 6


def test_summary_without_json_is_a_failure():
    result = parse_summary("no json here")
    assert not result.ok
    assert result.value is None


def test_summary_score_is_clamped_and_rounded():
    assert parse_summary('{"score": 140}').value.score == 100
    assert parse_summary('{"score": -3}').value.score == 0
    assert parse_summary('{"score": "67.6"}').value.score == 68


def test_summary_with_bad_score_fails():
    assert not parse_summary('{"score": "great"}').ok
    assert not parse_summary('{"topStrengths": []}').ok


def test_extract_json_block_rejects_arrays_and_empty():
    assert extract_json_block("") is None
    assert extract_json_block("[1, 2]") is None
    assert extract_json_block('prefix {"a": 1} suffix') == {"a": 1}


def test_sanitize_questions_cleans_and_dedupes():
    raw = ["1. What is REST", "- what is rest?", "  ", 42, "Explain   caching."]
    assert sanitize_questions(raw) == ["What is REST?", "Explain caching."]


def test_parse_questions_uses_fallback_bank():
    result = parse_questions("sorry, cannot help", "Technical", 3)
    assert not result.ok
    assert len(result.value) == 3
    assert all(q.endswith("?") or q.endswith(".") for q in result.value)


def test_parse_questions_caps_count():
    text = json.dumps({"questions": ["A?", "B?", "C?", "D?"]})
    result = parse_questions(text, "HR", 2)
    assert result.ok
    assert result.value == ["A?", "B?"]


def test_summary_with_non_finite_score_fails():
    assert not parse_summary('{"score": Infinity}').ok
    assert not parse_summary('{"score": NaN}').ok
    assert not parse_summary('{"score": 1e400}').ok
    assert not parse_summary('{"score": 1' + "0" * 400 + "}").ok

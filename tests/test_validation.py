"""Quality warnings on generated feedback."""
from conftest import make_feedback
from lara.models import FeedbackItem
from lara.services.validation import validate_feedback


def warning_types(feedback, criteria=None):
    return {warning.type for warning in validate_feedback(feedback, criteria)}


def test_well_formed_feedback_has_no_warnings():
    assert validate_feedback(make_feedback()) == []


def test_ability_praise_and_peer_comparison():
    feedback = make_feedback()
    feedback.strengths[0].text = "You're so smart, better than most students in the class"

    warnings = validate_feedback(feedback)

    assert {"ability_praise", "peer_comparison"} <= {w.type for w in warnings}
    praise = next(w for w in warnings if w.type == "ability_praise")
    assert praise.location == "Strength #1"
    assert str(praise) == "ability_praise: Ability Praise Detected (Strength #1)"


def test_vague_comment():
    feedback = make_feedback()
    feedback.growth_areas[0].text = "Needs more work"
    assert "vague_comment" in warning_types(feedback)


def test_missing_anchors_and_low_specificity():
    feedback = make_feedback()
    for item in feedback.strengths + feedback.growth_areas:
        item.anchors = []
    types = warning_types(feedback)
    assert {"missing_anchors", "low_specificity"} <= types


def test_missing_feedback_types():
    feedback = make_feedback()
    feedback.growth_areas[0].type = "task"
    assert "missing_feedback_types" in warning_types(feedback)


def test_counts_and_no_strengths():
    feedback = make_feedback()
    feedback.strengths = []
    feedback.growth_areas = [
        FeedbackItem(id=f"grow-{i}", type="process", text=f"Link reason {i} to the claim", anchors=["x"])
        for i in range(3)
    ]
    types = warning_types(feedback)
    assert "no_strengths" in types
    assert "excessive_feedback_count" in types


def test_next_step_checks():
    feedback = make_feedback()
    feedback.next_steps[0].reflection_prompt = None
    feedback.next_steps[0].cta_text = "Go back and add a quotation to each of your reasons"
    assert {"missing_reflection", "cta_too_long"} <= warning_types(feedback)


def test_invented_criteria_only_with_criteria():
    feedback = make_feedback()
    feedback.growth_areas[0].text = "You should have included a diagram of the life cycle"
    criteria = ["Clear claim stated in the opening sentence", "Supporting evidence from the source text"]

    assert "invented_criteria" in warning_types(feedback, criteria)
    assert "invented_criteria" not in warning_types(feedback)


def test_growth_area_grounded_in_criteria_is_not_invented():
    feedback = make_feedback()
    feedback.growth_areas[0].text = "You should include supporting evidence from the source text"
    criteria = ["Supporting evidence from the source text"]
    assert "invented_criteria" not in warning_types(feedback, criteria)

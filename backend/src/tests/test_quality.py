from dataclasses import replace

import pytest

from conftest import topic_json
from studynotes.config import GenerationSettings
from studynotes.generation import parse_topic_content
from studynotes.models import ExamQuestion, TopicContent
from studynotes.quality import QualityChecker, count_lines, count_syllables, grade_level

TITLE = "Introduction to Vectors"


def make_content(**overrides) -> TopicContent:
    return replace(parse_topic_content(topic_json(TITLE), TITLE), **overrides)


def test_passing_content_clears_every_check():
    report = QualityChecker().check(make_content(), TITLE)
    assert report.passed, report.issues
    assert report.pass_rate == 1.0
    assert 6.0 <= report.readability_score <= 10.0


def test_short_explanation_fails_length_only():
    report = QualityChecker().check(make_content(explanation="Vectors have size and direction."), TITLE)
    assert report.length is False
    assert report.presence is True
    assert report.pass_rate == pytest.approx(5 / 6)
    assert "Content length does not meet requirements" in report.issues


def test_missing_question_fails_presence():
    content = make_content()
    report = QualityChecker().check(make_content(questions=content.questions[:2]), TITLE)
    assert report.presence is False


def test_title_mismatch_fails_alignment():
    report = QualityChecker().check(make_content(topic_title="Photosynthesis"), TITLE)
    assert report.syllabus_alignment is False


def test_answer_that_repeats_question_fails():
    question = "What is the dot product of two vectors in physics?"
    questions = (
        ExamQuestion("easy", question, question),
        *make_content().questions[1:],
    )
    report = QualityChecker().check(make_content(questions=questions), TITLE)
    assert report.answer_check is False


def test_blocked_term_fails_safety():
    example = "Touching a live wire is dangerous, so electricians use insulated gloves and rubber boots."
    report = QualityChecker().check(make_content(example_short=example), TITLE)
    assert report.safety is False
    assert report.passed is False
    assert report.pass_rate == pytest.approx(5 / 6)
    assert "Content contains inappropriate material" in report.issues


def test_blocked_terms_match_whole_words_and_are_configurable():
    checker = QualityChecker(GenerationSettings(blocked_terms=("torque",)))
    assert checker.check_safety(make_content(example_short="Whatever path it takes, the ball ends up north.")) is True
    assert QualityChecker().check_safety(make_content(example_short="Whatever path it takes, the ball ends up north."))
    assert checker.check_safety(make_content(example_short="A spanner applies Torque to turn a tight nut.")) is False


def test_dense_text_is_not_readable():
    dense = "\n".join(
        ["Electromagnetic interactions characterizing relativistic configurations necessitate considerable mathematical sophistication."]
        * 20
    )
    checker = QualityChecker(GenerationSettings())
    grade, score = checker.readability(dense)
    assert grade > 13.5
    assert score < 6.0
    assert checker.readability("") == (0.0, 0.0)


@pytest.mark.parametrize(("word", "expected"), [("the", 1), ("force", 1), ("direction", 3), ("paper", 2), ("arrow", 2)])
def test_count_syllables(word: str, expected: int):
    assert count_syllables(word) == expected


def test_grade_level_and_line_count():
    assert grade_level("") is None
    assert count_lines("one\n\n two \n   \nthree") == 3

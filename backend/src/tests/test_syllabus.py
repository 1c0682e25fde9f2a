import pytest

from studynotes.errors import SyllabusUnavailable
from studynotes.syllabus import SyllabusMatcher, SyllabusRepository, TopicTemplates

TOC_DATA = {
    "FBISE": {
        "11": {
            "Physics": [
                {"chapter": "Vectors and Equilibrium", "topics": ["Introduction to Vectors", "Dot Product"]},
                {"chapter": "Motion and Force", "topics": []},
            ]
        }
    }
}


@pytest.fixture
def matcher() -> SyllabusMatcher:
    return SyllabusMatcher(SyllabusRepository(data=TOC_DATA))


def test_fuzzy_request_ranks_closest_chapter_first(matcher: SyllabusMatcher):
    resolution = matcher.resolve_chapter("FBISE", 11, "Physics", "vector")
    assert resolution.found is True
    assert resolution.exact_match is False
    assert resolution.suggestion_names[0] == "Vectors and Equilibrium"
    assert resolution.chapter is None


def test_exact_match_ignores_case_and_spacing(matcher: SyllabusMatcher):
    resolution = matcher.resolve_chapter("fbise", 11, "physics", "  vectors AND equilibrium ")
    assert resolution.found is True
    assert resolution.exact_match is True
    assert resolution.suggestions == ()
    assert resolution.chapter == "Vectors and Equilibrium"
    assert resolution.topics == ("Introduction to Vectors", "Dot Product")
    assert resolution.toc_items == ("Vectors and Equilibrium", "Motion and Force")


def test_unrelated_name_is_not_found(matcher: SyllabusMatcher):
    resolution = matcher.resolve_chapter("FBISE", 11, "Physics", "zzzz")
    assert resolution.found is False
    assert resolution.suggestions == ()


def test_missing_syllabus_resolves_to_not_found(matcher: SyllabusMatcher):
    with pytest.raises(SyllabusUnavailable):
        matcher.repository.load_toc("FBISE", 12, "Physics")
    resolution = matcher.resolve_chapter("FBISE", 12, "Physics", "Vectors and Equilibrium")
    assert resolution.found is False
    assert resolution.toc_items == ()


def test_suggestions_are_sorted_and_capped():
    chapters = [{"chapter": f"Motion part {index}", "topics": []} for index in range(8)]
    repository = SyllabusRepository(data={"CBSE": {"11": {"Physics": chapters}}})
    resolution = SyllabusMatcher(repository, threshold=0.2, max_suggestions=5).resolve_chapter(
        "CBSE", 11, "Physics", "motion"
    )
    scores = [match.similarity for match in resolution.suggestions]
    assert len(scores) == 5
    assert scores == sorted(scores, reverse=True)
    assert all(score > 0.2 for score in scores)


def test_bundled_syllabus_contains_fbise_physics():
    repository = SyllabusRepository()
    assert "FBISE" in repository.list_boards()
    toc = repository.load_toc("FBISE", 11, "Physics")
    assert "Vectors and Equilibrium" in toc
    assert "Motion and Force" in toc
    topics = repository.chapter_topics("FBISE", 11, "Physics", "Vectors and Equilibrium")
    assert "Introduction to Vectors" in topics


def test_topic_templates_match_chapter_by_substring():
    templates = TopicTemplates(data={"Physics": {"Vectors": ["Vector Addition", "Resolution of Vectors"]}})
    assert templates.topics_for("physics", "Vectors and Equilibrium") == ["Vector Addition", "Resolution of Vectors"]
    assert templates.topics_for("Chemistry", "Stoichiometry") == [
        "Introduction to Stoichiometry",
        "Applications of Stoichiometry",
    ]


def test_clear_cache_reloads_tables(matcher: SyllabusMatcher):
    repository = matcher.repository
    assert repository.load_toc("FBISE", 11, "Physics")[0] == "Vectors and Equilibrium"
    repository.clear_cache()
    assert repository.load_toc("FBISE", 11, "Physics") == ["Vectors and Equilibrium", "Motion and Force"]

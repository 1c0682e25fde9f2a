import json
from pathlib import Path

from conftest import FakeGenerator, StaticSourceFetcher
from studynotes.evaluation import percentile, run_batch_evaluation, summarize
from studynotes.services import build_services

SAMPLE_REQUESTS = Path(__file__).resolve().parents[2] / "sample_data" / "sample_requests.json"


def test_percentile_handles_small_samples():
    assert percentile([], 0.95) == 0.0
    assert percentile([5.0], 0.5) == 5.0
    assert percentile([1.0, 2.0, 3.0, 4.0], 0.5) == 2.0
    assert percentile([1.0, 2.0, 3.0, 4.0], 0.95) == 4.0


def test_batch_evaluation_writes_summary(settings, textbook_document, tmp_path: Path):
    services = build_services(settings, generator=FakeGenerator(), fetcher=StaticSourceFetcher([textbook_document]))
    output = tmp_path / "latest.json"

    results = run_batch_evaluation(services, dataset_path=SAMPLE_REQUESTS, output_path=output)

    by_id = {result.request_id: result for result in results}
    assert by_id["fbise-11-physics-vectors"].status == "completed"
    assert by_id["fbise-11-physics-vectors-repeat"].from_cache is True
    assert by_id["fbise-11-physics-ambiguous"].error_kind == "AmbiguousChapter"

    payload = json.loads(output.read_text())
    assert payload["summary"]["requests"] == len(results) == 4
    assert payload["summary"]["completed"] == 3
    assert summarize(results)["fallback_topics"] == 0

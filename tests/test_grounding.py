import pytest

from geo_core.config_manager import ConfigManager
from geo_core.grounding.fetcher import (
    GroundingFetcher,
    SearchHit,
    extract_signals,
    filter_by_launch_date,
)


@pytest.fixture
def config_manager():
    manager = ConfigManager.from_defaults()
    manager.grounding.perplexity_api_key = "pplx-test"
    return manager


@pytest.fixture
def camera_hits():
    # "camera" in all four hits, "battery" in two, no other intent terms
    return [
        SearchHit(title="Camera first look", snippet="Sharp photos", url="https://a.example", date="2025-02-01"),
        SearchHit(title="Low light", snippet="the camera handles night shots", url="https://b.example"),
        SearchHit(title="Battery life", snippet="camera drains the battery slowly", url="https://c.example"),
        SearchHit(title="Zoom", snippet="camera zoom and battery", url="https://d.example"),
    ]


def _response(mocker, results, ok=True):
    response = mocker.Mock()
    response.ok = ok
    response.status_code = 200 if ok else 500
    response.json.return_value = {"results": results}
    return response


def test_extract_signals_normalizes_to_top_term(camera_hits):
    signals = extract_signals(camera_hits, keywords=[])

    assert [(s.term, s.score) for s in signals] == [("camera", 100), ("battery", 50)]
    assert signals[0].source == "https://a.example"
    assert signals[0].recency == "2025-02-01"
    assert signals[1].source == "https://c.example"


def test_keywords_count_double(camera_hits):
    signals = extract_signals(camera_hits, keywords=["zoom"])
    scores = {s.term: s.score for s in signals}

    # zoom: one hit x 2 = 2 against camera's 4
    assert scores == {"camera": 100, "battery": 50, "zoom": 50}


def test_short_terms_match_whole_words_only():
    hits = [SearchHit(title="He said it", snippet="Galaxy AI edits photos")]
    terms = [s.term for s in extract_signals(hits, keywords=[])]

    assert "AI" in terms
    assert "Galaxy AI" in terms
    assert terms.count("AI") == 1


def test_korean_terms_match_inside_words():
    hits = [SearchHit(title="갤럭시 카메라 리뷰", snippet="배터리 성능 비교")]
    terms = {s.term for s in extract_signals(hits, keywords=[])}

    assert {"카메라", "리뷰", "배터리", "성능", "비교"} <= terms


def test_no_matches_returns_empty():
    assert extract_signals([SearchHit(title="Nothing here", snippet="")], keywords=[]) == []


def test_scores_stay_in_range(camera_hits):
    signals = extract_signals(camera_hits * 3, keywords=["night", "zoom"])

    assert max(s.score for s in signals) == 100
    assert all(0 <= s.score <= 100 for s in signals)


def test_equal_scores_keep_first_seen_order():
    hits = [SearchHit(title="battery", snippet=""), SearchHit(title="camera", snippet="")]
    assert [s.term for s in extract_signals(hits, keywords=[])] == ["battery", "camera"]


def test_filter_by_launch_date():
    hits = [
        SearchHit(title="old", date="2024-12-31"),
        SearchHit(title="new", date="2025-01-15T08:00:00Z"),
        SearchHit(title="undated"),
        SearchHit(title="garbage", date="sometime"),
    ]

    kept = filter_by_launch_date(hits, "2025-01-01")
    assert [h.title for h in kept] == ["new", "undated"]

    assert filter_by_launch_date(hits, None) == hits
    assert filter_by_launch_date(hits, "not a date") == hits


def test_fetch_runs_all_queries(mocker, config_manager, camera_hits):
    session = mocker.Mock()
    session.post.return_value = _response(mocker, [hit.model_dump() for hit in camera_hits])

    fetcher = GroundingFetcher(config_manager, session=session)
    signals = fetcher.fetch("Galaxy S25", [])

    assert session.post.call_count == 5
    _, kwargs = session.post.call_args
    assert kwargs["headers"]["Authorization"] == "Bearer pplx-test"
    assert kwargs["json"]["max_results"] == 5
    assert kwargs["timeout"] == config_manager.grounding.request_timeout_seconds
    assert [(s.term, s.score) for s in signals] == [("camera", 100), ("battery", 50)]


def test_fetch_without_key_skips_search(mocker, config_manager):
    config_manager.grounding.perplexity_api_key = None
    session = mocker.Mock()

    assert GroundingFetcher(config_manager, session=session).fetch("Galaxy S25", ["camera"]) == []
    session.post.assert_not_called()


def test_failing_queries_are_absorbed(mocker, config_manager, camera_hits):
    good = _response(mocker, [hit.model_dump() for hit in camera_hits])
    session = mocker.Mock()
    session.post.side_effect = [ConnectionError("boom"), good, _response(mocker, [], ok=False), good, good]

    signals = GroundingFetcher(config_manager, session=session).fetch("Galaxy S25", [])

    assert signals[0].term == "camera"
    assert signals[0].score == 100


def test_fetch_total_failure_returns_empty(mocker, config_manager):
    session = mocker.Mock()
    session.post.side_effect = TimeoutError("slow")

    assert GroundingFetcher(config_manager, session=session).fetch("Galaxy S25", ["camera"]) == []


def test_build_queries_uses_first_keyword(config_manager):
    queries = GroundingFetcher(config_manager, session=object()).build_queries("Galaxy S25", ["zoom", "battery"])

    assert len(queries) == 5
    assert len(set(queries)) == 5
    assert queries[-1] == "Galaxy S25 zoom real world performance"

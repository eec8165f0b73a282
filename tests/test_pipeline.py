import json
import re

import pytest

from geo_core.config_manager import ConfigManager
from geo_core.errors import GenerationError, InvalidRequestError
from geo_core.generation.models import GenerateRequest, GroundingSignal, PlaybookMetadata, PlaybookSearchResult
from geo_core.pipeline import GenerationPipeline, validate_request
from geo_core.tuning.store import TuningStore

TRANSCRIPT = " ".join(["Model X keeps going all day and the camera shines in low light."] * 15)

DRAFT = {
    "description": "Model X review: battery and camera tested.",
    "timestamps": "0:00 Intro\n0:30 Battery\n1:15 Camera",
    "hashtags": ["#Samsung", "#ModelX", "#battery", "#camera"],
    "faq": "Q: Battery?\nA: All day.\n\nQ: Camera?\nA: Great.\n\nQ: Price?\nA: Fair.",
}


def _critique(score):
    return json.dumps(
        {
            "overallScore": score,
            "brandVoiceScore": score,
            "keywordIntegration": score,
            "geoOptimization": score,
            "faqQuality": score,
            "issues": [],
            "suggestions": [],
        }
    )


@pytest.fixture
def config_manager(tmp_path):
    manager = ConfigManager.from_defaults()
    manager.llm.openai_api_key = None
    manager.paths.tuning_file = str(tmp_path / "missing_tuning.yaml")
    return manager


@pytest.fixture
def scenario_request():
    return GenerateRequest(
        product_name="Model X",
        srt_content=TRANSCRIPT,
        keywords=["battery", "camera"],
        brief_usps=["fast charging"],
    )


@pytest.fixture
def mock_fetcher(mocker):
    fetcher = mocker.Mock()
    fetcher.fetch.return_value = [GroundingSignal(term="camera", score=100), GroundingSignal(term="battery", score=50)]
    return fetcher


@pytest.fixture
def mock_retriever(mocker):
    retriever = mocker.Mock()
    retriever.retrieve.return_value = [
        PlaybookSearchResult(id="g1", content="Be confident.", score=0.8, metadata=PlaybookMetadata(section="tone_voice")),
        PlaybookSearchResult(id="g2", content="Lead with proof.", score=0.6, metadata=PlaybookMetadata(section="brand_core")),
        PlaybookSearchResult(id="g3", content="Short lines.", score=0.4, metadata=PlaybookMetadata(section="tone_voice")),
    ]
    return retriever


@pytest.fixture
def mock_llm(mocker):
    llm = mocker.Mock()
    llm.is_configured = True
    return llm


@pytest.fixture
def pipeline(config_manager, mock_fetcher, mock_retriever, mock_llm, tmp_path):
    return GenerationPipeline(
        config_manager,
        tuning_store=TuningStore(str(tmp_path / "tuning.yaml")),
        fetcher=mock_fetcher,
        retriever=mock_retriever,
        llm=mock_llm,
    )


def test_mock_mode_end_to_end(config_manager, scenario_request, mock_fetcher):
    pipeline = GenerationPipeline(config_manager, fetcher=mock_fetcher)

    response = pipeline.run(scenario_request)

    assert "Model X" in response.description
    assert "#battery" in response.hashtags
    assert "#camera" in response.hashtags
    assert len(re.findall(r"^Q: .+\nA: .+", response.faq, re.MULTILINE)) >= 3
    assert response.breakdown is None
    mock_fetcher.fetch.assert_not_called()
    assert pipeline.run(scenario_request) == response


@pytest.mark.parametrize(
    "product_name,srt_content",
    [("", "transcript"), ("Model X", ""), ("   ", "transcript")],
)
def test_validation_rejects_missing_fields(product_name, srt_content):
    with pytest.raises(InvalidRequestError):
        validate_request(GenerateRequest(product_name=product_name, srt_content=srt_content))


def test_full_run_builds_breakdown(pipeline, scenario_request, mock_llm, mock_fetcher, mock_retriever):
    mock_llm.complete_json.side_effect = [json.dumps(DRAFT), _critique(92)]

    response = pipeline.run(scenario_request)

    assert response.description == DRAFT["description"]
    mock_fetcher.fetch.assert_called_once_with("Model X", ["battery", "camera"], None)
    retrieve_args = mock_retriever.retrieve.call_args.args
    assert retrieve_args[3][0].term == "camera"

    breakdown = response.breakdown
    assert breakdown.playbook_influence.sections_used == ["tone_voice", "brand_core"]
    assert breakdown.playbook_influence.guidelines_applied == 3
    assert breakdown.playbook_influence.confidence == 92
    assert breakdown.grounding_influence.signals_applied == 2
    assert breakdown.user_input_influence.keywords_integrated == ["battery", "camera"]
    assert breakdown.user_input_influence.timestamps_generated == 3
    assert breakdown.quality_scores.overall == 92
    assert breakdown.quality_scores.refined is False

    wire = response.model_dump(by_alias=True)
    assert wire["breakdown"]["playbookInfluence"]["sectionsUsed"] == ["tone_voice", "brand_core"]
    assert wire["breakdown"]["qualityScores"]["brandVoice"] == 92


def test_prompt_carries_all_three_sources(pipeline, scenario_request, mock_llm):
    mock_llm.complete_json.side_effect = [json.dumps(DRAFT), _critique(95)]

    pipeline.run(scenario_request)

    user_prompt = mock_llm.complete_json.call_args_list[0].args[1]
    assert "BRAND GUIDELINES (Weight: 33%)" in user_prompt
    assert "USER INTENT SIGNALS (Weight: 33%)" in user_prompt
    assert "USER CONTENT FOUNDATION (Weight: 34%)" in user_prompt


def test_refinement_is_reported(pipeline, scenario_request, mock_llm):
    mock_llm.complete_json.side_effect = [
        json.dumps(DRAFT),
        _critique(60),
        json.dumps({"description": "Model X, refined."}),
    ]

    response = pipeline.run(scenario_request)

    assert response.description == "Model X, refined."
    assert response.hashtags == DRAFT["hashtags"]
    assert response.breakdown.quality_scores.refined is True


def test_generation_failure_falls_back_to_template(pipeline, scenario_request, mock_llm):
    mock_llm.complete_json.side_effect = GenerationError("Completion returned no content")

    response = pipeline.run(scenario_request)

    assert "Model X" in response.description
    assert "#battery" in response.hashtags
    assert response.breakdown is None


def test_critique_failure_still_returns_draft(pipeline, scenario_request, mock_llm):
    mock_llm.complete_json.side_effect = [json.dumps(DRAFT), "not json at all"]

    response = pipeline.run(scenario_request)

    assert response.description == DRAFT["description"]
    assert response.breakdown.quality_scores is None
    # No critique: confidence is the mean retrieval score
    assert response.breakdown.playbook_influence.confidence == pytest.approx(60.0)


def test_prefetched_signals_skip_grounding(pipeline, mock_fetcher, mock_llm):
    mock_llm.complete_json.side_effect = [json.dumps(DRAFT), _critique(90)]
    request = GenerateRequest(
        product_name="Model X",
        srt_content=TRANSCRIPT,
        grounding_keywords=[GroundingSignal(term="display", score=100)],
    )

    response = pipeline.run(request)

    mock_fetcher.fetch.assert_not_called()
    assert response.breakdown.grounding_influence.top_signals[0].term == "display"


def test_use_playbook_false_skips_retrieval(pipeline, mock_retriever, mock_llm):
    mock_llm.complete_json.side_effect = [json.dumps(DRAFT), _critique(90)]
    request = GenerateRequest(product_name="Model X", srt_content=TRANSCRIPT, use_playbook=False)

    response = pipeline.run(request)

    mock_retriever.retrieve.assert_not_called()
    assert response.breakdown.playbook_influence.guidelines_applied == 0
    assert response.breakdown.playbook_influence.confidence == 90


def test_retrieval_disabled_by_config(config_manager, mock_fetcher, mock_retriever, mock_llm, scenario_request, tmp_path):
    config_manager.retrieval.enabled = False
    mock_llm.complete_json.side_effect = [json.dumps(DRAFT), _critique(90)]
    pipeline = GenerationPipeline(
        config_manager,
        tuning_store=TuningStore(str(tmp_path / "tuning.yaml")),
        fetcher=mock_fetcher,
        retriever=mock_retriever,
        llm=mock_llm,
    )

    pipeline.run(scenario_request)
    mock_retriever.retrieve.assert_not_called()


def test_ground_returns_signals_and_sections(pipeline):
    signals, sections = pipeline.ground("Model X", ["camera"])

    assert signals[0].term == "camera"
    assert sections[0] == "content_type_playbook"


def test_save_writes_camel_case_json(pipeline, scenario_request, mock_llm, tmp_path):
    mock_llm.complete_json.side_effect = [json.dumps(DRAFT), _critique(90)]
    response = pipeline.run(scenario_request)

    path = pipeline.save(response, str(tmp_path / "out" / "result.json"))
    data = json.loads(path.read_text(encoding="utf-8"))

    assert data["faq"] == DRAFT["faq"]
    assert "userInputInfluence" in data["breakdown"]

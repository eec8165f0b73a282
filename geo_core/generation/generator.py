import re
import time
from typing import List, Optional

from loguru import logger
from pydantic import ValidationError

from geo_core.config_manager import ConfigManager, PipelineConfig
from geo_core.errors import GenerationError, MalformedOutputError
from geo_core.generation.llm import LLMClient
from geo_core.generation.models import DraftPatch, GenerateResponse
from geo_core.generation.prompts import RESPONSE_SCHEMA
from geo_core.utils.json_repair import RobustJSONDecoder


def _tag(text: str) -> str:
    return "#" + re.sub(r"\s+", "", text)


def templated_response(
    product_name: str,
    keywords: List[str],
    pipeline_config: Optional[PipelineConfig] = None,
) -> GenerateResponse:
    """
    Deterministic copy built only from the product name and keywords.

    Served when no model is configured and when generation fails.
    """
    cfg = pipeline_config or PipelineConfig()
    brand = cfg.brand_name
    keyword_text = ", ".join(keywords) if keywords else "camera, battery, design"
    first = keywords[0] if len(keywords) > 0 else "Camera"
    second = keywords[1] if len(keywords) > 1 else "Battery"
    third = keywords[2] if len(keywords) > 2 else "Design"

    description = (
        f"Experience the {product_name} for yourself! In this video we take a close look at "
        f"{keyword_text}. See how the latest {brand} technology fits into everyday life, "
        f"from the first impression to the features that matter most. "
        f"Start something new with {product_name} today.\n\n"
        + " ".join(dict.fromkeys([_tag(brand), _tag(product_name)] + list(cfg.brand_hashtags)))
    )

    timestamps = "\n".join(
        [
            "0:00 Intro",
            f"0:15 {product_name} first impressions",
            f"0:45 {first} test",
            f"1:30 {second} performance",
            f"2:15 A closer look at {third}",
            "3:00 AI features hands-on",
            "4:00 Verdict",
        ]
    )

    hashtags = list(cfg.brand_hashtags[:1]) + [_tag(product_name)] + list(cfg.brand_hashtags[1:])
    hashtags += ["#삼성", "#갤럭시"]
    hashtags += [_tag(keyword) for keyword in keywords if keyword.strip()]
    hashtags += ["#스마트폰", "#테크리뷰", "#TechReview", "#Unboxing", "#NewPhone"]
    # Keep order, drop repeats
    hashtags = list(dict.fromkeys(hashtags))

    faq = "\n\n".join(
        [
            "Frequently Asked Questions",
            f"Q: How good is the {first} on the {product_name}?\n"
            f"A: The {product_name} pairs the latest hardware with AI processing to deliver results you can rely on every day.",
            "Q: Does the battery last a full day?\n"
            "A: Yes. With typical use the battery comfortably lasts more than a day.",
            "Q: How long will it receive software updates?\n"
            f"A: {brand} provides up to seven years of OS updates for this generation.",
            "Q: What is the biggest difference from the previous model?\n"
            "A: Built-in AI features make everyday tasks faster and smarter.",
        ]
    )

    return GenerateResponse(description=description, timestamps=timestamps, hashtags=hashtags, faq=faq)


class GenerationClient:
    """Produces the first draft from a composed prompt."""

    def __init__(
        self,
        config_manager: ConfigManager,
        llm: Optional[LLMClient] = None,
        decoder: Optional[RobustJSONDecoder] = None,
    ):
        self.cfg = config_manager.llm
        self.llm = llm or LLMClient(config_manager)
        self.decoder = decoder or RobustJSONDecoder()

    def generate(self, system_prompt: str, user_prompt: str) -> GenerateResponse:
        """
        Raises:
            GenerationError: the call failed, returned nothing, or returned
                something that is not a complete draft.
        """
        start = time.perf_counter()
        raw = self.llm.complete_json(
            system_prompt,
            user_prompt,
            RESPONSE_SCHEMA,
            schema_name="geo_content",
            temperature=self.cfg.temperature,
            max_tokens=self.cfg.max_output_tokens,
        )

        try:
            data = self.decoder.decode(raw)
        except MalformedOutputError as e:
            raise GenerationError("Generated content is not valid JSON", cause=e) from e

        if not isinstance(data, dict):
            raise GenerationError(f"Generated content is a {type(data).__name__}, expected an object")

        try:
            draft = DraftPatch.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"Generated content has invalid fields: {e}", cause=e) from e

        missing = draft.missing_fields()
        if missing:
            raise GenerationError(f"Generated content is missing {', '.join(missing)}")

        logger.success(f"Initial content generated in {(time.perf_counter() - start) * 1000:.0f}ms")
        return GenerateResponse(
            description=draft.description,
            timestamps=draft.timestamps,
            hashtags=draft.hashtags,
            faq=draft.faq,
        )

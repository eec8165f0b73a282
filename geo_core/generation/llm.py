import json
from typing import Any, Dict, Optional

from anthropic import Anthropic
from loguru import logger
from openai import OpenAI

from geo_core.config_manager import ConfigManager
from geo_core.errors import GenerationError


class LLMClient:
    """
    Thin completion client over the OpenAI and Anthropic SDKs.

    Returns raw model text; turning it into data is the caller's job, since
    model output is only probably well-formed JSON.
    """

    def __init__(self, config_manager: ConfigManager):
        self.cfg = config_manager.llm
        self.provider = self.cfg.llm_provider
        self.client: Optional[Any] = self._init_client()

    def _init_client(self) -> Optional[Any]:
        if self.provider == "openai":
            api_key = self.cfg.openai_api_key
            if not api_key:
                logger.warning("OpenAI API Key not found. Generation will be mocked.")
                return None
            return OpenAI(api_key=api_key, timeout=self.cfg.request_timeout_seconds)

        elif self.provider == "anthropic":
            api_key = self.cfg.anthropic_api_key
            if not api_key:
                logger.warning("Anthropic API Key not found. Generation will be mocked.")
                return None
            return Anthropic(api_key=api_key, timeout=self.cfg.request_timeout_seconds)

        else:
            raise ValueError(f"Unsupported LLM provider: {self.provider}")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def complete_json(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        schema: Dict[str, Any],
        schema_name: str = "response",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Runs one completion constrained to ``schema`` and returns the raw text."""
        if not self.client:
            raise GenerationError("LLM client not configured")

        temperature = self.cfg.temperature if temperature is None else temperature
        max_tokens = self.cfg.max_output_tokens if max_tokens is None else max_tokens

        try:
            if self.provider == "openai":
                text = self._complete_openai(system_prompt, user_prompt, schema, schema_name, temperature, max_tokens)
            else:
                text = self._complete_anthropic(system_prompt, user_prompt, schema, temperature, max_tokens)
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Completion call failed: {e}", cause=e) from e

        if not text or not text.strip():
            raise GenerationError("Completion returned no content")
        return text

    def _complete_openai(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        schema: Dict[str, Any],
        schema_name: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        resp = self.client.chat.completions.create(
            model=self.cfg.model_name,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema},
            },
        )
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    def _complete_anthropic(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        schema: Dict[str, Any],
        temperature: float,
        max_tokens: int,
    ) -> str:
        # No native JSON mode: the schema goes into the system prompt
        system = (system_prompt or "").strip()
        system += (
            "\n\nRespond with a single JSON object that matches this JSON schema. "
            "Do not add any text outside the JSON.\n" + json.dumps(schema, ensure_ascii=False)
        )

        resp = self.client.messages.create(
            model=self.cfg.model_name,
            system=system.strip(),
            messages=[{"role": "user", "content": user_prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return "".join(getattr(block, "text", "") or "" for block in resp.content or [])

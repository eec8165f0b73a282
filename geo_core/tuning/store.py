import re
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from geo_core.generation.prompts import DEFAULT_SYSTEM_PROMPT

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class SignalWeights(BaseModel):
    """Share of the prompt given to each signal source."""

    model_config = ConfigDict(frozen=True)

    playbook: float = Field(default=0.33, ge=0)
    grounding: float = Field(default=0.33, ge=0)
    user_content: float = Field(default=0.34, ge=0)

    @property
    def total(self) -> float:
        return self.playbook + self.grounding + self.user_content

    def normalized(self) -> "SignalWeights":
        total = self.total
        if total <= 0:
            return SignalWeights()
        if abs(total - 1.0) <= 0.01:
            return self
        return SignalWeights(
            playbook=self.playbook / total,
            grounding=self.grounding / total,
            user_content=self.user_content / total,
        )


class TuningSnapshot(BaseModel):
    """Prompt and weights that one pipeline run reads from start to end."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(default="default")
    source: str = Field(default="default", description="'store' or 'default'")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    prompt_name: str = Field(default="default")
    weights: SignalWeights = Field(default_factory=SignalWeights)
    loaded_at: datetime = Field(default_factory=datetime.now)


def interpolate_prompt(prompt: str, variables: Dict[str, Any]) -> str:
    """Fills ``{{name}}`` placeholders. Unknown placeholders are left as they are."""

    def replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER.sub(replace, prompt)


def _newest_active(entries: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(entries, list):
        return None
    active = [entry for entry in entries if isinstance(entry, dict) and entry.get("is_active")]
    if not active:
        return None
    # Stable sort: among equal dates the later entry in the file wins
    return sorted(active, key=lambda entry: str(entry.get("created_at") or ""))[-1]


class TuningStore:
    """
    Loads the active system prompt and signal weights from a YAML file.

    Snapshots are cached for ``cache_ttl_seconds``; ``refresh`` reloads
    immediately. Loading never raises: anything missing or broken falls back
    to the built-in defaults.
    """

    def __init__(self, path: str = "config/tuning.yaml", cache_ttl_seconds: float = 300):
        self.path = Path(path)
        self.cache_ttl_seconds = cache_ttl_seconds
        self._snapshot: Optional[TuningSnapshot] = None
        self._loaded_monotonic = 0.0
        self._lock = threading.Lock()

    def snapshot(self) -> TuningSnapshot:
        with self._lock:
            if self._snapshot is None or time.monotonic() - self._loaded_monotonic > self.cache_ttl_seconds:
                self._snapshot = self._load()
                self._loaded_monotonic = time.monotonic()
            return self._snapshot

    def refresh(self) -> TuningSnapshot:
        with self._lock:
            self._snapshot = self._load()
            self._loaded_monotonic = time.monotonic()
        logger.info(f"Tuning refreshed: {self._snapshot.source} v{self._snapshot.version}")
        return self._snapshot

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.warning(f"Tuning file not found at {self.path}. Using default prompt and weights.")
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read tuning file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Tuning file {self.path} is not a mapping. Using defaults.")
            return {}
        return data

    def _load_prompt(self, data: Dict[str, Any]) -> Optional[Tuple[str, str, str]]:
        entry = _newest_active(data.get("prompt_versions"))
        if not entry or not str(entry.get("system_prompt") or "").strip():
            logger.warning("No active prompt version configured. Using default prompt.")
            return None
        return (
            str(entry["system_prompt"]),
            str(entry.get("name") or "unnamed"),
            str(entry.get("version") or "1"),
        )

    def _load_weights(self, data: Dict[str, Any]) -> Optional[Tuple[SignalWeights, str]]:
        entry = _newest_active(data.get("signal_weights"))
        if not entry:
            logger.warning("No active signal weights configured. Using default weights.")
            return None
        try:
            weights = SignalWeights.model_validate(entry.get("weights") or {})
        except ValidationError as e:
            logger.warning(f"Invalid signal weights '{entry.get('name')}': {e}")
            return None

        normalized = weights.normalized()
        if normalized != weights:
            logger.warning(f"Signal weights sum to {weights.total:.2f}, normalizing to 1.0")
        return normalized, str(entry.get("version") or "1")

    def _load(self) -> TuningSnapshot:
        data = self._read()
        prompt = self._load_prompt(data)
        weights = self._load_weights(data)

        if prompt is None and weights is None:
            return TuningSnapshot()

        system_prompt, prompt_name, prompt_version = prompt or (DEFAULT_SYSTEM_PROMPT, "default", "default")
        signal_weights, weights_version = weights or (SignalWeights(), "default")
        snapshot = TuningSnapshot(
            version=f"{prompt_version}/{weights_version}",
            source="store",
            system_prompt=system_prompt,
            prompt_name=prompt_name,
            weights=signal_weights,
        )
        logger.debug(f"Loaded tuning snapshot {snapshot.prompt_name} v{snapshot.version}")
        return snapshot

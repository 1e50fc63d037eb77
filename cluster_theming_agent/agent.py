"""PydanticAI agent that suggests names and folders for file clusters."""
from __future__ import annotations

from pathlib import Path
import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.usage import UsageLimits


PROMPT_PATH = Path(__file__).with_name("prompt.md")
ROOT_CONFIG = Path(__file__).resolve().parents[1] / "organizer.config.json"

logger = logging.getLogger(__name__)


def load_config(config_path: Union[str, Path] = ROOT_CONFIG) -> Dict[str, Any]:
    """Load configuration for the theming agent from the main config file."""
    config_path = Path(config_path)
    if not config_path.exists():
        return {}
    with config_path.open(encoding="utf-8") as config_file:
        cfg = json.load(config_file)
    agent_cfg = dict(cfg.get("cluster_theming_agent", {}))
    agent_cfg.setdefault("api_key", cfg.get("api_key", ""))
    return agent_cfg


def build_agent(model: Optional[Model] = None, config: Optional[Dict[str, Any]] = None) -> Agent:
    """Create an :class:`Agent` that answers cluster theming prompts.

    ``model`` overrides the OpenAI-compatible model named in the config; tests
    pass a ``TestModel`` or ``FunctionModel`` here.
    """
    system_prompt = PROMPT_PATH.read_text(encoding="utf-8")
    if model is None:
        config = config if config is not None else load_config()
        model_name = config.get("model", "gpt-5-nano")
        provider = OpenAIProvider(
            api_key=config.get("api_key") or None,
            base_url=config.get("base_url") or None,
        )
        model = OpenAIChatModel(model_name, provider=provider)
    return Agent(model=model, system_prompt=system_prompt, retries=2)


class ThemingAgentGenerator:
    """Adapter exposing an agent as a plain ``generate_text`` callable.

    The clustering engine only needs prompt in, text out. Errors propagate so
    that the caller can fall back to its heuristic names.
    """

    def __init__(self, agent: Optional[Agent] = None, request_limit: int = 3) -> None:
        self._agent = agent
        self.request_limit = request_limit

    @property
    def agent(self) -> Agent:
        if self._agent is None:
            self._agent = build_agent()
        return self._agent

    def generate_text(self, prompt: str) -> str:
        logger.info("cluster_theming_agent query: %s", prompt.splitlines()[0] if prompt else "")
        response = self.agent.run_sync(
            prompt,
            usage_limits=UsageLimits(request_limit=self.request_limit),
        )
        logger.info("cluster_theming_agent response: %s", response.output)
        return response.output


__all__ = [
    "ThemingAgentGenerator",
    "build_agent",
    "load_config",
]

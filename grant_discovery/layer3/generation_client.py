"""
Generation collaborator boundary.

The pipeline talks to any text generator through GenerationClient. The
LangChain/OpenAI adapter below is the production implementation; tests
substitute a scripted fake.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from grant_discovery.common.config import Config
from grant_discovery.common.logger import get_logger

logger = get_logger(__name__, stage="enrichment")


class GenerationClient(ABC):
    """Async text generator: one prompt in, raw text out."""

    @abstractmethod
    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """
        Generate a completion.

        Args:
            prompt: User prompt
            system: Optional system instructions

        Returns:
            Raw model text (may be empty or malformed; callers validate)
        """
        pass


class LangChainGenerationClient(GenerationClient):
    """GenerationClient backed by langchain_openai.ChatOpenAI."""

    def __init__(
        self,
        llm: Any = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        """
        Args:
            llm: Pre-built chat model (anything with `ainvoke`); built from Config if None
            model: Model name (defaults to Config.ENRICHMENT_MODEL)
            temperature: Sampling temperature (defaults to Config.ENRICHMENT_TEMPERATURE)
            api_key: API key (defaults to Config.get_llm_api_key())
            base_url: Optional OpenAI-compatible base URL
        """
        self.model = model or Config.ENRICHMENT_MODEL
        if llm is None:
            kwargs = {
                "model": self.model,
                "temperature": temperature if temperature is not None else Config.ENRICHMENT_TEMPERATURE,
                "api_key": api_key or Config.get_llm_api_key(),
            }
            resolved_base_url = base_url or Config.get_llm_base_url()
            if resolved_base_url:
                kwargs["base_url"] = resolved_base_url
            llm = ChatOpenAI(**kwargs)
        self.llm = llm

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        logger.debug(f"Invoking {self.model} ({len(prompt)} prompt chars)")
        response = await self.llm.ainvoke(messages)

        content = getattr(response, "content", response)
        if isinstance(content, list):
            # Content blocks: keep the text parts
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return content or ""

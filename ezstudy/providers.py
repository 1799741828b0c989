"""AI provider adapters and the fallback gateway.

The gateway calls the primary provider and, only when the failure looks like
an authentication, quota or billing problem, makes one attempt against the
secondary provider. Provider choice depends only on which credentials are
configured.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence, Type

from google import genai
from google.genai import types as genai_types
from groq import AsyncGroq
from together import AsyncTogether

from .config import Settings, get_settings
from .errors import ConfigurationError, UpstreamError
from .log import set_provider
from .models import ChatTurn, ProviderConfig, ProviderResult, ProviderUsed, Role

logger = logging.getLogger(__name__)

# --- ERROR CLASSIFICATION ---

FALLBACK_TOKENS = (
    "api_key",
    "api-key",
    "quota",
    "billing",
    "401",
    "403",
    "429",
    "invalid api",
    "invalid key",
    "permission",
)


class ErrorCategory(str, Enum):
    AUTH_OR_QUOTA = "auth_or_quota"
    OTHER = "other"


def classify(error: BaseException) -> ErrorCategory:
    """Decide whether a provider failure justifies switching providers.

    Looks at the error text plus any `status_code`, `code` or `status`
    attribute the SDK exception carries.
    """
    parts = [str(error)]
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if value is not None:
            parts.append(str(value))
    haystack = " ".join(parts).lower()
    if any(token in haystack for token in FALLBACK_TOKENS):
        return ErrorCategory.AUTH_OR_QUOTA
    return ErrorCategory.OTHER


# --- PROVIDER ADAPTERS ---

class Provider(ABC):
    """One hosted chat-completion API."""

    name: str = "provider"

    def __init__(self, api_key: str, model: str, max_tokens: int = 2048):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens

    @abstractmethod
    async def complete(self, messages: Sequence[ChatTurn], temperature: float) -> str:
        ...


def to_openai_messages(messages: Sequence[ChatTurn]) -> List[Dict[str, str]]:
    return [{"role": turn.role.value, "content": turn.content} for turn in messages]


class GroqProvider(Provider):
    name = "groq"

    def __init__(self, api_key: str, model: str, max_tokens: int = 2048):
        super().__init__(api_key, model, max_tokens)
        self._client = AsyncGroq(api_key=api_key)

    async def complete(self, messages: Sequence[ChatTurn], temperature: float) -> str:
        completion = await self._client.chat.completions.create(
            model=self.model,
            messages=to_openai_messages(messages),
            temperature=temperature,
            max_tokens=self.max_tokens,
        )
        return completion.choices[0].message.content or ""


class TogetherProvider(Provider):
    name = "together"

    def __init__(self, api_key: str, model: str, max_tokens: int = 2048):
        super().__init__(api_key, model, max_tokens)
        self._client = AsyncTogether(api_key=api_key)

    async def complete(self, messages: Sequence[ChatTurn], temperature: float) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=to_openai_messages(messages),
            temperature=temperature,
            max_tokens=self.max_tokens,
        )
        return response.choices[0].message.content or ""


def to_gemini_contents(messages: Sequence[ChatTurn]):
    """Split turns into Gemini's system instruction and user/model contents."""
    system_parts = []
    contents = []
    for turn in messages:
        if turn.role is Role.SYSTEM:
            system_parts.append(turn.content)
            continue
        role = "model" if turn.role is Role.ASSISTANT else "user"
        contents.append({"role": role, "parts": [{"text": turn.content}]})
    system_instruction = "\n\n".join(system_parts) if system_parts else None
    return system_instruction, contents


class GeminiProvider(Provider):
    name = "gemini"

    def __init__(self, api_key: str, model: str, max_tokens: int = 2048):
        super().__init__(api_key, model, max_tokens)
        self._client = genai.Client(api_key=api_key)

    async def complete(self, messages: Sequence[ChatTurn], temperature: float) -> str:
        system_instruction, contents = to_gemini_contents(messages)
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=genai_types.GenerateContentConfig(
                system_instruction=system_instruction,
                temperature=temperature,
                max_output_tokens=self.max_tokens,
            ),
        )
        return response.text or ""


PROVIDER_CLASSES: Dict[str, Type[Provider]] = {
    GroqProvider.name: GroqProvider,
    TogetherProvider.name: TogetherProvider,
    GeminiProvider.name: GeminiProvider,
}


# --- GATEWAY ---

class ProviderGateway:
    """Primary/secondary provider router with a single fallback step."""

    def __init__(
        self,
        primary: Optional[Provider] = None,
        secondary: Optional[Provider] = None,
        timeout: float = 180.0,
    ):
        self.primary = primary
        self.secondary = secondary
        self.timeout = timeout

    @property
    def configured(self) -> List[str]:
        return [p.name for p in (self.primary, self.secondary) if p is not None]

    async def _call(self, provider: Provider, messages: Sequence[ChatTurn], temperature: float) -> str:
        set_provider(provider.name)
        try:
            return await asyncio.wait_for(provider.complete(messages, temperature), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"{provider.name} request timed out after {self.timeout:g}s") from e

    async def complete(
        self,
        messages: Sequence[ChatTurn],
        config: Optional[ProviderConfig] = None,
        temperature: Optional[float] = None,
    ) -> ProviderResult:
        """Run the completion, falling back once on auth/quota failures.

        Raises:
            ConfigurationError: no provider credential is configured.
            UpstreamError: the secondary failed, or the primary failed with a
                fallback-eligible error and no secondary exists.
            Exception: a non-eligible primary failure, re-raised unchanged.
        """
        config = config or ProviderConfig()
        temperature = config.temperature if temperature is None else temperature

        if self.primary is not None:
            try:
                text = await self._call(self.primary, messages, temperature)
                return ProviderResult(text=text, provider_used=ProviderUsed.PRIMARY, provider=self.primary.name)
            except Exception as e:
                if classify(e) is not ErrorCategory.AUTH_OR_QUOTA:
                    logger.error("%s request failed: %s", self.primary.name, e)
                    raise
                if self.secondary is None:
                    logger.error("%s request failed and no fallback is configured: %s", self.primary.name, e)
                    raise UpstreamError(str(e)) from e
                logger.warning("%s unavailable (%s); falling back to %s", self.primary.name, e, self.secondary.name)

        if self.secondary is None:
            raise ConfigurationError("no AI provider configured")

        try:
            text = await self._call(self.secondary, messages, temperature)
        except UpstreamError:
            raise
        except Exception as e:
            logger.error("%s request failed: %s", self.secondary.name, e)
            raise UpstreamError(str(e)) from e
        return ProviderResult(text=text, provider_used=ProviderUsed.FALLBACK, provider=self.secondary.name)


def _build_provider(name: str, settings: Settings) -> Optional[Provider]:
    provider_cls = PROVIDER_CLASSES.get(name)
    if provider_cls is None:
        raise ConfigurationError(f"unknown AI provider '{name}'")
    api_key = settings.api_key_for(name)
    if not api_key:
        return None
    model = getattr(settings, f"{name}_model")
    return provider_cls(api_key=api_key, model=model, max_tokens=settings.max_tokens)


def build_gateway(settings: Settings) -> ProviderGateway:
    """Instantiate the providers whose credentials are present."""
    primary = _build_provider(settings.primary_provider, settings)
    secondary = None
    if settings.secondary_provider and settings.secondary_provider != settings.primary_provider:
        secondary = _build_provider(settings.secondary_provider, settings)
    gateway = ProviderGateway(primary, secondary, timeout=settings.provider_timeout_seconds)
    if gateway.configured:
        logger.info("✅ AI providers configured: %s", ", ".join(gateway.configured))
    else:
        logger.warning("⚠️ No AI provider credentials configured")
    return gateway


# Global gateway instance
gateway = None

def get_gateway() -> ProviderGateway:
    """Get or create the provider gateway instance"""
    global gateway
    if gateway is None:
        gateway = build_gateway(get_settings())
    return gateway

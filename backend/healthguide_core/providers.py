from __future__ import annotations

import dataclasses
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

import httpx


_GROQ_API_BASE = (os.getenv("GROQ_API_BASE_URL") or "https://api.groq.com/openai/v1").rstrip("/")
_OPENAI_API_BASE = (os.getenv("OPENAI_API_BASE_URL") or "https://api.openai.com/v1").rstrip("/")
_OPENROUTER_API_BASE = (os.getenv("OPENROUTER_API_BASE_URL") or "https://openrouter.ai/api/v1").rstrip("/")
_ANTHROPIC_API_BASE = (os.getenv("ANTHROPIC_API_BASE_URL") or "https://api.anthropic.com/v1").rstrip("/")


class ModelUnavailableError(Exception):
    pass


class ModelProvider(Protocol):
    name: str

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str: ...


def _provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def _coerce_completion_text(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    message = choices[0].get("message", {}) if isinstance(choices[0], dict) else {}
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text_value = item.get("text")
                if isinstance(text_value, str):
                    parts.append(text_value)
        return "\n".join(parts)
    return ""


def _coerce_anthropic_text(response_json: dict[str, Any]) -> str:
    content = response_json.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "text":
            continue
        text_value = item.get("text")
        if isinstance(text_value, str) and text_value.strip():
            parts.append(text_value.strip())
    return "\n".join(parts).strip()


def _post_json(url: str, headers: dict[str, str], payload: dict[str, Any], timeout_seconds: float) -> dict[str, Any]:
    try:
        with httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=min(8.0, timeout_seconds))) as client:
            response = client.post(url, headers=headers, json=payload)
    except httpx.TimeoutException as exc:
        raise ModelUnavailableError("Model provider timed out.") from exc
    except httpx.HTTPError as exc:
        raise ModelUnavailableError(f"Failed to reach model provider: {exc}") from exc
    if response.status_code >= 400:
        raise ModelUnavailableError(_provider_error_message(response))
    try:
        body = response.json()
    except ValueError as exc:
        raise ModelUnavailableError("Model provider returned invalid JSON.") from exc
    if not isinstance(body, dict):
        raise ModelUnavailableError("Model provider returned an unexpected payload.")
    return body


@dataclass
class OpenAICompatibleProvider:
    name: str
    base_url: str
    api_key: str
    model: str
    timeout_seconds: float = 25.0

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        payload = {
            "model": self.model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.name == "openrouter":
            site_url = (os.getenv("OPENROUTER_SITE_URL") or "").strip()
            if site_url:
                headers["HTTP-Referer"] = site_url
            headers["X-Title"] = (os.getenv("OPENROUTER_APP_NAME") or "HealthGuide").strip()
        body = _post_json(f"{self.base_url}/chat/completions", headers, payload, self.timeout_seconds)
        return _coerce_completion_text(body).strip()


@dataclass
class AnthropicProvider:
    api_key: str
    model: str
    base_url: str = _ANTHROPIC_API_BASE
    timeout_seconds: float = 25.0
    name: str = "anthropic"

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        anthropic_messages = [
            {"role": turn["role"], "content": turn["content"]}
            for turn in messages
            if turn.get("role") in {"user", "assistant"} and turn.get("content")
        ]
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system_prompt,
            "messages": anthropic_messages,
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": os.getenv("ANTHROPIC_API_VERSION", "2023-06-01"),
            "Content-Type": "application/json",
        }
        body = _post_json(f"{self.base_url}/messages", headers, payload, self.timeout_seconds)
        return _coerce_anthropic_text(body)


DEFAULT_MODEL_TIMEOUT_SECONDS = 25.0


def model_timeout_from_env() -> float:
    raw = (os.getenv("HEALTHGUIDE_MODEL_TIMEOUT_SECONDS") or "").strip()
    try:
        value = float(raw) if raw else DEFAULT_MODEL_TIMEOUT_SECONDS
    except ValueError:
        print(f"ignoring invalid HEALTHGUIDE_MODEL_TIMEOUT_SECONDS={raw!r}")  # noqa: T201
        return DEFAULT_MODEL_TIMEOUT_SECONDS
    if value != value or value <= 0:
        return DEFAULT_MODEL_TIMEOUT_SECONDS
    return value


def _with_timeout(provider: ModelProvider, remaining: float) -> ModelProvider:
    current = getattr(provider, "timeout_seconds", None)
    if not dataclasses.is_dataclass(provider) or not isinstance(current, (int, float)):
        return provider
    if current <= remaining:
        return provider
    return dataclasses.replace(provider, timeout_seconds=remaining)


class ProviderChain:
    """Tries each configured provider in order until one returns text.

    With ``deadline_seconds`` set, the whole chain shares one budget: each
    provider's HTTP timeout is capped to what is left, and candidates are
    skipped once it is spent.
    """

    def __init__(
        self,
        providers: Sequence[ModelProvider],
        *,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.providers = list(providers)
        self.deadline_seconds = deadline_seconds
        self._clock = clock

    @property
    def configured(self) -> bool:
        return bool(self.providers)

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        if not self.providers:
            raise ModelUnavailableError("No model provider credential configured.")
        failures: list[str] = []
        started = self._clock()
        for provider in self.providers:
            if self.deadline_seconds is not None:
                remaining = self.deadline_seconds - (self._clock() - started)
                if remaining <= 0:
                    print(f"model provider skipped, deadline spent ({provider.name})")  # noqa: T201
                    failures.append(f"{provider.name}: deadline exceeded")
                    continue
                provider = _with_timeout(provider, remaining)
            try:
                text = provider.complete(system_prompt, messages, temperature=temperature, max_tokens=max_tokens)
            except Exception as exc:
                print(f"model provider call failed ({provider.name}): {exc}")  # noqa: T201
                failures.append(f"{provider.name}: {exc}")
                continue
            if text and text.strip():
                print(f"model provider used ({provider.name})")  # noqa: T201
                return text
            print(f"model provider empty response ({provider.name})")  # noqa: T201
            failures.append(f"{provider.name}: empty response")
        raise ModelUnavailableError("; ".join(failures))


def provider_candidates_from_env() -> list[ModelProvider]:
    timeout_seconds = model_timeout_from_env()
    preference = (os.getenv("HEALTHGUIDE_MODEL_PROVIDER") or "auto").strip().lower()
    candidates: list[ModelProvider] = []

    groq_api_key = (os.getenv("GROQ_API_KEY") or "").strip()
    if groq_api_key:
        candidates.append(
            OpenAICompatibleProvider(
                name="groq",
                base_url=_GROQ_API_BASE,
                api_key=groq_api_key,
                model=(os.getenv("GROQ_MODEL") or "llama3-70b-8192").strip(),
                timeout_seconds=timeout_seconds,
            )
        )

    openai_api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if openai_api_key:
        candidates.append(
            OpenAICompatibleProvider(
                name="openai",
                base_url=_OPENAI_API_BASE,
                api_key=openai_api_key,
                model=(os.getenv("HEALTHGUIDE_CHAT_MODEL") or "gpt-4o-mini").strip(),
                timeout_seconds=timeout_seconds,
            )
        )

    openrouter_api_key = (os.getenv("OPENROUTER_API_KEY") or "").strip()
    if openrouter_api_key:
        candidates.append(
            OpenAICompatibleProvider(
                name="openrouter",
                base_url=_OPENROUTER_API_BASE,
                api_key=openrouter_api_key,
                model=(os.getenv("OPENROUTER_MODEL") or "openai/gpt-4o-mini").strip(),
                timeout_seconds=timeout_seconds,
            )
        )

    anthropic_api_key = (os.getenv("ANTHROPIC_API_KEY") or "").strip()
    if anthropic_api_key:
        candidates.append(
            AnthropicProvider(
                api_key=anthropic_api_key,
                model=(os.getenv("ANTHROPIC_MODEL") or "claude-3-5-sonnet-latest").strip(),
                timeout_seconds=timeout_seconds,
            )
        )

    if preference in {"", "auto"}:
        return candidates
    aliases = {"claude": "anthropic", "anthropic": "anthropic", "groq": "groq", "openai": "openai", "openrouter": "openrouter"}
    canonical = aliases.get(preference)
    if not canonical:
        return candidates
    preferred = [candidate for candidate in candidates if candidate.name == canonical]
    others = [candidate for candidate in candidates if candidate.name != canonical]
    return preferred + others

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from openai import AzureOpenAI, OpenAI

from aaschat.config import Settings, settings
from aaschat.services.errors import TranslationServiceError
from aaschat.utils.logger import logger

DAX_FENCE = "```dax"
FENCE = "```"


@dataclass(frozen=True)
class GeneratedQuery:
    raw: str
    sanitized: str


def sanitize_query(text: str) -> str:
    """Strip markdown code fences the model adds despite being told not to."""
    cleaned = text.strip()
    if cleaned.startswith(DAX_FENCE):
        cleaned = cleaned[len(DAX_FENCE):]
    elif cleaned.startswith(FENCE):
        cleaned = cleaned[len(FENCE):]
    if cleaned.endswith(FENCE):
        cleaned = cleaned[: -len(FENCE)]
    return cleaned.strip()


def _messages(system_prompt: str, question: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": question},
    ]


class QueryTranslator:
    """Chat-completion wrapper that turns a question into a DAX query.

    Talks to Azure OpenAI when an endpoint is configured and to OpenAI
    otherwise. ``LLM_BACKEND=langchain`` routes the call through LangChain's
    chat models instead of the raw SDK.
    """

    def __init__(
        self,
        config: Settings = settings,
        client: Any | None = None,
        chat_model: Any | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._chat_model = chat_model
        if client is None and chat_model is None:
            self._init_backend()

    def _init_backend(self) -> None:
        cfg = self._config
        if not cfg.openai_api_key:
            logger.warning("AZURE_OPENAI_API_KEY not set. Query translation will be disabled.")
            return

        if cfg.llm_backend == "langchain":
            if cfg.azure_openai_endpoint:
                from langchain_openai import AzureChatOpenAI  # type: ignore

                self._chat_model = AzureChatOpenAI(
                    azure_endpoint=cfg.azure_openai_endpoint,
                    azure_deployment=cfg.openai_model,
                    api_version=cfg.openai_api_version,
                    api_key=cfg.openai_api_key,
                    temperature=cfg.temperature,
                )
            else:
                from langchain_openai import ChatOpenAI  # type: ignore

                self._chat_model = ChatOpenAI(
                    model=cfg.openai_model,
                    api_key=cfg.openai_api_key,
                    temperature=cfg.temperature,
                )
            return

        if cfg.azure_openai_endpoint:
            self._client = AzureOpenAI(
                azure_endpoint=cfg.azure_openai_endpoint,
                api_key=cfg.openai_api_key,
                api_version=cfg.openai_api_version,
            )
        else:
            self._client = OpenAI(api_key=cfg.openai_api_key)

    def is_available(self) -> bool:
        return self._client is not None or self._chat_model is not None

    def _complete_langchain(self, system_prompt: str, question: str) -> str:
        from langchain_core.messages import HumanMessage, SystemMessage  # type: ignore

        response = self._chat_model.invoke(
            [SystemMessage(content=system_prompt), HumanMessage(content=question)]
        )
        content = getattr(response, "content", None)
        if not isinstance(content, str):
            raise TranslationServiceError("Completion returned no text content")
        return content

    def _complete_openai(self, system_prompt: str, question: str) -> str:
        completion = self._client.chat.completions.create(
            model=self._config.openai_model,
            messages=_messages(system_prompt, question),
            temperature=self._config.temperature,
        )
        if not completion.choices:
            raise TranslationServiceError("Completion returned no candidates")
        content = completion.choices[0].message.content
        if content is None:
            raise TranslationServiceError("Completion returned no text content")
        return content

    def translate(self, system_prompt: str, question: str) -> GeneratedQuery:
        if not self.is_available():
            raise TranslationServiceError(
                "LLM is not available. Set AZURE_OPENAI_API_KEY in environment."
            )

        try:
            if self._chat_model is not None:
                raw = self._complete_langchain(system_prompt, question)
            else:
                raw = self._complete_openai(system_prompt, question)
        except TranslationServiceError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("LLM call failed: %s", exc)
            raise TranslationServiceError(f"Completion request failed: {exc}") from exc

        sanitized = sanitize_query(raw)
        if not sanitized:
            raise TranslationServiceError("The model returned an empty DAX query")

        logger.info("Generated DAX: %s", sanitized)
        return GeneratedQuery(raw=raw, sanitized=sanitized)

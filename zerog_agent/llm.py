"""Model transport via litellm."""

import threading
from typing import Any, Dict, Generator, List, Optional, Sequence, Union

import litellm
litellm.suppress_debug_info = True

from .context import attach_context
from .logger import get_logger
from .models import ContextItem, ConversationMessage
from .prompts import build_system_prompt

_log = get_logger(__name__)

MessageLike = Union[ConversationMessage, Dict[str, Any]]


def _as_dict(message: MessageLike) -> Dict[str, Any]:
    if isinstance(message, ConversationMessage):
        return message.to_dict()
    return {"role": message["role"], "content": message["content"]}


class LLMAdapter:
    """Unified LLM interface. Passes api_key/api_base directly to litellm,
    avoiding env-var pollution when switching between providers.

    Satisfies the transport contract used by the orchestrator:
    ``stream()`` yields text fragments and stops early when the cancel
    event is set; ``complete()`` returns one full reply. Provider failures
    surface as ``ConnectionError``.
    """

    def __init__(self, model: str, temperature: float = 0.7,
                 max_tokens: int = 4096, api_base: Optional[str] = None,
                 api_key: Optional[str] = None, system_prompt: str = "",
                 project_map: Optional[str] = None):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_base = api_base
        self.api_key = api_key
        self.system_prompt = system_prompt
        self.project_map = project_map

    def _build_kwargs(self, messages: Sequence[MessageLike],
                      context_items: Optional[List[ContextItem]], mode: str,
                      stream: bool) -> Dict[str, Any]:
        system = build_system_prompt(mode, self.system_prompt, self.project_map)
        history = attach_context([_as_dict(m) for m in messages], context_items)
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}] + history,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if stream:
            kwargs["stream"] = True
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs

    def _call(self, kwargs: Dict[str, Any]):
        try:
            return litellm.completion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise ConnectionError(f"Auth failed. Check API key.\n{e}")
        except litellm.exceptions.APIConnectionError as e:
            raise ConnectionError(f"Cannot connect: model={self.model}, base={self.api_base or 'default'}\n{e}")
        except Exception as e:
            raise ConnectionError(f"AI Service Error: {type(e).__name__}: {e}")

    def complete(self, messages: Sequence[MessageLike],
                 context_items: Optional[List[ContextItem]] = None,
                 mode: str = "ask") -> str:
        response = self._call(self._build_kwargs(messages, context_items, mode, stream=False))
        return response.choices[0].message.content or ""

    def stream(self, messages: Sequence[MessageLike],
               context_items: Optional[List[ContextItem]] = None,
               mode: str = "agent",
               cancel_event: Optional[threading.Event] = None) -> Generator[str, None, None]:
        """Streaming chat. Yields incremental text fragments.

        Falls back to a single non-streaming reply when the provider refuses
        to open a stream.
        """
        kwargs = self._build_kwargs(messages, context_items, mode, stream=True)
        try:
            response_stream = litellm.completion(**kwargs)
        except Exception as e:
            _log.info("Streaming unavailable (%s); falling back to completion", type(e).__name__)
            kwargs.pop("stream", None)
            response = self._call(kwargs)
            content = response.choices[0].message.content or ""
            if content:
                yield content
            return

        try:
            for chunk in response_stream:
                if cancel_event is not None and cancel_event.is_set():
                    _log.info("Stream cancelled by caller")
                    break
                if not chunk.choices:
                    continue
                text = getattr(chunk.choices[0].delta, "content", None)
                if text:
                    yield text
        except Exception as e:
            raise ConnectionError(f"Stream interrupted: {type(e).__name__}: {e}")
        finally:
            close = getattr(response_stream, "close", None)
            if callable(close):
                try:
                    close()
                except Exception:
                    _log.debug("Closing the response stream failed", exc_info=True)

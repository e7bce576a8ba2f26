"""
Completion request/response models and the client interface.

The completion endpoint answers in one of several JSON shapes depending on the
mode it was called in:

    chat:    {"content": "..."}  or  {"choices": [{"message": {"content": "..."}}]}
    search:  {"final_answer_md": "...", "citations": [...], "time_warning": "..."}

The raw payload is parsed once, at the transport boundary, into the tagged
union 'CompletionResponse' ('ChatResponse | SearchResponse', discriminated on
'kind'), and immediately reduced to 'NormalizedResponse'. Nothing downstream of
'CompletionClient.complete' ever branches on the mode again.
"""

from abc import ABC, abstractmethod
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chat_lifecycle.errors import ResponseFormatError
from chat_lifecycle.messages import TurnPayload
from chat_lifecycle.models import default_model_config, get_model_info


class CompletionRequest(BaseModel):
    """
    One call to the completion endpoint.

    'client_message_id' is the id of the assistant turn being produced; it is the
    idempotency key and must stay identical across retries. 'skip_persistence'
    tells the endpoint not to write its own copy of the turn because the client
    persists it.
    """

    room_id: int | None
    messages: list[TurnPayload]
    model: str
    client_message_id: str
    skip_persistence: bool = True

    def _model_config(self) -> dict[str, object]:
        info = get_model_info(self.model)
        return info.model_config_payload() if info else default_model_config()

    def to_chat_body(self) -> dict[str, Any]:
        return {
            "roomId": self.room_id,
            "messages": [message.model_dump(mode="json") for message in self.messages],
            "model": self.model,
            "modelConfig": self._model_config(),
            "clientMessageId": self.client_message_id,
            "skipPersistence": self.skip_persistence,
        }

    def to_search_body(self) -> dict[str, Any]:
        question = self.messages[-1].content if self.messages else ""
        return {
            "question": question,
            "model": self.model,
            "modelConfig": self._model_config(),
        }


class ChatChoiceMessage(BaseModel):
    content: str | None = None


class ChatChoice(BaseModel):
    message: ChatChoiceMessage | None = None


class ChatResponse(BaseModel):
    kind: Literal["chat"] = "chat"
    content: str | None = None
    choices: list[ChatChoice] | None = None
    model: str | None = None

    def extract_content(self) -> str | None:
        if self.content:
            return self.content
        if self.choices and self.choices[0].message:
            return self.choices[0].message.content
        return None


class SearchResponse(BaseModel):
    kind: Literal["search"] = "search"
    final_answer_md: str | None = None
    content: str | None = None
    citations: list[Any] | None = None
    time_warning: str | None = None

    def extract_content(self) -> str | None:
        return self.final_answer_md or self.content


CompletionResponse = Annotated[ChatResponse | SearchResponse, Field(discriminator="kind")]
_COMPLETION_RESPONSE = TypeAdapter(CompletionResponse)


class NormalizedResponse(BaseModel):
    content: str
    model: str
    citations: list[Any] | None = None
    time_warning: str | None = None


def parse_completion_response(raw: Any, is_search_mode: bool) -> ChatResponse | SearchResponse:
    if not isinstance(raw, dict):
        raise ResponseFormatError(f"Expected a JSON object from the completion endpoint, got {type(raw).__name__}")
    tagged = {**raw, "kind": "search" if is_search_mode else "chat"}
    try:
        return _COMPLETION_RESPONSE.validate_python(tagged)
    except PydanticValidationError as exc:
        raise ResponseFormatError(f"Malformed completion response: {exc.error_count()} validation error(s)") from exc


def normalize_response(raw: Any, is_search_mode: bool, requested_model: str) -> NormalizedResponse:
    """Resolve any accepted response shape into a 'NormalizedResponse'.

    Raises 'ResponseFormatError' when the body is not an object, does not match
    the expected shape, or carries no (or only blank) content.
    """
    response = parse_completion_response(raw, is_search_mode)
    content = response.extract_content()
    if not content or not content.strip():
        raise ResponseFormatError("No content in AI response")
    if isinstance(response, SearchResponse):
        return NormalizedResponse(
            content=content,
            model=requested_model,
            citations=response.citations,
            time_warning=response.time_warning,
        )
    return NormalizedResponse(content=content, model=response.model or requested_model)


class CompletionClient(ABC):
    """Abstract transport to the completion endpoint."""

    @abstractmethod
    async def complete(
        self,
        request: CompletionRequest,
        access_token: str,
        is_search_mode: bool = False,
    ) -> NormalizedResponse:
        """Perform exactly one attempt.

        Raise 'NetworkError' for transient failures, 'CompletionRejectedError'
        when the endpoint refuses the request, and 'ResponseFormatError' when the
        answer has no usable content.
        """
        pass

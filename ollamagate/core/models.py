"""Native and OpenAI-compatible transport models."""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = ""


class RequestOptions(BaseModel):
    model_config = ConfigDict(extra="allow")

    temperature: Optional[float] = None
    top_p: Optional[float] = None


# --- native requests -------------------------------------------------------


class OllamaGenerateRequest(BaseModel):
    model: str
    prompt: str = ""
    stream: bool = False
    options: Optional[RequestOptions] = None


class OllamaChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    stream: bool = False
    options: Optional[RequestOptions] = None


class OllamaEmbedRequest(BaseModel):
    model: str
    input: Union[str, list[str]]


# --- OpenAI-compatible requests -------------------------------------------


class OpenAIChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    stream: StrictBool = False
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    n: Optional[int] = None
    stop: Optional[Union[str, list[str]]] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    user: Optional[str] = None
    options: Optional[RequestOptions] = None


class OpenAICompletionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str
    prompt: str = ""
    stream: StrictBool = False
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    n: Optional[int] = None
    stop: Optional[Union[str, list[str]]] = None
    user: Optional[str] = None
    options: Optional[RequestOptions] = None


class OpenAIEmbeddingRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str
    input: Union[str, list[str]]
    user: Optional[str] = None


# --- OpenAI-compatible responses ------------------------------------------


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = "stop"


class CompletionChoice(BaseModel):
    text: str = ""
    index: int = 0
    logprobs: Optional[dict[str, Any]] = None
    finish_reason: Optional[str] = "stop"


class OpenAIChatResponse(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)


class OpenAICompletionResponse(BaseModel):
    id: str
    object: str = "text_completion"
    created: int
    model: str
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)


class ChunkDelta(BaseModel):
    role: Optional[str] = None
    content: str = ""


class ChatChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta
    finish_reason: Optional[str] = None


class OpenAIChatChunk(BaseModel):
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChatChunkChoice] = Field(default_factory=list)


class CompletionChunkChoice(BaseModel):
    text: str = ""
    index: int = 0
    logprobs: Optional[dict[str, Any]] = None
    finish_reason: Optional[str] = None


class OpenAICompletionChunk(BaseModel):
    id: str
    object: str = "text_completion.chunk"
    created: int
    model: str
    choices: list[CompletionChunkChoice] = Field(default_factory=list)


class EmbeddingResult(BaseModel):
    object: str = "embedding"
    embedding: list[float] = Field(default_factory=list)
    index: int = 0


class OpenAIEmbeddingResponse(BaseModel):
    object: str = "list"
    data: list[EmbeddingResult] = Field(default_factory=list)
    model: str
    usage: Usage = Field(default_factory=Usage)


class ModelPermission(BaseModel):
    id: str
    object: str = "model_permission"
    created: int
    allow_create_engine: bool = False
    allow_sampling: bool = True
    allow_logprobs: bool = True
    allow_search_indices: bool = False
    allow_view: bool = True
    allow_fine_tuning: bool = False
    organization: str = "*"
    group: Optional[str] = None
    is_blocking: bool = False


class ModelData(BaseModel):
    id: str
    object: str = "model"
    created: int
    owned_by: str = "organization-owner"
    permission: list[ModelPermission] = Field(default_factory=list)
    root: str
    parent: Optional[str] = None


class OpenAIModelList(BaseModel):
    object: str = "list"
    data: list[ModelData] = Field(default_factory=list)

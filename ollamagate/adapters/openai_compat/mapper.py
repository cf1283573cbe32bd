"""OpenAI <-> native model mapping."""

from __future__ import annotations

import math
import time
import uuid
from typing import Any

from ollamagate.core.errors import TranslationError
from ollamagate.core.models import (
    ChatChoice,
    ChatChunkChoice,
    ChatMessage,
    ChunkDelta,
    CompletionChoice,
    CompletionChunkChoice,
    EmbeddingResult,
    ModelData,
    ModelPermission,
    OllamaChatRequest,
    OllamaEmbedRequest,
    OllamaGenerateRequest,
    OpenAIChatChunk,
    OpenAIChatRequest,
    OpenAIChatResponse,
    OpenAICompletionChunk,
    OpenAICompletionRequest,
    OpenAICompletionResponse,
    OpenAIEmbeddingRequest,
    OpenAIEmbeddingResponse,
    OpenAIModelList,
    RequestOptions,
    Usage,
)
from ollamagate.util.fields import as_number, lookup
from ollamagate.util.logger import get_logger

logger = get_logger("mapper")

CHAT = "chat"
COMPLETION = "completion"


def generate_response_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


def _now() -> int:
    return int(time.time())


def _merge_options(
    options: RequestOptions | None,
    temperature: float | None,
    top_p: float | None,
) -> RequestOptions | None:
    if options is None and temperature is None and top_p is None:
        return None
    merged = options.model_copy() if options is not None else RequestOptions()
    if merged.temperature is None and temperature is not None:
        merged.temperature = temperature
    if merged.top_p is None and top_p is not None:
        merged.top_p = top_p
    return merged


def to_native_chat(req: OpenAIChatRequest) -> OllamaChatRequest:
    return OllamaChatRequest(
        model=req.model,
        messages=list(req.messages),
        stream=req.stream,
        options=_merge_options(req.options, req.temperature, req.top_p),
    )


def to_native_generate(req: OpenAICompletionRequest) -> OllamaGenerateRequest:
    return OllamaGenerateRequest(
        model=req.model,
        prompt=req.prompt,
        stream=req.stream,
        options=_merge_options(req.options, req.temperature, req.top_p),
    )


def to_native_embed(req: OpenAIEmbeddingRequest) -> OllamaEmbedRequest:
    return OllamaEmbedRequest(model=req.model, input=req.input)


def _text_field(native: dict[str, Any], path: str) -> str:
    try:
        return lookup(native, path, str).require()
    except TranslationError as exc:
        logger.warning("translation degraded field=%s reason=%s", exc.field, exc.reason)
        return ""


def _token_count(native: dict[str, Any], path: str) -> int:
    found = lookup(native, path, (int, float))
    if not found.ok:
        return 0
    # json.loads 接受 Infinity / NaN / 1e400
    if isinstance(found.value, float) and not math.isfinite(found.value):
        logger.warning("translation degraded field=%s reason=non_finite value=%s", path, found.value)
        return 0
    return int(found.value)


def _usage(native: dict[str, Any]) -> Usage:
    prompt_tokens = _token_count(native, "prompt_eval_count")
    completion_tokens = _token_count(native, "eval_count")
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


def to_openai_chat(native: dict[str, Any], model: str) -> OpenAIChatResponse:
    content = _text_field(native, "message.content")
    return OpenAIChatResponse(
        id=generate_response_id(),
        created=_now(),
        model=model,
        choices=[ChatChoice(index=0, message=ChatMessage(role="assistant", content=content), finish_reason="stop")],
        usage=_usage(native),
    )


def to_openai_completion(native: dict[str, Any], model: str) -> OpenAICompletionResponse:
    text = _text_field(native, "response")
    return OpenAICompletionResponse(
        id=generate_response_id(),
        created=_now(),
        model=model,
        choices=[CompletionChoice(text=text, index=0, finish_reason="stop")],
        usage=_usage(native),
    )


def _is_done(native: dict[str, Any]) -> bool:
    return lookup(native, "done", bool).or_default(False) is True


def to_openai_chat_chunk(native: dict[str, Any], model: str) -> OpenAIChatChunk:
    content = _text_field(native, "message.content")
    return OpenAIChatChunk(
        id=generate_response_id(),
        created=_now(),
        model=model,
        choices=[
            ChatChunkChoice(
                index=0,
                delta=ChunkDelta(role="assistant", content=content),
                finish_reason="stop" if _is_done(native) else None,
            )
        ],
    )


def to_openai_completion_chunk(native: dict[str, Any], model: str) -> OpenAICompletionChunk:
    text = _text_field(native, "response")
    return OpenAICompletionChunk(
        id=generate_response_id(),
        created=_now(),
        model=model,
        choices=[CompletionChunkChoice(text=text, index=0, finish_reason="stop" if _is_done(native) else None)],
    )


def to_openai_chunk(kind: str, native: dict[str, Any], model: str) -> OpenAIChatChunk | OpenAICompletionChunk:
    if kind == CHAT:
        return to_openai_chat_chunk(native, model)
    if kind == COMPLETION:
        return to_openai_completion_chunk(native, model)
    raise ValueError(f"unsupported stream kind: {kind}")


def _to_float_vector(raw: Any) -> list[float] | None:
    if not isinstance(raw, list):
        return None
    vector: list[float] = []
    for item in raw:
        number = as_number(item)
        if number is None:
            return None
        vector.append(number)
    return vector


def _embedding_error(model: str) -> OpenAIEmbeddingResponse:
    return OpenAIEmbeddingResponse(object="error", data=[], model=model)


def to_openai_embedding(native: dict[str, Any], model: str) -> OpenAIEmbeddingResponse:
    batch = lookup(native, "embeddings", list)
    if batch.ok:
        raw_vectors = batch.value
    else:
        # 兼容旧版 /api/embeddings 的单向量返回
        single = lookup(native, "embedding", list)
        if not single.ok:
            logger.warning(
                "embedding translation failed embeddings=%s embedding=%s",
                batch.problem,
                single.problem,
            )
            return _embedding_error(model)
        raw_vectors = [single.value]

    if not raw_vectors:
        logger.warning("embedding translation failed: empty embeddings")
        return _embedding_error(model)

    results: list[EmbeddingResult] = []
    for index, raw in enumerate(raw_vectors):
        vector = _to_float_vector(raw)
        if vector is None:
            logger.warning("embedding translation failed: malformed vector index=%d", index)
            return _embedding_error(model)
        results.append(EmbeddingResult(embedding=vector, index=index))

    prompt_tokens = _token_count(native, "prompt_eval_count")
    return OpenAIEmbeddingResponse(
        data=results,
        model=model,
        usage=Usage(prompt_tokens=prompt_tokens, completion_tokens=0, total_tokens=prompt_tokens),
    )


def to_openai_models(native: dict[str, Any]) -> OpenAIModelList:
    entries = lookup(native, "models", list)
    if not entries.ok:
        logger.warning("model list translation degraded field=models reason=%s", entries.problem)
        return OpenAIModelList(data=[])

    created = _now()
    permission_id = f"modelperm-{time.strftime('%Y%m%d%H%M%S')}"
    data: list[ModelData] = []
    for entry in entries.value:
        name = lookup(entry, "name", str)
        if not name.ok:
            logger.debug("model entry skipped reason=%s", name.problem)
            continue
        data.append(
            ModelData(
                id=name.value,
                created=created,
                root=name.value,
                permission=[ModelPermission(id=permission_id, created=created)],
            )
        )
    return OpenAIModelList(data=data)

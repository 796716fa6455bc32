"""
Inference client for Gemini and Claude.

Sends the ordered frame batch (each image preceded by its view label) plus
the reconstruction prompt and parses a ``{code, explanation}`` answer.
Runs the blocking SDK calls in a thread-pool so the event loop stays free.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Sequence

import anthropic
from google import genai
from google.genai import types as genai_types

from .capture import CapturedFrame
from .code_processor import ResponseParseError, parse_generation

logger = logging.getLogger(__name__)

LLM_NAMES = ("gemini", "claude", "claude-sonnet", "claude-opus")


class InferenceError(RuntimeError):
    kind = "inference_failed"
    status_code = 502


@dataclass(frozen=True)
class UsageInfo:
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    input_cost_per_mtok: float = 0.0
    output_cost_per_mtok: float = 0.0
    cost_usd: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _usage(model: str, tokens_in: int, tokens_out: int, in_cost: float, out_cost: float) -> UsageInfo:
    cost = round(tokens_in / 1_000_000 * in_cost + tokens_out / 1_000_000 * out_cost, 4)
    return UsageInfo(
        model=model,
        input_tokens=tokens_in,
        output_tokens=tokens_out,
        input_cost_per_mtok=in_cost,
        output_cost_per_mtok=out_cost,
        cost_usd=cost,
    )


@dataclass
class InferenceResponse:
    code: str
    explanation: str
    usage: UsageInfo
    elapsed_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Client pool: lazy singleton per API key to avoid re-creating on every call
# ---------------------------------------------------------------------------

_claude_clients: dict[str, anthropic.Anthropic] = {}
_gemini_clients: dict[str, genai.Client] = {}


def _get_claude_client(api_key: str) -> anthropic.Anthropic:
    if api_key not in _claude_clients:
        _claude_clients[api_key] = anthropic.Anthropic(api_key=api_key)
    return _claude_clients[api_key]


def _get_gemini_client(api_key: str) -> genai.Client:
    if api_key not in _gemini_clients:
        _gemini_clients[api_key] = genai.Client(api_key=api_key)
    return _gemini_clients[api_key]


def _parse(raw: str, model: str) -> tuple[str, str]:
    try:
        return parse_generation(raw)
    except ResponseParseError as e:
        raise InferenceError(f"{model} returned no usable code: {e}") from e


def resolve_claude_model(llm_name: str) -> str:
    if llm_name == "claude-sonnet":
        return "claude-sonnet-4-6"
    return "claude-opus-4-6"


# ---------------------------------------------------------------------------
# Gemini (sync, runs in thread-pool)
# ---------------------------------------------------------------------------

_RESPONSE_SCHEMA = genai_types.Schema(
    type=genai_types.Type.OBJECT,
    properties={
        "code": genai_types.Schema(type=genai_types.Type.STRING),
        "explanation": genai_types.Schema(type=genai_types.Type.STRING),
    },
    required=["code", "explanation"],
)


def _call_gemini_sync(
    api_key: str,
    gemini_model: str,
    system: str,
    prompt: str,
    frames: Sequence[CapturedFrame],
) -> InferenceResponse:
    client = _get_gemini_client(api_key)
    logger.info("Calling Gemini (%s, %d images)...", gemini_model, len(frames))
    t0 = time.time()

    parts: list[Any] = [genai_types.Part(text=prompt)]
    for frame in frames:
        parts.append(genai_types.Part(text=f"[{frame.index + 1}] {frame.label}"))
        parts.append(genai_types.Part.from_bytes(data=frame.data, mime_type=frame.mime_type))

    config = genai_types.GenerateContentConfig(
        system_instruction=system,
        response_mime_type="application/json",
        response_schema=_RESPONSE_SCHEMA,
        temperature=0.1,
    )

    response = client.models.generate_content(
        model=gemini_model,
        contents=genai_types.Content(parts=parts, role="user"),
        config=config,
    )
    raw = response.text or ""
    if not raw:
        raise InferenceError("Gemini returned an empty response")

    usage_info = UsageInfo(model=gemini_model)
    um = getattr(response, "usage_metadata", None)
    if um:
        usage_info = _usage(
            gemini_model,
            getattr(um, "prompt_token_count", 0) or 0,
            getattr(um, "candidates_token_count", 0) or 0,
            1.25,
            10.0,
        )
        logger.info(
            "Gemini tokens: in=%d, out=%d, cost=$%.4f",
            usage_info.input_tokens, usage_info.output_tokens, usage_info.cost_usd,
        )

    code, explanation = _parse(raw, gemini_model)
    elapsed = time.time() - t0
    logger.info("Gemini responded: %.1fs, %d chars", elapsed, len(raw))
    return InferenceResponse(code=code, explanation=explanation, usage=usage_info, elapsed_seconds=elapsed)


# ---------------------------------------------------------------------------
# Claude (sync, runs in thread-pool)
# ---------------------------------------------------------------------------

def _call_claude_sync(
    api_key: str,
    model: str,
    system: str,
    prompt: str,
    frames: Sequence[CapturedFrame],
    max_tokens: int = 20000,
) -> InferenceResponse:
    client = _get_claude_client(api_key)
    logger.info("Calling Claude (%s, %d images)...", model, len(frames))
    t0 = time.time()

    content: list[dict[str, Any]] = []
    for frame in frames:
        content.append({"type": "text", "text": f"[{frame.index + 1}] {frame.label}"})
        content.append({
            "type": "image",
            "source": {"type": "base64", "media_type": frame.mime_type, "data": frame.b64},
        })
    content.append({"type": "text", "text": prompt})

    max_retries = 3
    for attempt in range(1, max_retries + 1):
        try:
            response = client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": content}],
            )
            break
        except anthropic.APIStatusError as e:
            if getattr(e, "status_code", 0) == 529 and attempt < max_retries:
                wait = attempt * 15
                logger.warning("Claude overloaded (attempt %d/%d), retrying in %ds...", attempt, max_retries, wait)
                time.sleep(wait)
                continue
            raise

    raw = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
    if "sonnet" in model:
        in_cost, out_cost = 3.0, 15.0
    else:
        in_cost, out_cost = 15.0, 75.0
    usage_info = _usage(model, response.usage.input_tokens, response.usage.output_tokens, in_cost, out_cost)
    logger.info(
        "Claude (%s) tokens: in=%d, out=%d, cost=$%.4f",
        model, usage_info.input_tokens, usage_info.output_tokens, usage_info.cost_usd,
    )

    code, explanation = _parse(raw, model)
    elapsed = time.time() - t0
    logger.info("Claude responded: %.1fs, %d chars", elapsed, len(raw))
    return InferenceResponse(code=code, explanation=explanation, usage=usage_info, elapsed_seconds=elapsed)


# ---------------------------------------------------------------------------
# Unified async interface
# ---------------------------------------------------------------------------

async def generate_scad(
    llm_name: str,
    system_prompt: str,
    user_prompt: str,
    frames: Sequence[CapturedFrame],
    anthropic_api_key: str = "",
    gemini_api_key: str = "",
    gemini_model: str = "gemini-3-pro-preview",
) -> InferenceResponse:
    """Offload the blocking model call to the default thread-pool."""
    if not frames:
        raise InferenceError("No frames to send")

    loop = asyncio.get_running_loop()

    if llm_name == "gemini":
        if not gemini_api_key:
            raise InferenceError("GEMINI_API_KEY not set")
        return await loop.run_in_executor(
            None,
            _call_gemini_sync,
            gemini_api_key,
            gemini_model,
            system_prompt,
            user_prompt,
            list(frames),
        )

    if llm_name not in LLM_NAMES:
        raise InferenceError(f"Unknown llm_name: {llm_name}")
    if not anthropic_api_key:
        raise InferenceError("ANTHROPIC_API_KEY not set")
    return await loop.run_in_executor(
        None,
        _call_claude_sync,
        anthropic_api_key,
        resolve_claude_model(llm_name),
        system_prompt,
        user_prompt,
        list(frames),
    )

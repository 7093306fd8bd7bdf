"""
╔══════════════════════════════════════════╗
║       HELM — Reasoning Engine Client     ║
╚══════════════════════════════════════════╝

Gemini computer-use model via the google-genai SDK.

  generate(history) → EngineOutput

EngineOutput normalizes a candidate so the agent loop never
touches raw SDK responses: reasoning text, function calls,
finish reason, and whether the task is over.
"""

import asyncio
import base64
import logging
import random

from google import genai
from google.genai import types

logger = logging.getLogger("HELM")

DEFAULT_MODEL = "gemini-2.5-computer-use-preview-10-2025"
NORMAL_FINISH = "STOP"


# ─────────────────────────────────────────────
#  Normalized Response Objects
# ─────────────────────────────────────────────

class Usage:
    """Token usage stats."""
    def __init__(self, input_tokens=0, output_tokens=0):
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens


class EngineOutput:
    """One model turn: the raw Content plus what the loop needs from it."""

    def __init__(self, content=None, finish_reason=None, usage=None):
        self.content = content                # types.Content | None
        self.finish_reason = finish_reason    # "STOP", "SAFETY", ... | None
        self.usage = usage or Usage()

    @property
    def parts(self):
        if self.content is None or not self.content.parts:
            return []
        return self.content.parts

    @property
    def texts(self):
        return [p.text for p in self.parts if p.text]

    @property
    def message(self):
        return "\n".join(self.texts).strip()

    @property
    def function_calls(self):
        """Function calls in the order the model emitted them."""
        return [p.function_call for p in self.parts if p.function_call and p.function_call.name]

    @property
    def abnormal(self):
        return bool(self.finish_reason) and self.finish_reason != NORMAL_FINISH

    @property
    def completed(self):
        """No more calls to run, or the model stopped for a non-normal reason."""
        return not self.function_calls or self.abnormal


def _finish_reason_name(reason):
    if reason is None:
        return None
    return getattr(reason, "value", None) or str(reason)


def parse_response(response):
    """Convert a google.genai response to an EngineOutput. No candidates → empty, completed output."""
    if not response.candidates:
        return EngineOutput()

    candidate = response.candidates[0]
    usage = Usage()
    metadata = getattr(response, "usage_metadata", None)
    if metadata:
        usage = Usage(
            input_tokens=getattr(metadata, "prompt_token_count", 0) or 0,
            output_tokens=getattr(metadata, "candidates_token_count", 0) or 0,
        )
    return EngineOutput(candidate.content, _finish_reason_name(candidate.finish_reason), usage)


# ─────────────────────────────────────────────
#  History builders
# ─────────────────────────────────────────────

def function_response_part(call, url, image_base64=None, error=None):
    """Function-result part for one call: page URL, plus the screenshot when there is one."""
    response = {"url": url or ""}
    if error:
        response["error"] = error
    parts = None
    if image_base64:
        parts = [types.FunctionResponsePart(
            inline_data=types.FunctionResponseBlob(
                mime_type="image/png",
                data=base64.b64decode(image_base64),
            )
        )]
    return types.Part(function_response=types.FunctionResponse(
        id=call.id,
        name=call.name,
        response=response,
        parts=parts,
    ))


def computer_use_tool():
    return types.Tool(computer_use=types.ComputerUse(environment=types.Environment.ENVIRONMENT_BROWSER))


# ─────────────────────────────────────────────
#  Client
# ─────────────────────────────────────────────

class GeminiClient:
    """Async Gemini computer-use client with retry on transient errors.

    Retry strategy: exponential backoff with full jitter.
      attempt 1: random(0, 2·base)
      attempt 2: random(0, 4·base)  … capped
    """

    def __init__(self, api_key=None, model=DEFAULT_MODEL, temperature=1.0, top_p=0.95, top_k=40,
                 max_output_tokens=8192, max_retries=5, client=None):
        self.model = model
        self.max_retries = max_retries
        self._client = client or genai.Client(api_key=api_key)
        self._config = types.GenerateContentConfig(
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            max_output_tokens=max_output_tokens,
            tools=[computer_use_tool()],
        )

    @staticmethod
    def _backoff_delay(attempt, base=0.5, cap=30.0):
        """Exponential backoff with full jitter: delay = random(0, min(cap, base * 2^attempt))."""
        exp = min(cap, base * (2 ** attempt))
        return random.uniform(0, exp)

    async def generate(self, history):
        """Ask the model for the next turn given the full history."""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.aio.models.generate_content(
                    model=self.model,
                    contents=history,
                    config=self._config,
                )
                return parse_response(response)
            except Exception as e:
                error_str = str(e).lower()

                # Rate limit / resource exhausted
                if any(m in error_str for m in ("rate_limit", "rate limit", "429", "resource_exhausted")) and attempt < self.max_retries:
                    delay = self._backoff_delay(attempt, base=2.0, cap=60.0)
                    logger.warning(f"Gemini rate limited — retry {attempt}/{self.max_retries} in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue

                # Server errors
                if any(code in error_str for code in ("500", "502", "503", "529")) and attempt < self.max_retries:
                    delay = self._backoff_delay(attempt, base=1.0, cap=30.0)
                    logger.warning(f"Gemini server error — retry {attempt}/{self.max_retries} in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue

                raise

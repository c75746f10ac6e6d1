"""
llm.py
------
Gemini access for the cloud planner (google-genai SDK).

The client is created on first use so that importing this module never
requires GEMINI_API_KEY; callers that run without a key get a RuntimeError.
"""

from __future__ import annotations

from google import genai

import config

_client: genai.Client | None = None


def get_client() -> genai.Client:
    global _client
    if _client is None:
        if not config.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY missing")
        _client = genai.Client(api_key=config.GEMINI_API_KEY)
    return _client


async def call_llm(prompt: str, model: str | None = None) -> str:
    response = await get_client().aio.models.generate_content(
        model=model or config.GEMINI_MODEL_NAME,
        contents=prompt,
    )

    if not response or not response.text:
        raise RuntimeError("Empty Gemini response")

    return response.text.strip()

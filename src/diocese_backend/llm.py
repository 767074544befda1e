"""
Thin client for an OpenAI compatible chat completion API.
"""

import json
import logging
from typing import Annotated, Any, Dict, List, Optional
import httpx
from fastapi import Header

from diocese_backend.settings import settings

logger = logging.getLogger(__name__)

CHAT_NAME_SYSTEM_PROMPT = """
You are an assistant that generates short, concise, descriptive chat names for a PostgreSQL chatbot.
The name must:
- Capture the essence of the conversation in one sentence.
- Be relevant to PostgreSQL topics.
- Contain no extra words, labels, or prefixes such as "Title:" or "Chat:".
- Not include quotation marks or the word "Chat" anywhere.

Example of a good name: Counting users
Example of a good name: Counting users in the last 30 days

Example of a bad name: Chat about PostgreSQL: Counting users
Example of a bad name: "Counting users"

Your response should be the title text only, nothing else.
"""

SQL_CORRECTION_SYSTEM_PROMPT = """
You are a specialized SQL correction assistant focused on PostgreSQL. Your task is to fix errors in SQL code.

CRITICAL INSTRUCTIONS:
1. Return ONLY the corrected SQL code - no explanations, no comments, no backticks
2. Fix syntax errors like missing commas, incorrect keywords, incorrect syntax
3. Fix other common errors (column references, table joins, etc.)
4. Preserve the overall structure and intent of the query
5. Ensure proper SQL statement termination
6. Your output should be ONLY the corrected SQL code ready to execute

Example input: "SELECT column1 column2 FROM table"
Example output: "SELECT column1, column2 FROM table"
"""


class LLMError(Exception):
    """Raised when the LLM provider cannot produce an answer"""


class LLMClient:

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 model: Optional[str] = None, timeout: float = 60.0):
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    async def complete(self, system: str, messages: List[Dict[str, Any]], model: Optional[str] = None) -> str:
        """Return the assistant's reply for the given conversation."""

        if not self.api_key:
            raise LLMError("Missing OpenAI API key")

        payload = {
            "model": model or self.model,
            "messages": [{"role": "system", "content": system}] + [
                {"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages
            ]
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/chat/completions", headers=self._headers(), json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"LLM request failed with status {e.response.status_code}: {e.response.text}")
            raise LLMError(f"LLM request failed: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"LLM request failed: {e}")
            raise LLMError("LLM provider unreachable") from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError("Unexpected LLM response format") from e

    async def generate_chat_name(self, messages: List[Dict[str, Any]]) -> str:
        prompt = f"The messages are <MESSAGES>{json.dumps(messages)}</MESSAGES>"
        name = await self.complete(
            CHAT_NAME_SYSTEM_PROMPT,
            [{"role": "user", "content": prompt}],
            model=settings.OPENAI_NAME_MODEL
        )
        return name.strip().strip('"')[:100]

    async def correct_sql(self, sql: str) -> str:
        return await self.complete(SQL_CORRECTION_SYSTEM_PROMPT, [{"role": "user", "content": sql}])

    async def list_models(self) -> List[str]:

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}/models", headers=self._headers())
            response.raise_for_status()

        return [m["id"] for m in response.json().get("data", [])]


def get_llm_client(
    x_openai_api_key: Annotated[Optional[str], Header()] = None,
    x_model: Annotated[Optional[str], Header()] = None
) -> LLMClient:
    """Client for the current request, honouring per-request key and model overrides"""
    return LLMClient(api_key=x_openai_api_key, model=x_model)

"""
LLM-backed extraction of transactions from raw bank statement text.

Bank CSV exports differ per bank (column names, delimiters, sign conventions),
so the statement is handed to a model that returns a uniform JSON array.
"""
import os
import re
import json
import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from app.schemas import RawTransaction

logger = logging.getLogger(__name__)


class StatementParseError(ValueError):
    """The extraction service replied with something that is not a transaction list."""


class ExtractionUnavailableError(RuntimeError):
    """No extraction backend is configured."""


class OpenAIStatementExtractor:
    """
    Extracts {date, description, amount, balance?} rows from statement text.

    Environment Variables:
    - OPENAI_API_KEY: OpenAI API key
    - EXTRACTION_LLM_MODEL: model to use (default: gpt-4o-mini)
    - EXTRACTION_LLM_MAX_TOKENS: max tokens for the reply (default: 4096)
    - EXTRACTION_MAX_CHARS: statement text is truncated to this length (default: 50000)
    """

    LLM_MODEL = os.getenv("EXTRACTION_LLM_MODEL", "gpt-4o-mini")
    LLM_MAX_TOKENS = int(os.getenv("EXTRACTION_LLM_MAX_TOKENS", "4096"))
    MAX_CHARS = int(os.getenv("EXTRACTION_MAX_CHARS", "50000"))

    PROMPT_TEMPLATE = """Parse this bank statement CSV. Extract transactions as a JSON array.

Each transaction should have these fields:
- date: string (YYYY-MM-DD format)
- description: string (the merchant/payee name)
- amount: number (negative for debits/charges, positive for credits)
- balance: number (optional, if present)

CSV content:
{content}

Return ONLY a valid JSON array, no other text. If you cannot parse the file, return an empty array []."""

    def __init__(self, client: Optional[Any] = None):
        self._openai_client = client

    def _get_openai_client(self) -> Any:
        if self._openai_client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ExtractionUnavailableError("OPENAI_API_KEY not set, statement extraction is unavailable")
            from openai import OpenAI
            self._openai_client = OpenAI(api_key=api_key)
        return self._openai_client

    @staticmethod
    def parse_reply(text: str) -> List[RawTransaction]:
        """
        Decode the first JSON array in a model reply.

        Rows that do not validate are dropped. A reply without an array is an
        empty result; an array that is not valid JSON raises StatementParseError.
        """
        match = re.search(r"\[[\s\S]*\]", text or "")
        if not match:
            return []

        try:
            rows = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise StatementParseError(f"Extraction reply is not valid JSON: {e}") from e

        transactions = []
        for index, row in enumerate(rows):
            try:
                transactions.append(RawTransaction.model_validate(row))
            except ValidationError as e:
                logger.warning(f"[BANK_IMPORT] Skipping extracted row {index}: {e.error_count()} validation errors")
        return transactions

    def extract(self, content: str) -> List[RawTransaction]:
        client = self._get_openai_client()
        truncated = content[:self.MAX_CHARS]
        if len(content) > self.MAX_CHARS:
            logger.info(f"[BANK_IMPORT] Statement truncated from {len(content)} to {self.MAX_CHARS} characters")

        response = client.chat.completions.create(
            model=self.LLM_MODEL,
            messages=[
                {
                    "role": "system",
                    "content": "You convert bank statements into JSON. Respond with a JSON array only."
                },
                {"role": "user", "content": self.PROMPT_TEMPLATE.format(content=truncated)}
            ],
            temperature=0,
            max_tokens=self.LLM_MAX_TOKENS,
        )
        text = response.choices[0].message.content or ""
        return self.parse_reply(text)

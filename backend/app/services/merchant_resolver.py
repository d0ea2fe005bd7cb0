"""
Service for resolving raw bank descriptions to canonical subscription services.
Uses the merchant alias table first, then falls back to an LLM classifier.
"""
import os
import re
import json
import time
import logging
from typing import Optional, List, Dict, Any, Iterable, Pattern
from dataclasses import dataclass
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy.orm import Session

from app.models import MerchantAlias
from app.schemas import MerchantMatch
from app.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


ALIAS_MATCH_CONFIDENCE = 0.95
ALIAS_CACHE_KEY = "merchant_aliases"
WILDCARD = "*"

MERCHANT_RESOLUTION_CONCURRENCY = int(os.getenv("MERCHANT_RESOLUTION_CONCURRENCY", "4"))


def compile_alias_pattern(pattern: str) -> Pattern:
    """
    Turn an alias pattern such as "APPLE.COM/BILL*" into an anchored regex.

    Metacharacters are escaped before the wildcard is substituted, so "." stays
    literal and only "*" matches anything.
    """
    escaped = re.escape(pattern.strip())
    return re.compile("^" + escaped.replace(re.escape(WILDCARD), ".*"), re.IGNORECASE)


@dataclass(frozen=True)
class AliasRule:
    pattern: str
    service_name: str
    regex: Pattern

    @classmethod
    def build(cls, pattern: str, service_name: str) -> "AliasRule":
        return cls(pattern=pattern, service_name=service_name, regex=compile_alias_pattern(pattern))


class MerchantAliasStore:
    """Read side of the merchant alias table."""

    def __init__(self, db: Session):
        self.db = db

    def list_aliases(self) -> List[AliasRule]:
        aliases = self.db.query(MerchantAlias).order_by(MerchantAlias.created_at, MerchantAlias.bank_pattern).all()
        return [AliasRule.build(alias.bank_pattern, alias.service_name) for alias in aliases]


class OpenAIMerchantClassifier:
    """
    Asks an LLM which subscription service a bank description belongs to.

    Environment Variables:
    - OPENAI_API_KEY: OpenAI API key (classifier disabled when unset)
    - MERCHANT_LLM_MODEL: model to use (default: gpt-4o-mini)
    - MERCHANT_LLM_TEMPERATURE: temperature (default: 0.0)
    - MERCHANT_LLM_MAX_TOKENS: max tokens for the reply (default: 100)
    - MERCHANT_LLM_MAX_RETRIES: attempts per call (default: 3)
    - MERCHANT_LLM_RETRY_DELAY: base delay between attempts in seconds (default: 1.0)
    """

    LLM_MODEL = os.getenv("MERCHANT_LLM_MODEL", "gpt-4o-mini")
    LLM_TEMPERATURE = float(os.getenv("MERCHANT_LLM_TEMPERATURE", "0.0"))
    LLM_MAX_TOKENS = int(os.getenv("MERCHANT_LLM_MAX_TOKENS", "100"))
    LLM_MAX_RETRIES = int(os.getenv("MERCHANT_LLM_MAX_RETRIES", "3"))
    LLM_RETRY_DELAY = float(os.getenv("MERCHANT_LLM_RETRY_DELAY", "1.0"))

    PROMPT_TEMPLATE = """Bank transaction description: "{description}"

What subscription service is this? Return JSON only:
{{"serviceName": "Name or null", "confidence": 0.0-1.0}}

Common examples:
- NETFLIX.COM 800-123 = Netflix
- SPOTIFY USA = Spotify
- AMZN PRIME*1234 = Amazon Prime
- APPLE.COM/BILL = Apple Services

If not a recognizable subscription service, return {{"serviceName": null, "confidence": 0.0}}"""

    def __init__(self, client: Optional[Any] = None):
        self._openai_client = client

    def _get_openai_client(self) -> Optional[Any]:
        if self._openai_client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                logger.warning("OPENAI_API_KEY not set, probabilistic merchant matching is unavailable")
                return None
            from openai import OpenAI
            self._openai_client = OpenAI(api_key=api_key)
        return self._openai_client

    @property
    def available(self) -> bool:
        return self._get_openai_client() is not None

    @staticmethod
    def _extract_json_object(text: str) -> Dict[str, Any]:
        match = re.search(r"\{[\s\S]*\}", text or "")
        if not match:
            raise ValueError(f"No JSON object in classifier reply: {text[:100]!r}")
        payload = json.loads(match.group(0))
        if not isinstance(payload, dict):
            raise ValueError("Classifier reply is not a JSON object")
        return payload

    def classify(self, description: str) -> Optional[Dict[str, Any]]:
        """
        Classify a description.

        Returns:
            The decoded reply ({"serviceName": ..., "confidence": ...}), or None
            when no client is configured.

        Raises:
            The last API error after all retries, or ValueError on a malformed reply.
        """
        client = self._get_openai_client()
        if client is None:
            return None

        prompt = self.PROMPT_TEMPLATE.format(description=description.replace('"', "'"))
        for attempt in range(self.LLM_MAX_RETRIES):
            try:
                response = client.chat.completions.create(
                    model=self.LLM_MODEL,
                    messages=[
                        {
                            "role": "system",
                            "content": "You identify subscription services from bank statement descriptions. Respond with JSON only."
                        },
                        {"role": "user", "content": prompt}
                    ],
                    temperature=self.LLM_TEMPERATURE,
                    max_tokens=self.LLM_MAX_TOKENS,
                )
            except Exception as e:
                logger.warning(f"[LLM] Merchant classification attempt {attempt + 1} failed: {type(e).__name__}: {e}")
                if attempt < self.LLM_MAX_RETRIES - 1:
                    time.sleep(self.LLM_RETRY_DELAY * (attempt + 1))
                    continue
                raise

            text = response.choices[0].message.content or ""
            return self._extract_json_object(text)

        return None


class MerchantResolver:
    """
    Two-tier merchant resolution.

    1. Alias tier: anchored, case-insensitive wildcard patterns from the alias
       table. First match wins with a fixed confidence of 0.95.
    2. Probabilistic tier: the classifier collaborator. Any failure degrades
       to an unmatched result.

    `resolve` never raises.

    Example:
        >>> resolver = MerchantResolver(MerchantAliasStore(db), OpenAIMerchantClassifier(), cache)
        >>> resolver.resolve("NETFLIX.COM 800-123-4567")
        MerchantMatch(service_name='Netflix', confidence=0.95, source='alias_db')
    """

    def __init__(
        self,
        alias_store: Any,
        classifier: Optional[Any] = None,
        cache: Optional[TTLCache] = None,
        concurrency: int = MERCHANT_RESOLUTION_CONCURRENCY,
    ):
        self.alias_store = alias_store
        self.classifier = classifier
        self.cache = cache
        self.concurrency = max(1, concurrency)

    def _load_rules(self) -> List[AliasRule]:
        try:
            if self.cache is not None:
                return self.cache.get_or_load(ALIAS_CACHE_KEY, self.alias_store.list_aliases)
            return self.alias_store.list_aliases()
        except Exception:
            logger.exception("Failed to load merchant aliases, continuing without alias tier")
            return []

    @staticmethod
    def _match_alias(description: str, rules: Iterable[AliasRule]) -> Optional[str]:
        normalized = (description or "").upper().strip()
        for rule in rules:
            if rule.regex.match(normalized):
                return rule.service_name
        return None

    def find_alias(self, description: str) -> Optional[str]:
        """Return the service name of the first matching alias, if any."""
        return self._match_alias(description, self._load_rules())

    def _classify(self, description: str) -> MerchantMatch:
        if self.classifier is None:
            return MerchantMatch()

        try:
            reply = self.classifier.classify(description)
        except Exception as e:
            logger.warning(f"Merchant classifier failed for '{description[:50]}': {type(e).__name__}: {e}")
            return MerchantMatch()

        if reply is None:
            return MerchantMatch()

        if not isinstance(reply, dict):
            logger.warning(f"Merchant classifier returned malformed reply: {reply!r}")
            return MerchantMatch()

        service_name = reply.get("serviceName", reply.get("service_name"))
        if isinstance(service_name, str):
            service_name = service_name.strip()
            if service_name.lower() in ("", "null", "none", "unknown"):
                service_name = None
        elif service_name is not None:
            logger.warning(f"Merchant classifier returned non-string service name: {service_name!r}")
            service_name = None

        try:
            confidence = float(reply.get("confidence") or 0)
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(1.0, max(0.0, confidence))

        if service_name is None or confidence == 0:
            return MerchantMatch()

        return MerchantMatch(service_name=service_name, confidence=confidence, source="probabilistic")

    def _resolve_with_rules(self, description: str, rules: List[AliasRule]) -> MerchantMatch:
        service_name = self._match_alias(description, rules)
        if service_name:
            return MerchantMatch(service_name=service_name, confidence=ALIAS_MATCH_CONFIDENCE, source="alias_db")
        return self._classify(description)

    def resolve(self, description: str) -> MerchantMatch:
        return self._resolve_with_rules(description, self._load_rules())

    def resolve_many(self, descriptions: List[str]) -> List[MerchantMatch]:
        """
        Resolve a batch in input order.

        The alias table is read once; classifier calls fan out over at most
        `concurrency` threads to stay inside the provider's rate limits.
        """
        rules = self._load_rules()
        if self.concurrency == 1 or len(descriptions) <= 1:
            return [self._resolve_with_rules(description, rules) for description in descriptions]

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            return list(pool.map(lambda description: self._resolve_with_rules(description, rules), descriptions))

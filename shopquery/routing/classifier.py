import json
import logging
import re
from typing import Optional

from shopquery.core.schemas import QueryType
from shopquery.services.llm import ChatLlm

logger = logging.getLogger(__name__)

CLASSIFIER_SYSTEM_PROMPT = (
    "You are a router. Output exactly one token: Structured | Semantic | Hybrid | ChitChat."
)

# Reply token -> label. Anything not listed is chitchat.
LABELS = {
    "structured": QueryType.STRUCTURED,
    "sql": QueryType.STRUCTURED,
    "semantic": QueryType.SEMANTIC,
    "vector": QueryType.SEMANTIC,
    "hybrid": QueryType.HYBRID,
    "chitchat": QueryType.CHITCHAT,
    "chat": QueryType.CHITCHAT,
    "conversation": QueryType.CHITCHAT,
}

AGGREGATION_WORDS = ("total", "top ", "average", "trend")
SIMILARITY_WORDS = ("similar", "like this", "resembl", "alike")


class LightHeuristics:
    """Ordered keyword rules that settle obvious requests without a model call."""

    def match(self, text: str) -> Optional[QueryType]:
        x = (text or "").strip().lower()
        if x.startswith("sql:"):
            return QueryType.STRUCTURED
        if x.startswith(("similar:", "vector:")) or "find similar" in x:
            return QueryType.SEMANTIC
        if x.startswith("hybrid:") or ("compare" in x and "similar" in x):
            return QueryType.HYBRID
        if any(word in x for word in AGGREGATION_WORDS):
            return QueryType.STRUCTURED
        if any(word in x for word in SIMILARITY_WORDS):
            return QueryType.SEMANTIC
        return None


def parse_label(reply: Optional[str]) -> QueryType:
    """Read a classifier reply: a bare token or {"route": ...}; unknown -> chitchat."""
    raw = (reply or "").strip()
    if not raw:
        return QueryType.CHITCHAT

    if raw.startswith("{"):
        try:
            raw = str(json.loads(raw).get("route", ""))
        except (ValueError, AttributeError):
            return QueryType.CHITCHAT

    words = re.findall(r"[a-z]+", raw.lower())
    if not words:
        return QueryType.CHITCHAT
    return LABELS.get(words[0], QueryType.CHITCHAT)


class QueryClassifier:
    def __init__(self, llm: ChatLlm, heuristics: Optional[LightHeuristics] = None):
        self.llm = llm
        self.heuristics = heuristics or LightHeuristics()

    async def classify(self, text: str) -> QueryType:
        if not text or not text.strip():
            return QueryType.CHITCHAT

        label = self.heuristics.match(text)
        if label is not None:
            logger.info(f"Heuristic classification: {label.value}")
            return label

        # ChatLlm.classify already degrades to "chitchat" on any failure
        reply = await self.llm.classify(CLASSIFIER_SYSTEM_PROMPT, f"Prompt:\n{text}")
        label = parse_label(reply)
        logger.info(f"Model classification: {label.value} (reply {(reply or '')[:40]!r})")
        return label

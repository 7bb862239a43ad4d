import logging
import re
from typing import Optional, Tuple

from pydantic import ValidationError

from shopquery.core.allowlist import AllowlistRegistry
from shopquery.core.errors import CompletionUnavailableError
from shopquery.core.schemas import Plan, SelectOp, SortKey, VectorSearchOp
from shopquery.services.llm import ChatLlm

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PLANNER
# Purpose: turn a request into an ordered Plan. The completion service is tried
# first; whatever goes wrong there, the keyword heuristic below produces a plan
# without touching the network.
# -----------------------------------------------------------------------------

PLANNER_SYSTEM_PROMPT = (
    'You are a planner. Output ONLY strict JSON with shape {"plan":[ ... ]}. '
    "Allowed ops: vector_search, select, join, aggregate. "
    "Use entities from the given registry. "
    "If user asks about price, use productcategory.price (not product). "
    'Sort using select.sort: [{"field":"price","dir":"asc|desc"}]. '
    "Use ids_in to pass values between steps. Do not include commentary."
)

HEURISTIC_TOPK = 10
IDS_VAR = "ids"

STOP_WORDS = frozenset(
    {
        "cheapest", "most", "expensive", "lowest", "highest", "price", "cost",
        "list", "show", "find", "me", "the", "a", "an", "of", "for", "under",
        "over", "top", "items", "item", "products", "product", "supplier",
        "suppliers", "with", "and", "or", "to", "please",
    }
)

NUMBER_WORDS = (
    ("one", 1),
    ("two", 2),
    ("three", 3),
    ("four", 4),
    ("five", 5),
    ("six", 6),
    ("seven", 7),
    ("eight", 8),
    ("nine", 9),
    ("ten", 10),
)

QUOTED = re.compile(r'"([^"]+)"')
FOR_CLAUSE = re.compile(r"\bfor\s+(.+)$")
TOP_N = re.compile(r"\btop\s*(\d+)|\b(\d+)\s*(cheapest|expensive|items?)")
MAX_TOP_N = 50


# =========================
# Heuristic fallback (pure, network-free)
# =========================


def clean_tokens(text: str) -> str:
    """Strip directive words and numbers, keep the trailing product words."""
    cleaned = re.sub(r"[^a-z0-9\s-]", " ", text.lower()).strip()
    tokens = [t for t in cleaned.split() if not t.isdigit() and t not in STOP_WORDS]

    if not tokens:
        return cleaned

    # product words usually sit at the tail of the sentence
    phrase = " ".join(tokens[-5:]).strip()
    phrase = re.sub(r"^\d+\s*", "", phrase)
    return phrase or cleaned


def extract_search_text(raw: str) -> str:
    """
    Extract the product search phrase from a sentence.

    Examples:
        "cheapest dino onesie"       -> "dino onesie"
        "most expensive apple strap" -> "apple strap"
        "list the suppliers for X"   -> "x"
        'price of "Dino Onesie"'     -> "Dino Onesie"
    """
    if not raw or not raw.strip():
        return ""
    text = raw.strip()

    quoted = QUOTED.search(text)
    if quoted:
        return quoted.group(1).strip()

    lower = text.lower()
    after_for = FOR_CLAUSE.search(lower)
    if after_for:
        return clean_tokens(after_for.group(1))

    return clean_tokens(lower)


def try_extract_top_n(lower: str) -> Optional[int]:
    """"top 3", "3 cheapest", "top three" -> 3; None when no count is given."""
    match = TOP_N.search(lower)
    if match:
        for group in match.groups():
            if group and group.isdigit() and 0 < int(group) <= MAX_TOP_N:
                return int(group)

    for word, value in NUMBER_WORDS:
        if f"top {word}" in lower or re.search(rf"\b{word}\b", lower):
            return value
    return None


def make_heuristic_plan(user_input: str) -> Plan:
    """Two-step plan: ANN over products, then a sorted, limited select."""
    text = user_input or ""
    lower = text.lower()
    search_text = extract_search_text(text)

    want_supplier = "supplier" in lower
    want_expensive = "expensive" in lower or "highest" in lower

    limit = try_extract_top_n(lower) or (5 if want_supplier else 1)

    vector_step = VectorSearchOp(
        entity="product", text=search_text, topk=HEURISTIC_TOPK, return_=IDS_VAR
    )

    if want_supplier:
        select_step = SelectOp(
            entity="supplier",
            ids_in=IDS_VAR,
            sort=(SortKey(field="name", dir="asc"),),
            limit=limit,
        )
    else:
        # default to cheapest when the direction is unclear
        direction = "desc" if want_expensive else "asc"
        select_step = SelectOp(
            entity="productcategory",
            ids_in=IDS_VAR,
            sort=(SortKey(field="price", dir=direction),),
            limit=limit,
        )

    return Plan(plan=(vector_step, select_step))


# =========================
# Planner service
# =========================


class PlannerService:
    def __init__(self, llm: ChatLlm, registry: AllowlistRegistry):
        self.llm = llm
        self.registry = registry

    async def plan(self, text: str) -> Plan:
        plan, _ = await self.plan_with_source(text)
        return plan

    async def plan_with_source(self, text: str) -> Tuple[Plan, str]:
        """Return the plan and where it came from: "empty", "llm" or "heuristic"."""
        if not text or not text.strip():
            return Plan(), "empty"

        user_prompt = f"REGISTRY:\n{self.registry.snapshot()}\n\nUSER:\n{text}"
        try:
            raw = await self.llm.complete_json(PLANNER_SYSTEM_PROMPT, user_prompt)
            plan = Plan.model_validate(raw)
        except CompletionUnavailableError as e:
            logger.warning(f"Planner falling back to heuristic: {e}")
            return make_heuristic_plan(text), "heuristic"
        except ValidationError as e:
            logger.warning(
                f"Planner falling back to heuristic: malformed plan "
                f"({e.error_count()} errors)"
            )
            return make_heuristic_plan(text), "heuristic"

        if plan.is_empty():
            logger.warning("Planner falling back to heuristic: LLM returned no operations")
            return make_heuristic_plan(text), "heuristic"

        logger.info(f"LLM plan with {len(plan.plan)} operations")
        return plan, "llm"

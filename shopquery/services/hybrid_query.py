import logging
from typing import Any, Dict

from shopquery.core.errors import PlanRejectedError
from shopquery.planning.executor import ExecutionLogger, PlanExecutor
from shopquery.planning.planner import PlannerService
from shopquery.planning.validator import PlanValidator

logger = logging.getLogger(__name__)


class HybridQueryService:
    """Planner -> validator -> executor for requests that need both stores."""

    def __init__(
        self,
        planner: PlannerService,
        validator: PlanValidator,
        executor: PlanExecutor,
    ):
        self.planner = planner
        self.validator = validator
        self.executor = executor

    async def dispatch(self, text: str) -> Dict[str, Any]:
        plan, source = await self.planner.plan_with_source(text)

        ok, error, checked = self.validator.validate(plan)
        if not ok:
            raise PlanRejectedError(error)

        trace = ExecutionLogger("hybrid")
        trace.log("plan", f"{len(checked.plan)} operations from {source} planner")
        result = await self.executor.execute(checked, trace)

        return {"plan": checked.to_wire(), "source": source, "result": result}

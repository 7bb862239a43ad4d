from fastapi import APIRouter, HTTPException, status

from shopquery.api.deps import executor_dep, planner_dep, validator_dep
from shopquery.core import schemas
from shopquery.planning.executor import ExecutionLogger

router = APIRouter(prefix="/plan", tags=["Planning"])


@router.post("/execute", response_model=schemas.PlanExecuteResponse)
async def execute_plan(
    payload: schemas.PlanExecuteRequest,
    planner: planner_dep,
    validator: validator_dep,
    executor: executor_dep,
):
    """
    Run a plan and return it with its result and step log.

    Send either {"plan": [...]} to execute an explicit plan, or
    {"input": "..."} to have the planner build one first.
    """
    trace = ExecutionLogger("plan")

    if payload.plan is not None:
        trace.log("plan", f"Explicit plan with {len(payload.plan)} steps")
        result = validator.validate_wire({"plan": payload.plan})
    else:
        plan, source = await planner.plan_with_source(payload.input or "")
        trace.log("plan", f"{len(plan.plan)} operations from {source} planner")
        result = validator.validate(plan)

    if not result.ok:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, result.error)

    data = await executor.execute(result.plan, trace)
    return {"plan": result.plan.to_wire(), "result": data, "trace": trace.get_logs()}

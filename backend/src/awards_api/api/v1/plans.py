"""Public plan catalogue."""
from fastapi import APIRouter, Depends

from awards_api.plans import PlanDefinition, PlanRegistry, get_plan_registry
from awards_api.schemas.subscription import PlanInfo, PlanList

router = APIRouter(prefix="/plans", tags=["Plans"])


def _plan_info(plan: PlanDefinition) -> PlanInfo:
    return PlanInfo(
        plan_key=plan.plan_key,
        tier=plan.tier.value,
        domains=list(plan.domains),
        daily_limit=plan.daily_limit,
        monthly_limit=plan.monthly_limit,
        interval=plan.interval,
        price_id=plan.price_id,
    )


@router.get("", response_model=PlanList)
async def list_plans(registry: PlanRegistry = Depends(get_plan_registry)) -> PlanList:
    """
    List plans available for signup.

    Legacy plans are still honoured for existing subscribers but not listed.
    """
    return PlanList(
        items=[_plan_info(plan) for plan in registry.plans()],
        free=_plan_info(registry.free_plan),
    )

# ==== TOLERANCE CHECK FLOW ==== #

"""
Prefect flow running the tolerance evaluator for every organization.

Each organization is evaluated in its own database session, so a failure
while evaluating one organization is reported in the flow result and the
remaining organizations are still processed.
"""

import asyncio
from typing import Any, Dict, List, Optional

from prefect import flow, task, get_run_logger
from sqlalchemy import select

from manageros.services.evaluator import evaluate_all_rules
from manageros.settings import settings
from manageros.storage.db import get_session
from manageros.storage.models import Organization, ToleranceRule


# ==== TOLERANCE CHECK TASKS ==== #


@task
async def list_organizations_with_rules() -> List[int]:
    """Organizations having at least one enabled tolerance rule."""
    async with get_session() as db:
        query = (
            select(Organization.id)
            .join(ToleranceRule, ToleranceRule.organization_id == Organization.id)
            .where(ToleranceRule.is_enabled.is_(True))
            .distinct()
            .order_by(Organization.id)
        )
        result = await db.execute(query)
        return list(result.scalars().all())


@task
async def evaluate_organization(organization_id: int) -> Dict[str, Any]:
    """
    Evaluate all enabled rules of one organization.

    Args:
        organization_id: Organization to evaluate

    Returns:
        Dict with exceptions created and per-rule errors, or the failure
        that stopped the evaluation
    """
    logger = get_run_logger()

    try:
        async with get_session() as db:
            result = await evaluate_all_rules(db, organization_id)
    except Exception as e:
        logger.error(f"Tolerance check failed for organization {organization_id}: {e}")
        return {
            "organization_id": organization_id,
            "success": False,
            "exceptions_created": 0,
            "errors": [str(e)]
        }

    if result.errors:
        logger.warning(
            f"Organization {organization_id}: {len(result.errors)} rule(s) failed"
        )

    return {
        "organization_id": organization_id,
        "success": True,
        "exceptions_created": result.exceptions_created,
        "errors": result.errors
    }


# ==== MAIN FLOW DEFINITION ==== #


@flow(name=settings.PREFECT_FLOW_NAME, log_prints=True)
async def tolerance_check_flow(
    organization_ids: Optional[List[int]] = None
) -> Dict[str, Any]:
    """
    Evaluate tolerance rules for the given or all organizations.

    Args:
        organization_ids: Organizations to evaluate, defaults to every
                          organization with an enabled rule

    Returns:
        Dict with per-organization results and totals
    """
    logger = get_run_logger()

    if organization_ids is None:
        organization_ids = await list_organizations_with_rules()

    logger.info(f"Running tolerance check for {len(organization_ids)} organization(s)")

    results = []
    for organization_id in organization_ids:
        results.append(await evaluate_organization(organization_id))

    summary = {
        "organizations_evaluated": len(results),
        "organizations_failed": sum(1 for r in results if not r["success"]),
        "exceptions_created": sum(r["exceptions_created"] for r in results),
        "rule_errors": sum(len(r["errors"]) for r in results if r["success"]),
    }

    logger.info(
        f"Tolerance check completed: {summary['exceptions_created']} exception(s) created, "
        f"{summary['organizations_failed']} organization(s) failed"
    )

    return {"results": results, "summary": summary}


# ==== DEPLOYMENT HELPER ==== #

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Tolerance check flow")
    parser.add_argument("--organization-id", type=int, action="append", help="Organization to evaluate")
    parser.add_argument("--run", action="store_true", help="Run the flow immediately")
    parser.add_argument("--serve", action="store_true", help="Serve the flow on its cron schedule")

    args = parser.parse_args()

    if args.run:
        asyncio.run(tolerance_check_flow(args.organization_id))
    elif args.serve:
        tolerance_check_flow.serve(
            name=settings.PREFECT_DEPLOYMENT_NAME,
            cron=settings.PREFECT_SCHEDULE_CRON
        )
    else:
        print("Use --run to execute immediately or --serve to schedule")

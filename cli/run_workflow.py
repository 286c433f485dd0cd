#!/usr/bin/env python3
"""
Workflow run trigger.
Queues a run through the API and polls it until it finishes.
"""

import asyncio
import json
import sys
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

TERMINAL_STATUSES = {"COMPLETED", "FAILED", "CANCELED"}


async def run_workflow(
    workflow_id: str,
    auth_token: str,
    selected_node_ids: list[str] | None = None,
    api_url: str = "http://localhost:8000/api/v1",
    poll_interval: float = 1.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Trigger a workflow run and wait for it to finish.

    Args:
        workflow_id: Workflow to run
        auth_token: Bearer token from the identity provider
        selected_node_ids: Target nodes of a partial run (None runs everything)
        api_url: Nodeflow API URL
        poll_interval: Seconds between status polls
        transport: Optional transport (tests)

    Returns:
        Final execution, including steps
    """
    async with httpx.AsyncClient(timeout=300.0, transport=transport) as client:
        headers = {"Authorization": f"Bearer {auth_token}"}

        payload: dict[str, Any] = {}
        if selected_node_ids:
            payload["selectedNodeIds"] = selected_node_ids

        logger.info(
            "triggering_run",
            workflow_id=workflow_id,
            selected_count=len(selected_node_ids or []),
        )
        run_response = await client.post(
            f"{api_url}/workflows/{workflow_id}/run",
            headers=headers,
            json=payload,
        )
        run_response.raise_for_status()
        trigger = run_response.json()

        execution_id = trigger["executionId"]
        logger.info(
            "run_queued",
            execution_id=execution_id,
            trigger_id=trigger.get("triggerRunId"),
            scope=trigger.get("scope"),
        )

        while True:
            status_response = await client.get(
                f"{api_url}/executions/{execution_id}",
                headers=headers,
            )
            status_response.raise_for_status()
            execution = status_response.json()

            status = execution["status"]
            logger.info(
                "execution_status",
                status=status,
                steps=len(execution.get("steps", [])),
            )

            if status in TERMINAL_STATUSES:
                return execution

            await asyncio.sleep(poll_interval)


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Run a saved workflow")
    parser.add_argument("workflow_id", help="Workflow ID")
    parser.add_argument("--token", required=True, help="Auth token")
    parser.add_argument(
        "--node",
        dest="nodes",
        action="append",
        default=None,
        help="Run only this node and its dependencies (repeatable)",
    )
    parser.add_argument(
        "--api-url",
        default="http://localhost:8000/api/v1",
        help="API URL",
    )
    parser.add_argument("--poll-interval", type=float, default=1.0)

    args = parser.parse_args(argv)

    print(f"\n{'=' * 60}")
    print(f"Workflow: {args.workflow_id}")
    print(f"Scope: {', '.join(args.nodes) if args.nodes else 'full'}")
    print(f"{'=' * 60}\n")

    try:
        result = await run_workflow(
            workflow_id=args.workflow_id,
            auth_token=args.token,
            selected_node_ids=args.nodes,
            api_url=args.api_url,
            poll_interval=args.poll_interval,
        )
    except httpx.HTTPError as e:
        logger.error("run_request_failed", error=str(e))
        print(f"\n✗ Error: {e}\n")
        return 1

    print(f"\n{'=' * 60}")
    print("EXECUTION RESULT")
    print(f"{'=' * 60}")
    print(json.dumps(result, indent=2, ensure_ascii=False))
    print()

    if result["status"] == "COMPLETED":
        print("✓ Workflow completed")
        return 0

    print(f"✗ Workflow {result['status'].lower()}")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

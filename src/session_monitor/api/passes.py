"""Scheduler entrypoints.

Each call runs one pass to completion and returns its summary. Calls are
safe to repeat and to overlap.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from ..schemas.passes import AlertSummary, ReconcileSummary

router = APIRouter()


@router.post(
    "/passes/reconcile",
    response_model=ReconcileSummary,
    summary="Run a reconciliation pass",
    description="Check recoverable sessions against the gateway and attempt bounded recovery.",
)
async def run_reconcile_pass(request: Request):
    return await request.app.state.reconciler.run_pass()


@router.post(
    "/passes/alerts",
    response_model=AlertSummary,
    summary="Run an alert pass",
    description="Send at most one disconnection email per tenant per outage.",
)
async def run_alert_pass(request: Request):
    return await request.app.state.alert_monitor.run_pass()

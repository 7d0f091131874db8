"""
Usage Analytics.

Aggregations over ``ai_tools_metrics`` rows:

- platform analytics for the last 30 days
- the per-user dashboard of an organization (or a single user)
- per-tool cost metrics, also exported as CSV files
"""

from __future__ import annotations

import csv
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.base import utc_now
from edify_ai.core.database.entities import AIToolsMetric, User
from edify_ai.core.database.repositories import (
    AIToolsMetricRepository,
    OrganizationRepository,
    OrgMemberRepository,
    UserRepository,
)
from edify_ai.core.logging_config import get_logger
from edify_ai.server.services.violations import display_username

logger = get_logger(__name__)

ANALYTICS_WINDOW = timedelta(days=30)

# Dashboard counter name per content flag
DASHBOARD_COUNTERS = {
    "pii_detected": "pii",
    "bias_detected": "bd",
    "content_violation": "cv",
    "misinformation_detected": "md",
    "prompt_injection_detected": "pid",
    "fraudulent_intent_detected": "fid",
    "self_harm_detected": "shd",
    "extremist_content_detected": "ecd",
    "child_safety_violation": "csv",
    "automation_misuse_detected": "amd",
}

METRICS_HEADERS = [
    "prompt_type",
    "count",
    "total_input_tokens",
    "total_output_tokens",
    "total_price_gbp",
    "avg_input_tokens",
    "avg_output_tokens",
    "avg_price_gbp",
    "avg_price_last_5",
    "avg_price_last_10",
]
SUMMARY_HEADERS = [
    "total_records",
    "total_input_tokens",
    "total_output_tokens",
    "total_price_gbp",
    "prompt_types_count",
]


def _flag_title(key: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in key.split("_"))


def summarize_platform(metrics: Sequence[AIToolsMetric], total_users: int) -> Dict[str, Any]:
    """
    Aggregate metrics rows into the platform analytics report.

    Args:
        metrics: Rows in the reporting window
        total_users: Number of registered users

    Returns:
        Totals plus time series, model, prompt type, cost and violation breakdowns
    """
    time_series: Dict[str, Dict[str, Any]] = {}
    models: Dict[str, Dict[str, Any]] = {}
    prompt_types: Dict[str, Dict[str, Any]] = {}
    cost_distribution: Dict[str, Dict[str, Any]] = {}
    violations: Dict[str, Dict[str, Any]] = {}
    total_violations = 0

    for row in metrics:
        price = float(row.price_gbp or 0)
        flags = row.content_flags or {}
        total_violations += sum(1 for value in flags.values() if value is True)

        day = row.timestamp.strftime("%d/%m/%Y")
        series = time_series.setdefault(
            day, {"date": day, "input": 0, "output": 0, "total": 0, "cost": 0.0, "requests": 0}
        )
        series["input"] += row.input_tokens or 0
        series["output"] += row.output_tokens or 0
        series["total"] += row.total_tokens or 0
        series["cost"] += price
        series["requests"] += 1

        model_name = row.model or "unknown"
        model = models.setdefault(
            model_name, {"name": model_name, "cost": 0.0, "tokens": 0, "requests": 0, "violations": 0}
        )
        model["cost"] += price
        model["tokens"] += row.total_tokens or 0
        model["requests"] += 1
        model["violations"] += 1 if row.flagged else 0

        tool = row.prompt_type or "other"
        cost_distribution.setdefault(tool, {"name": tool, "cost": 0.0})["cost"] += price

        type_name = row.prompt_type or "unknown"
        prompt_type = prompt_types.setdefault(
            type_name, {"name": type_name, "count": 0, "tokens": 0, "cost": 0.0, "violations": 0}
        )
        prompt_type["count"] += 1
        prompt_type["tokens"] += row.total_tokens or 0
        prompt_type["cost"] += price
        prompt_type["violations"] += 1 if row.flagged else 0

        for key, value in flags.items():
            if value is True:
                violations.setdefault(key, {"name": _flag_title(key), "value": 0})["value"] += 1

    return {
        "totals": {
            "total_input_tokens": sum(row.input_tokens or 0 for row in metrics),
            "total_output_tokens": sum(row.output_tokens or 0 for row in metrics),
            "total_tokens": sum(row.total_tokens or 0 for row in metrics),
            "total_cost": sum(float(row.price_gbp or 0) for row in metrics),
            "total_requests": len(metrics),
            "total_users": total_users,
            "total_violations": total_violations,
        },
        "timeSeriesData": list(time_series.values()),
        "modelData": list(models.values()),
        "promptTypeData": list(prompt_types.values()),
        "costDistributionData": list(cost_distribution.values()),
        "violationsData": [v for v in violations.values() if v["value"] > 0],
    }


async def platform_analytics(session: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Platform-wide analytics for the last 30 days."""
    since = (now or utc_now()) - ANALYTICS_WINDOW
    metrics = await AIToolsMetricRepository(session).list_between(start=since)
    total_users = (await session.execute(select(func.count()).select_from(User))).scalar_one()
    logger.debug(f"Analytics over {len(metrics)} metrics rows since {since.isoformat()}")
    return summarize_platform(metrics, int(total_users))


def _empty_dashboard_user(user_id: str, role: str) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "id": user_id,
        "email": "",
        "name": "",
        "role": role,
        "noOfPrompts": 0,
        "tokensUsed": 0,
        "totalCost": 0.0,
        "username": "",
    }
    entry.update({counter: 0 for counter in DASHBOARD_COUNTERS.values()})
    return entry


def aggregate_dashboard(
    users: List[Dict[str, Any]], metrics: Iterable[AIToolsMetric]
) -> Dict[str, int]:
    """
    Fold metrics rows into the per-user dashboard entries in place.

    Returns:
        Prompt counts per tool
    """
    by_id = {user["id"]: user for user in users}
    tool_usage: Dict[str, int] = defaultdict(int)
    for row in metrics:
        user = by_id.get(row.user_id)
        if user is None:
            continue
        user["noOfPrompts"] += 1
        user["tokensUsed"] += row.total_tokens or 0
        user["totalCost"] += float(row.price_gbp or 0)
        flags = row.content_flags or {}
        for flag, counter in DASHBOARD_COUNTERS.items():
            user[counter] += 1 if flags.get(flag) else 0
        if row.prompt_type:
            tool_usage[row.prompt_type] += 1
    return dict(tool_usage)


async def dashboard(
    session: AsyncSession,
    user_id: str,
    org_id: Optional[str],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Per-user usage of the caller's organization, or of the caller alone.

    Returns:
        ``{users, metricsData, toolUsage, organization}``
    """
    organization = None
    if org_id:
        org = await OrganizationRepository(session).get_by_id(org_id)
        organization = {"name": display_username(org.name)} if org and org.name else None
        memberships = await OrgMemberRepository(session).list(filters={"org_id": org_id})
        entries = [_empty_dashboard_user(m.user_id, m.role or "user") for m in memberships]
    else:
        entries = [_empty_dashboard_user(user_id, "user")]

    user_ids = [entry["id"] for entry in entries]
    metrics = await AIToolsMetricRepository(session).list_between(start=start, end=end, user_ids=user_ids)
    tool_usage = aggregate_dashboard(entries, metrics)

    stored = await UserRepository(session).get_many(user_ids)
    for entry in entries:
        user = stored.get(entry["id"])
        if user is None:
            continue
        entry["email"] = user.email or ""
        entry["name"] = f"{user.first_name or ''} {user.last_name or ''}".strip()
        entry["username"] = display_username(user.username or entry["name"])

    return {
        "users": entries,
        "metricsData": [row.model_dump(mode="json") for row in metrics],
        "toolUsage": tool_usage,
        "organization": organization,
    }


def _average(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def prompt_type_metrics(rows: Sequence[AIToolsMetric]) -> Dict[str, Any]:
    """
    Per-tool cost metrics over priced, unflagged rows.

    Args:
        rows: Rows ordered newest first

    Returns:
        ``{"metrics": [...], "summary": {...}}``
    """
    groups: Dict[str, List[AIToolsMetric]] = defaultdict(list)
    for row in rows:
        groups[row.prompt_type or "unknown"].append(row)

    metrics = []
    for prompt_type, records in groups.items():
        prices = [float(r.price_gbp or 0) for r in records]
        input_tokens = [r.input_tokens or 0 for r in records]
        output_tokens = [r.output_tokens or 0 for r in records]
        metrics.append(
            {
                "prompt_type": prompt_type,
                "count": len(records),
                "total_input_tokens": sum(input_tokens),
                "total_output_tokens": sum(output_tokens),
                "total_price_gbp": sum(prices),
                "avg_input_tokens": round(_average(input_tokens), 2),
                "avg_output_tokens": round(_average(output_tokens), 2),
                "avg_price_gbp": round(_average(prices), 4),
                "avg_price_last_5": round(_average(prices[:5]), 4),
                "avg_price_last_10": round(_average(prices[:10]), 4),
            }
        )

    summary = {
        "total_records": len(rows),
        "total_input_tokens": sum(r.input_tokens or 0 for r in rows),
        "total_output_tokens": sum(r.output_tokens or 0 for r in rows),
        "total_price_gbp": round(sum(float(r.price_gbp or 0) for r in rows), 4),
        "prompt_types_count": len(metrics),
    }
    return {"metrics": metrics, "summary": summary}


def write_metrics_csv(
    export_dir: str, metrics: List[Dict[str, Any]], summary: Dict[str, Any], now: Optional[datetime] = None
) -> Dict[str, str]:
    """
    Write the metrics and summary CSV files.

    Returns:
        File names of the written metrics and summary files
    """
    moment = now or utc_now()
    stamp = f"{moment:%Y-%m-%dT%H-%M-%S}-{moment.microsecond // 1000:03d}"
    directory = Path(export_dir)
    directory.mkdir(parents=True, exist_ok=True)

    metrics_name = f"ai_metrics_by_prompt_type_{stamp}.csv"
    summary_name = f"ai_metrics_summary_{stamp}.csv"

    with open(directory / metrics_name, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=METRICS_HEADERS, quoting=csv.QUOTE_NONNUMERIC)
        writer.writeheader()
        writer.writerows(metrics)

    with open(directory / summary_name, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=SUMMARY_HEADERS)
        writer.writeheader()
        writer.writerow(summary)

    logger.info(f"Exported metrics to {directory / metrics_name} and {directory / summary_name}")
    return {"metrics_file": metrics_name, "summary_file": summary_name}

"""
Output formatting for the DockWatch CLI.

Renders poll results as a table or JSON.
"""

import json
from typing import Any, Dict, List

from tabulate import tabulate  # type: ignore[import-untyped]

from dockwatch.telemetry.schemas import PollResult
from dockwatch.telemetry.stats import format_bytes, format_sample

COLUMNS = ["NAME", "ID", "STATE", "STATUS", "CPU", "MEMORY", "NET RX/TX", "DISK R/W"]


def poll_rows(result: PollResult) -> List[List[str]]:
    """One row per container; missing samples show as "-"."""
    rows = []
    for container in result.containers:
        sample = result.samples.get(container.container_id)
        if sample is None:
            metrics = ["-", "-", "-", "-"]
        else:
            shown = format_sample(sample)
            metrics = [
                shown["cpu"],
                f"{shown['memory']} ({shown['memory_percent']})",
                f"{shown['network_rx']} / {shown['network_tx']}",
                f"{shown['disk_read']} / {shown['disk_write']}",
            ]
        rows.append(
            [container.name, container.short_id, container.state.value, container.status] + metrics
        )
    return rows


def format_poll_table(result: PollResult) -> str:
    """
    Format a poll result as a table using tabulate.

    Args:
        result: Poll result to render

    Returns:
        Formatted table, followed by totals and alerts
    """
    if not result.connected:
        return (
            f"Error connecting to Docker API: {result.error}\n"
            "Make sure Docker is running and the API is reachable, then retry."
        )

    if not result.containers:
        return f"No containers found ({result.endpoint})."

    lines = [tabulate(poll_rows(result), headers=COLUMNS, tablefmt="simple"), ""]
    lines.append(
        f"Total CPU: {result.totals.cpu_percent:.2f}%  "
        f"Total memory: {format_bytes(result.totals.memory_usage)}  "
        f"Endpoint: {result.endpoint}"
    )
    for alert in result.alerts:
        lines.append(f"ALERT: {alert.message}")
    return "\n".join(lines)


def format_json(result: PollResult) -> str:
    data: Dict[str, Any] = result.model_dump(mode="json")
    return json.dumps(data, indent=2)

"""
Stand-ins for the task repository and mail service the bundled jobs talk to.

The bundled jobs read tasks from SAMPLE_TASKS and wait SIMULATED_LATENCY
seconds wherever a real deployment would call out to a database or an
SMTP server.
"""

import asyncio
from datetime import date
from typing import Any, Dict, List, Optional

SIMULATED_LATENCY = 0.1

EXPORT_COLUMNS = [
    "ID", "Title", "Description", "Status", "Priority", "DueDate", "AssignedTo", "CreatedAt", "UpdatedAt"
]

SAMPLE_TASKS: List[Dict[str, Any]] = [
    {
        "ID": "1",
        "Title": "Complete Project Proposal",
        "Description": "Finish the Q1 project proposal",
        "Status": "Completed",
        "Priority": "High",
        "DueDate": "2024-01-15",
        "AssignedTo": "John Doe",
        "AssigneeEmail": "john.doe@example.com",
        "CreatedAt": "2024-01-01",
        "UpdatedAt": "2024-01-10",
    },
    {
        "ID": "2",
        "Title": "Review Code Changes",
        "Description": "Review pull requests for new feature",
        "Status": "InProgress",
        "Priority": "Medium",
        "DueDate": "2024-01-20",
        "AssignedTo": "Jane Smith",
        "AssigneeEmail": "jane.smith@example.com",
        "CreatedAt": "2024-01-08",
        "UpdatedAt": "2024-01-12",
    },
    {
        "ID": "3",
        "Title": "Update Documentation",
        "Description": "Update API documentation",
        "Status": "Pending",
        "Priority": "Low",
        "DueDate": "2024-01-25",
        "AssignedTo": "Bob Johnson",
        "AssigneeEmail": "bob.johnson@example.com",
        "CreatedAt": "2024-01-10",
        "UpdatedAt": "2024-01-10",
    },
]


def is_due(task: Dict[str, Any], today: date) -> bool:
    """Due today or overdue, and not completed."""
    return task["Status"] != "Completed" and date.fromisoformat(task["DueDate"]) <= today


def is_overdue(task: Dict[str, Any], today: date) -> bool:
    return task["Status"] != "Completed" and date.fromisoformat(task["DueDate"]) < today


async def simulate_latency(seconds: Optional[float] = None) -> None:
    await asyncio.sleep(SIMULATED_LATENCY if seconds is None else seconds)

"""Issue body text composed from a development request"""

from typing import Any

PRIORITY_EMOJI = {
    "critical": "🔥",
    "high": "🚨",
    "medium": "⚠️",
    "low": "ℹ️",
}

_CREATED_FOOTER = "*Issue created automatically from the devsync admin interface*"
_UPDATED_FOOTER = "*Issue updated automatically from the devsync admin interface*"


def _type_display(request_type: str) -> str:
    return "🐛 Bug" if request_type == "bug" else "✨ Feature"


def build_issue_body(request: Any, *, updated: bool = False) -> str:
    """Markdown body for the GitHub issue of ``request``."""
    priority = request.priority or "medium"
    return "\n".join(
        [
            "**Description:**",
            request.description or "",
            "",
            f"**Type:** {_type_display(request.type)}",
            f"**Priority:** {PRIORITY_EMOJI.get(priority, '📋')} {priority}",
            f"**Requested by:** {request.requested_by_name} ({request.requested_by})",
            "",
            "---",
            _UPDATED_FOOTER if updated else _CREATED_FOOTER,
        ]
    )


def build_status_comment(status: str, changed_by: str, admin_comment: str = None) -> str:
    """Comment posted on the issue when an admin changes the status."""
    lines = [f"Status changed to **{status}** by {changed_by}."]
    if admin_comment:
        lines.append("")
        lines.extend(f"> {line}" for line in admin_comment.splitlines())
    return "\n".join(lines)

# src/complaint_desk/reporting/share.py

from __future__ import annotations

from ..core.models import Complaint


def share_text(complaint: Complaint) -> str:
    """Plain-text block for pasting a complaint into chat (*Label:* value lines)."""
    lines = [
        f"*Customer name:* {complaint.customer_name}",
        f"*Phone:* {complaint.customer_number}",
        f"*Type:* {complaint.type_name or '-'}",
    ]

    for field_id, value in complaint.form_data.items():
        if field_id == "notes" or value in (None, ""):
            continue
        label = complaint.label_for(field_id) or "Details"
        lines.append(f"*{label}:* {value}")

    if complaint.notes:
        lines.append(f"*Notes:* {complaint.notes}")

    return "\n".join(lines)

"""
Complaint core.

Components:
- models.py: Complaint, ComplaintType/FieldDefinition, statuses, change events, priority tiers
- state_machine.py: validated lifecycle transitions (writes only)
- reconciler.py: local newest-first cache kept in sync from the change channel
- filters.py: search/status/day filtering and export selection
- reminders.py: reminder escalation (read-modify-write)
- duration.py: human "time to close" labels
- submission.py / catalogue.py: new complaints and the complaint type catalogue
"""

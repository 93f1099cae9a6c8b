"""
FWA Guard Alerting — out-of-band escalation when an incident enters CRITICAL.

Components:
- schemas: the EscalationAlert record
- channels: Notifier protocol, webhook and log notifiers
- escalation: the policy deciding when an alert fires
"""

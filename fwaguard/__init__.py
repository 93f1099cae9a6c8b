"""
FWA Guard — Fraud/Waste/Abuse detection and incident lifecycle engine.

Pipeline:
  Evidence → Signal Extractors → Confidence Fusion → Recommendations
  → Incident Lifecycle (timeline + risk score) → Escalation Policy
"""

__version__ = "1.0.0"

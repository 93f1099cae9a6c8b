"""
FWA Guard Engine — pure scoring functions.

Components:
- fusion: weighted confidence fusion, risk level thresholds, incident type inference
- risk_score: deterministic incident risk score (0-100)
- recommendations: ranked actions and investigator indicators per evidence kind
"""

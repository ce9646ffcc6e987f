"""
Competency Committee Service
Blueprint registry: committee_bp (proposals, ballots, catalog, media) and
health_bp (probes).
"""

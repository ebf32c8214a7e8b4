"""
Pipeline Package
================
Storage-facing adapters around the pure engine.

Modules:
  snapshot_loader   - load one user's emotion checks and trades (Postgres or JSON)
  analysis_pipeline - load → analyze → status file, with a size-scaled timeout
  summary_builder   - short plain-text digest of the insight list
"""

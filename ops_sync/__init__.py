# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - OPS File Synchronization Pipeline
# Tasks: T0041-T0046 (Sprint 8)
# ═══════════════════════════════════════════════════════════════════════

"""
OPS File Synchronization Pipeline

Main modules:
- Extract.py: SFTP download from business-unit servers
- Transform.py: UTF-16 → UTF-8 re-encoding + record repair
- Load.py: Staging-table merge into SQL Server
- pipeline.py: Download + load for observers (CLI, Airflow)

Stage modules are not imported here so that DAG parsing stays fast:
    from ops_sync.Extract import FileDownloader
    from ops_sync.Load import DatabaseLoader
"""

__version__ = "1.0.0"

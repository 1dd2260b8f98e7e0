"""
Stage rollback: remove what a stage created, driven by its checkpoint.
"""

from .manager import RollbackManager, RollbackReport, RollbackMode, mode_for, STAGE_SIBLINGS

__all__ = ["RollbackManager", "RollbackReport", "RollbackMode", "mode_for", "STAGE_SIBLINGS"]

"""
Sovereignty Chain

Checkpoint-driven acquisition and verification pipeline for third-party
installation images: discovery, resumable download, checksum and detached
signature verification, with reversible per-stage state.
"""

__version__ = "0.1.0"

"""
Sovereignty Chain CLI - verified acquisition of installation images

Commands:
- sovchain download - Discover, fetch and checksum-verify the latest image
- sovchain gpg-verify - Verify the manifest signature against trusted keys
- sovchain rollback STAGE - Remove what a stage created
- sovchain status - Show per-stage state and file presence
"""

from sovchain import __version__

__all__ = ["__version__"]

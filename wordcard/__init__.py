"""
WordCard - card replication and convergence engine

Keeps independent replicas of a card collection consistent through a
shared snapshot file:
- Canonical store with atomic batches
- Last-writer-wins merge with a stale-snapshot deletion guard
- Cloud-folder and LAN-directory transports with self-echo suppression
- Live update fanout over Server-Sent Events
"""

__version__ = "1.0.0"

from wordcard.core.config import WordCardConfig
from wordcard.core.kernel import WordCardKernel

__all__ = ["WordCardKernel", "WordCardConfig", "__version__"]

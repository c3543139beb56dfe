"""
Offline sync service.

Keeps a durable, priority-ordered queue of outbound backend actions,
tracks network reachability, and drains the queue when connectivity allows.
"""

__version__ = "0.1.0"

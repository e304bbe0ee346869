"""
Network reachability signal
"""

from .monitor import ConnectivityMonitor, ConnectivityState

__all__ = ["ConnectivityMonitor", "ConnectivityState"]

"""
Utility modules for the token market.

This module provides logging, audit trail and performance
monitoring helpers for the matching engine.
"""

from .logger import setup_logging, get_logger, create_audit_logger
from .performance import PerformanceMonitor, LatencyTracker, get_performance_monitor

__all__ = [
    "setup_logging",
    "get_logger",
    "create_audit_logger",
    "PerformanceMonitor",
    "LatencyTracker",
    "get_performance_monitor",
]

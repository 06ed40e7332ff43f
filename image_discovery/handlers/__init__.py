"""
处理器模块
"""

from .robots import RobotsCheck, RobotsChecker, RobotsPolicy, RobotsStatus
from .session_manager import SessionManager

__all__ = [
    "SessionManager",
    "RobotsChecker",
    "RobotsPolicy",
    "RobotsCheck",
    "RobotsStatus",
]

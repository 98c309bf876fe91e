"""
SystemManager - Service root

This package provides the SystemManager class which:
- Builds the row store engine, HTTP clients and realtime socket adapter
- Creates and wires DataManager and AnalysisEngine
- Tracks system state (STOPPED, RUNNING)

Usage:
    from traderpro.managers.system_manager import SystemManager

    system_mgr = SystemManager(settings)
    await system_mgr.start()
    data_mgr = system_mgr.get_data_manager()
"""

from traderpro.managers.system_manager.api import SystemManager
from traderpro.core.enums import SystemState

__all__ = [
    'SystemManager',
    'SystemState',
]

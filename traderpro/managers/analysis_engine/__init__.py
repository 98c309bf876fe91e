"""
🧠 AnalysisEngine Module

Industry-level views derived from candle data.

Responsibilities:
- Industry posture (rotation, volume pressure, trend and relative strength)
- Classification-only posture when the store is unavailable
- Live intraday industry pressure
"""

from traderpro.managers.analysis_engine.api import AnalysisEngine

__all__ = ['AnalysisEngine']

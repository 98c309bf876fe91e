"""
TraderPro market data service
"""
__version__ = "1.0.0"

"""
Top-Level Module APIs

This package contains the core management modules:
- system_manager: Service root that owns every shared resource
- data_manager: Candle windows (durable, intraday, composites)
- analysis_engine: Industry posture and live pressure

Architecture:
    SystemManager creates and wires the other managers. It is built once per
    process by the FastAPI lifespan or the CLI and handed to callers
    explicitly.

Import managers from their ``api`` modules.
"""

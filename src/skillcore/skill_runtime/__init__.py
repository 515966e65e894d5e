"""
Skill runtime for skillcore.

Loads third-party skill packages from trusted locations into a
capability-gated sandbox and manages their lifecycle.

Key Components:
- Capability Guard: process capability token and actor-role checks
- Settings Module: storage-backed configuration with secret masking
- Skill Manager: resolution, loading, enable/disable and persistence
- Skill Context: the sandbox facade handed to skill code
"""

__version__ = "0.1.0"

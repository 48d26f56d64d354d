# src/llmagent/__init__.py
"""llmagent: drive a local model server and write its output safely."""

__version__ = "0.1.0"

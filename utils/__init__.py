"""
Module Name: __init__.py
Description:
    Logging helpers shared by the proxies, the reconciliation service and
    the command line entry point.

Location:
    /utils/__init__.py

"""

from .logger import get_logger, get_module_logger, setup_logger

__all__ = ["setup_logger", "get_logger", "get_module_logger"]

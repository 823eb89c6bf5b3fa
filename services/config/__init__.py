"""
Module Name: __init__.py
Description:
	Provide access to the read-only configuration service.
Location:
	/services/config/__init__.py

"""

from .defaults import ConfigDefaults
from .management import ConfigService, get_config_service, reset_config_service
from .validation import ConfigValidation

__all__ = [
	"ConfigService",
	"ConfigDefaults",
	"ConfigValidation",
	"get_config_service",
	"reset_config_service",
]

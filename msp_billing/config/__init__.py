"""
Configuration module for the billing reconciliation engine.
"""
from .settings import (
    BillingSystemConfig,
    get_config,
    load_config,
    reload_config
)

__all__ = [
    'BillingSystemConfig',
    'get_config',
    'load_config',
    'reload_config'
]

"""
apps.config_core.stores package.

Pluggable storage backends behind :class:`BaseStoreAdapter`.
"""
from .base import (  # noqa: F401
    AdapterContext,
    BaseStoreAdapter,
    ConnectionTestResult,
    StoreListResult,
    StoreValue,
)
from .builtin import BuiltinStoreAdapter, builtin_factory  # noqa: F401
from .registry import StoreAdapterRegistry  # noqa: F401
from .aws_ssm import AwsSsmStoreAdapter, aws_ssm_factory  # noqa: F401
from .vault import VaultStoreAdapter, vault_factory  # noqa: F401

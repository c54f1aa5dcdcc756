"""
app/tenancy package marker.
"""

from app.tenancy.loader import TenantDirectory, load_tenant_configs
from app.tenancy.models import ExclusionRules, OutputFormat, TenantConfig

__all__ = [
    "ExclusionRules",
    "OutputFormat",
    "TenantConfig",
    "TenantDirectory",
    "load_tenant_configs",
]

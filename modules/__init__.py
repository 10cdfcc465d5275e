"""
Pulumi modules for the Vault cluster infrastructure
Simple function-based approach: each module takes inputs and returns a dict of outputs
"""

from .network import create_network_resources
from .kms import create_kms_resources
from .storage import create_storage_resources
from .iam import create_iam_resources
from .cluster import create_cluster_resources, startup_script_output
from .function import create_function_resources

__all__ = [
    "create_network_resources",
    "create_kms_resources",
    "create_storage_resources",
    "create_iam_resources",
    "create_cluster_resources",
    "startup_script_output",
    "create_function_resources"
]

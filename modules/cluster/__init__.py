"""
Cluster Module
Vault members behind a network load balancer, bootstrapped by a rendered startup script
"""

from .functions import create_cluster_resources
from .startup import startup_script_output

__all__ = ["create_cluster_resources", "startup_script_output"]

"""
Network Module for the Vault cluster
VPC, public/private subnets, NAT and security groups
"""

from .functions import create_network_resources

__all__ = ["create_network_resources"]

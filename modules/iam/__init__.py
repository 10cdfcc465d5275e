"""
IAM Module for the Vault cluster
Member and health check function roles
"""

from .functions import create_iam_resources

__all__ = ["create_iam_resources"]

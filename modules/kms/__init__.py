"""
KMS Module for the Vault cluster
Auto-unseal key, created or brought by the user
"""

from .functions import create_kms_resources

__all__ = ["create_kms_resources"]

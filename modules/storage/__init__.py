"""
Storage Module for the Vault cluster
S3 storage backend and DynamoDB HA table
"""

from .functions import create_storage_resources

__all__ = ["create_storage_resources"]

"""
KMS Module Functions
Creates (or looks up) the KMS key Vault uses for auto-unseal and storage encryption
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, Any


def create_unseal_key(name: str, deletion_window_in_days: int = 30, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create symmetric KMS key with rotation and an alias

    Args:
        name: Resource name prefix
        deletion_window_in_days: Waiting period before the key is deleted
        tags: Additional tags

    Returns:
        Dict with key, alias and outputs
    """
    tags = tags or {}

    kms_key = aws.kms.Key(
        f"{name}-unseal-key",
        description=f"Vault auto-unseal key for {name}",
        key_usage="ENCRYPT_DECRYPT",
        customer_master_key_spec="SYMMETRIC_DEFAULT",
        enable_key_rotation=True,
        deletion_window_in_days=deletion_window_in_days,
        tags={
            **tags,
            "Name": f"{name}-unseal-key",
            "Module": "kms"
        }
    )

    kms_alias = aws.kms.Alias(
        f"{name}-unseal-key-alias",
        name=f"alias/{name}-unseal",
        target_key_id=kms_key.key_id
    )

    return {
        "key": kms_key,
        "alias": kms_alias,
        "key_id": kms_key.key_id,
        "key_arn": kms_key.arn,
        "alias_name": kms_alias.name
    }


def get_existing_key(key_arn: str) -> Dict[str, Any]:
    """
    Get existing KMS key

    Args:
        key_arn: ARN of existing key

    Returns:
        Dict with key information
    """
    key = aws.kms.get_key(key_id=key_arn)

    return {
        "key": key,
        "key_id": pulumi.Output.from_input(key.id),
        "key_arn": pulumi.Output.from_input(key.arn)
    }


def create_kms_resources(name: str, existing_key_arn: str = "", deletion_window_in_days: int = 30,
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create or reference the unseal key

    Args:
        name: Resource name prefix
        existing_key_arn: Reuse this key instead of creating one
        deletion_window_in_days: Waiting period before a created key is deleted
        tags: Additional tags

    Returns:
        Dict with key outputs
    """
    tags = tags or {}

    if existing_key_arn:
        pulumi.log.info(f"{name}: reusing existing KMS key {existing_key_arn}")
        key_result = get_existing_key(existing_key_arn)
        created = False
    else:
        key_result = create_unseal_key(name, deletion_window_in_days, tags)
        created = True

    return {
        "key_id": key_result["key_id"],
        "key_arn": key_result["key_arn"],
        "alias_name": key_result.get("alias_name"),
        "created": created,
        # Keep references to resources for dependencies
        "_key": key_result["key"],
        "_alias": key_result.get("alias")
    }

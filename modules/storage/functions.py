"""
Storage Module Functions
Creates the S3 bucket Vault stores its data in and the DynamoDB table used for HA coordination
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, Any


def create_storage_bucket(name: str, force_destroy: bool = False, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create S3 bucket for Vault storage

    Args:
        name: Resource name prefix
        force_destroy: Allow deleting a non-empty bucket
        tags: Additional tags

    Returns:
        Dict with bucket resource and outputs
    """
    tags = tags or {}

    bucket = aws.s3.Bucket(
        f"{name}-storage-bucket",
        bucket_prefix=f"{name}-storage-",
        force_destroy=force_destroy,
        tags={
            **tags,
            "Name": f"{name}-storage",
            "Purpose": "Vault storage backend",
            "Module": "storage"
        }
    )

    return {
        "bucket": bucket,
        "bucket_id": bucket.id,
        "bucket_arn": bucket.arn
    }


def configure_storage_bucket(name: str, bucket_id: pulumi.Output[str], kms_key_arn: pulumi.Output[str]) -> Dict[str, Any]:
    """
    Configure versioning, KMS encryption, public access block and lifecycle

    Args:
        name: Resource name prefix
        bucket_id: S3 bucket ID
        kms_key_arn: KMS key used for server side encryption

    Returns:
        Dict with bucket configuration resources
    """
    versioning = aws.s3.BucketVersioning(
        f"{name}-storage-bucket-versioning",
        bucket=bucket_id,
        versioning_configuration=aws.s3.BucketVersioningVersioningConfigurationArgs(
            status="Enabled"
        )
    )

    encryption = aws.s3.BucketServerSideEncryptionConfiguration(
        f"{name}-storage-bucket-encryption",
        bucket=bucket_id,
        rules=[
            aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
                apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                    sse_algorithm="aws:kms",
                    kms_master_key_id=kms_key_arn
                ),
                bucket_key_enabled=True
            )
        ]
    )

    public_access_block = aws.s3.BucketPublicAccessBlock(
        f"{name}-storage-bucket-pab",
        bucket=bucket_id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True
    )

    lifecycle = aws.s3.BucketLifecycleConfiguration(
        f"{name}-storage-bucket-lifecycle",
        bucket=bucket_id,
        rules=[
            aws.s3.BucketLifecycleConfigurationRuleArgs(
                id="storage_lifecycle",
                status="Enabled",
                filter=aws.s3.BucketLifecycleConfigurationRuleFilterArgs(
                    prefix=""
                ),
                noncurrent_version_expiration=aws.s3.BucketLifecycleConfigurationRuleNoncurrentVersionExpirationArgs(
                    noncurrent_days=30
                ),
                abort_incomplete_multipart_upload=aws.s3.BucketLifecycleConfigurationRuleAbortIncompleteMultipartUploadArgs(
                    days_after_initiation=1
                )
            )
        ],
        opts=pulumi.ResourceOptions(depends_on=[versioning])
    )

    return {
        "versioning": versioning,
        "encryption": encryption,
        "public_access_block": public_access_block,
        "lifecycle": lifecycle
    }


def create_ha_table(name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create DynamoDB table for Vault HA coordination

    The key schema (Path/Key) is the one Vault's dynamodb ha_storage expects.

    Args:
        name: Resource name prefix
        tags: Additional tags

    Returns:
        Dict with table resource and outputs
    """
    tags = tags or {}

    table = aws.dynamodb.Table(
        f"{name}-ha-lock-table",
        name=f"{name}-ha-lock",
        billing_mode="PAY_PER_REQUEST",
        hash_key="Path",
        range_key="Key",
        attributes=[
            aws.dynamodb.TableAttributeArgs(
                name="Path",
                type="S"
            ),
            aws.dynamodb.TableAttributeArgs(
                name="Key",
                type="S"
            )
        ],
        server_side_encryption=aws.dynamodb.TableServerSideEncryptionArgs(
            enabled=True
        ),
        point_in_time_recovery=aws.dynamodb.TablePointInTimeRecoveryArgs(
            enabled=True
        ),
        tags={
            **tags,
            "Name": f"{name}-ha-lock",
            "Purpose": "Vault HA coordination",
            "Module": "storage"
        }
    )

    return {
        "table": table,
        "table_name": table.name,
        "table_arn": table.arn
    }


def create_storage_resources(name: str, kms_key_arn: pulumi.Output[str], force_destroy: bool = False,
                             tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete storage infrastructure

    Args:
        name: Resource name prefix
        kms_key_arn: KMS key used to encrypt the bucket
        force_destroy: Allow deleting a non-empty bucket
        tags: Additional tags for all resources

    Returns:
        Dict with all storage resources and outputs
    """
    tags = tags or {}

    bucket_result = create_storage_bucket(name, force_destroy, tags)
    bucket_config_result = configure_storage_bucket(name, bucket_result["bucket_id"], kms_key_arn)
    table_result = create_ha_table(name, tags)

    return {
        "bucket_name": bucket_result["bucket_id"],
        "bucket_arn": bucket_result["bucket_arn"],
        "table_name": table_result["table_name"],
        "table_arn": table_result["table_arn"],
        # Keep references to resources for dependencies
        "_bucket": bucket_result["bucket"],
        "_bucket_config": bucket_config_result,
        "_table": table_result["table"]
    }

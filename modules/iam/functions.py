"""
IAM Module Functions
Creates IAM roles and policies for the Vault cluster members and the health check function
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, Any


def assume_role_policy(service: str) -> str:
    """Trust policy letting an AWS service principal assume the role"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def cluster_policy_document(kms_key_arn: str, bucket_arn: str, table_arn: str) -> str:
    """
    Least-privilege policy for cluster members

    Args:
        kms_key_arn: Unseal key
        bucket_arn: Storage bucket
        table_arn: HA coordination table

    Returns:
        Policy document as JSON string
    """
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Sid": "AutoUnseal",
                "Effect": "Allow",
                "Action": [
                    "kms:Encrypt",
                    "kms:Decrypt",
                    "kms:GenerateDataKey",
                    "kms:DescribeKey"
                ],
                "Resource": kms_key_arn
            },
            {
                "Sid": "StorageList",
                "Effect": "Allow",
                "Action": [
                    "s3:ListBucket",
                    "s3:GetBucketLocation"
                ],
                "Resource": bucket_arn
            },
            {
                "Sid": "StorageObjects",
                "Effect": "Allow",
                "Action": [
                    "s3:GetObject",
                    "s3:PutObject",
                    "s3:DeleteObject"
                ],
                "Resource": f"{bucket_arn}/*"
            },
            {
                "Sid": "HaCoordination",
                "Effect": "Allow",
                "Action": [
                    "dynamodb:DescribeTable",
                    "dynamodb:DescribeLimits",
                    "dynamodb:DescribeTimeToLive",
                    "dynamodb:GetItem",
                    "dynamodb:PutItem",
                    "dynamodb:UpdateItem",
                    "dynamodb:DeleteItem",
                    "dynamodb:BatchGetItem",
                    "dynamodb:BatchWriteItem",
                    "dynamodb:Query",
                    "dynamodb:Scan"
                ],
                "Resource": table_arn
            },
            {
                "Sid": "AutoJoin",
                "Effect": "Allow",
                "Action": [
                    "ec2:DescribeInstances",
                    "autoscaling:DescribeAutoScalingGroups"
                ],
                "Resource": "*"
            }
        ]
    })


def function_policy_document() -> str:
    """Policy for the health check function: discover members, publish metrics"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": [
                    "autoscaling:DescribeAutoScalingGroups",
                    "ec2:DescribeInstances",
                    "cloudwatch:PutMetricData"
                ],
                "Resource": "*"
            }
        ]
    })


def create_instance_role(name: str, kms_key_arn: pulumi.Output[str], bucket_arn: pulumi.Output[str],
                         table_arn: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM role and instance profile for cluster members

    Args:
        name: Resource name prefix
        kms_key_arn: Unseal key ARN
        bucket_arn: Storage bucket ARN
        table_arn: HA table ARN
        tags: Additional tags

    Returns:
        Dict with role resources and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-instance-role",
        name=f"{name}-instance-role",
        assume_role_policy=assume_role_policy("ec2.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-instance-role",
            "Module": "iam"
        }
    )

    policy = aws.iam.RolePolicy(
        f"{name}-instance-policy",
        role=role.id,
        policy=pulumi.Output.all(
            kms_key_arn=kms_key_arn,
            bucket_arn=bucket_arn,
            table_arn=table_arn
        ).apply(lambda args: cluster_policy_document(
            args["kms_key_arn"], args["bucket_arn"], args["table_arn"]
        ))
    )

    # Session Manager instead of SSH
    ssm_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-instance-ssm-policy",
        policy_arn="arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore",
        role=role.name
    )

    instance_profile = aws.iam.InstanceProfile(
        f"{name}-instance-profile",
        name=f"{name}-instance-profile",
        role=role.name,
        tags={
            **tags,
            "Name": f"{name}-instance-profile",
            "Module": "iam"
        }
    )

    return {
        "role": role,
        "policy": policy,
        "ssm_attachment": ssm_attachment,
        "instance_profile": instance_profile,
        "role_arn": role.arn,
        "role_name": role.name,
        "instance_profile_name": instance_profile.name
    }


def create_function_role(name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM role for the health check function

    Args:
        name: Resource name prefix
        tags: Additional tags

    Returns:
        Dict with role resources and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-function-role",
        name=f"{name}-function-role",
        assume_role_policy=assume_role_policy("lambda.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-function-role",
            "Module": "iam"
        }
    )

    # Logs and ENI management for a VPC function
    vpc_access = aws.iam.RolePolicyAttachment(
        f"{name}-function-vpc-access",
        policy_arn="arn:aws:iam::aws:policy/service-role/AWSLambdaVPCAccessExecutionRole",
        role=role.name
    )

    policy = aws.iam.RolePolicy(
        f"{name}-function-policy",
        role=role.id,
        policy=function_policy_document()
    )

    return {
        "role": role,
        "vpc_access": vpc_access,
        "policy": policy,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_iam_resources(name: str, kms_key_arn: pulumi.Output[str], bucket_arn: pulumi.Output[str],
                         table_arn: pulumi.Output[str], enable_function: bool = True,
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM resources for the Vault cluster

    Args:
        name: Resource name prefix
        kms_key_arn: Unseal key ARN
        bucket_arn: Storage bucket ARN
        table_arn: HA table ARN
        enable_function: Also create the health check function role
        tags: Additional tags

    Returns:
        Dict with all IAM resources and outputs
    """
    tags = tags or {}

    instance_result = create_instance_role(name, kms_key_arn, bucket_arn, table_arn, tags)

    function_result = None
    if enable_function:
        function_result = create_function_role(name, tags)

    return {
        "instance_role_arn": instance_result["role_arn"],
        "instance_role_name": instance_result["role_name"],
        "instance_profile_name": instance_result["instance_profile_name"],
        "function_role_arn": function_result["role_arn"] if function_result else None,
        # Keep references to resources for dependencies
        "_instance_role": instance_result["role"],
        "_instance_policy": instance_result["policy"],
        "_instance_profile": instance_result["instance_profile"],
        "_function_role": function_result["role"] if function_result else None,
        "_function_policies": [function_result["vpc_access"], function_result["policy"]] if function_result else []
    }

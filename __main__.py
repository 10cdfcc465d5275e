"""
Vault Cluster on AWS
Network, unseal key, storage, IAM, clustered service and health check function
"""
import os
import pulumi
from config import get_config
from modules import (
    create_network_resources,
    create_kms_resources,
    create_storage_resources,
    create_iam_resources,
    create_cluster_resources,
    startup_script_output,
    create_function_resources,
)
from modules.cluster.functions import cluster_tag

HEALTH_CHECK_SOURCE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "lambdas", "health_check")

# Configuration
config = get_config()
name = config.name
tags = config.common_tags

# 1. Network infrastructure
network = create_network_resources(
    name=name,
    vpc_cidr=config.vpc_cidr,
    public_subnet_cidrs=config.public_subnet_cidrs,
    private_subnet_cidrs=config.private_subnet_cidrs,
    enable_nat_gateway=config.enable_nat_gateway,
    api_port=config.vault_api_port,
    cluster_port=config.vault_cluster_port,
    allowed_api_cidrs=config.effective_allowed_api_cidrs,
    tags=tags
)

# 2. Auto-unseal key
kms = create_kms_resources(
    name=name,
    existing_key_arn=config.existing_kms_key_arn,
    deletion_window_in_days=config.kms_deletion_window_in_days,
    tags=tags
)

# 3. Storage backend and HA table
storage = create_storage_resources(
    name=name,
    kms_key_arn=kms["key_arn"],
    force_destroy=config.bucket_force_destroy,
    tags=tags
)

# 4. IAM
iam = create_iam_resources(
    name=name,
    kms_key_arn=kms["key_arn"],
    bucket_arn=storage["bucket_arn"],
    table_arn=storage["table_arn"],
    enable_function=config.enable_health_check_function,
    tags=tags
)

# 5. Vault cluster
member_tag = cluster_tag(name)
user_data = startup_script_output(
    vault_version=config.vault_version,
    region=config.aws_region,
    kms_key_id=kms["key_id"],
    bucket_name=storage["bucket_name"],
    table_name=storage["table_name"],
    api_port=config.vault_api_port,
    cluster_port=config.vault_cluster_port,
    cluster_tag_key=member_tag["key"],
    cluster_tag_value=member_tag["value"],
    enable_ui=config.vault_ui
)

cluster = create_cluster_resources(
    name=name,
    cluster_size=config.cluster_size,
    instance_type=config.instance_type,
    private_subnet_ids=network["private_subnet_ids"],
    public_subnet_ids=network["public_subnet_ids"],
    vpc_id=network["vpc_id"],
    cluster_security_group_id=network["cluster_security_group_id"],
    lb_security_group_id=network["lb_security_group_id"],
    instance_profile_name=iam["instance_profile_name"],
    user_data=user_data,
    api_port=config.vault_api_port,
    ami_id=config.ami_id,
    ssh_key_name=config.ssh_key_name,
    public_load_balancer=config.public_load_balancer,
    lb_subnet_ids=network["public_lb_subnet_ids"] if config.public_load_balancer else network["private_lb_subnet_ids"],
    tags=tags,
    # Members unseal and write storage at boot
    depends_on=[iam["_instance_policy"], storage["_bucket_config"]["encryption"], storage["_table"]]
)

# 6. Health check function
health_check = None
if config.enable_health_check_function:
    health_check = create_function_resources(
        name=f"{name}-health-check",
        source_dir=HEALTH_CHECK_SOURCE,
        handler="handler.handler",
        role_arn=iam["function_role_arn"],
        subnet_ids=network["private_subnet_ids"],
        security_group_ids=[network["function_security_group_id"]],
        environment={
            "ASG_NAME": cluster["asg_name"],
            "API_PORT": str(config.vault_api_port),
            "METRIC_NAMESPACE": "Vault",
        },
        schedule_expression=config.health_check_schedule,
        log_retention_in_days=config.log_retention_in_days,
        tags=tags,
        depends_on=iam["_function_policies"]
    )

# Exports
pulumi.export("vpc_id", network["vpc_id"])
pulumi.export("public_subnet_ids", network["public_subnet_ids"])
pulumi.export("private_subnet_ids", network["private_subnet_ids"])
pulumi.export("kms_key_arn", kms["key_arn"])
pulumi.export("kms_key_created", kms["created"])
pulumi.export("bucket_name", storage["bucket_name"])
pulumi.export("ha_table_name", storage["table_name"])
pulumi.export("instance_role_arn", iam["instance_role_arn"])
pulumi.export("asg_name", cluster["asg_name"])
pulumi.export("lb_dns_name", cluster["lb_dns_name"])
pulumi.export("vault_api_address", cluster["api_address"])
pulumi.export("health_check_function", health_check["function_name"] if health_check else None)
pulumi.export("init_command",
    pulumi.Output.concat(
        "VAULT_ADDR=",
        cluster["api_address"],
        " vault operator init -recovery-shares=5 -recovery-threshold=3"
    ))

"""
Cluster Module Functions
Creates the Vault cluster: launch template, auto scaling group and network load balancer
"""

import re
import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any

HEALTH_CHECK_PATH = "/v1/sys/health?standbyok=true&perfstandbyok=true"


def cluster_tag(name: str) -> Dict[str, str]:
    """Tag members carry so peers and the health check can find them"""
    return {"key": f"{name}-cluster-member", "value": name}


def instance_architecture(instance_type: str) -> str:
    """
    AMI architecture for an instance type

    Graviton families carry a "g" in the attributes after the generation
    number (t4g, m7gd, c6gn); a1 is the first-generation Graviton.
    """
    family = instance_type.split(".")[0]
    match = re.match(r"^[a-z]+\d+([a-z-]*)$", family)
    if family == "a1" or (match and "g" in match.group(1)):
        return "arm64"
    return "x86_64"


def resolve_ami(ami_id: str = "", architecture: str = "x86_64") -> str:
    """
    Use the given AMI or look up the latest Amazon Linux 2023

    Args:
        ami_id: Explicit AMI ID, empty to look up
        architecture: "x86_64" or "arm64"

    Returns:
        AMI ID
    """
    if ami_id:
        return ami_id

    ami = aws.ec2.get_ami(
        most_recent=True,
        owners=["amazon"],
        filters=[
            aws.ec2.GetAmiFilterArgs(name="name", values=[f"al2023-ami-2023.*-{architecture}"]),
            aws.ec2.GetAmiFilterArgs(name="virtualization-type", values=["hvm"]),
        ]
    )
    return ami.id


def create_launch_template(name: str, ami_id: str, instance_type: str, security_group_id: pulumi.Output[str],
                           instance_profile_name: pulumi.Output[str], user_data: pulumi.Input[str],
                           ssh_key_name: str = "", tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create launch template for cluster members

    Args:
        name: Resource name prefix
        ami_id: AMI ID
        instance_type: EC2 instance type
        security_group_id: Cluster security group
        instance_profile_name: Instance profile with the member role
        user_data: Base64 encoded startup script
        ssh_key_name: Optional EC2 key pair
        tags: Additional tags

    Returns:
        Dict with launch template resource and outputs
    """
    tags = tags or {}
    member_tag = cluster_tag(name)
    instance_tags = {
        **tags,
        "Name": f"{name}-member",
        member_tag["key"]: member_tag["value"],
        "Module": "cluster"
    }

    launch_template = aws.ec2.LaunchTemplate(
        f"{name}-lt",
        name_prefix=f"{name}-",
        image_id=ami_id,
        instance_type=instance_type,
        key_name=ssh_key_name or None,
        user_data=user_data,
        vpc_security_group_ids=[security_group_id],
        iam_instance_profile=aws.ec2.LaunchTemplateIamInstanceProfileArgs(
            name=instance_profile_name
        ),
        metadata_options=aws.ec2.LaunchTemplateMetadataOptionsArgs(
            http_endpoint="enabled",
            http_tokens="required",
            http_put_response_hop_limit=1
        ),
        block_device_mappings=[
            aws.ec2.LaunchTemplateBlockDeviceMappingArgs(
                device_name="/dev/xvda",
                ebs=aws.ec2.LaunchTemplateBlockDeviceMappingEbsArgs(
                    volume_size=20,
                    volume_type="gp3",
                    encrypted="true",
                    delete_on_termination="true"
                )
            )
        ],
        tag_specifications=[
            aws.ec2.LaunchTemplateTagSpecificationArgs(
                resource_type="instance",
                tags=instance_tags
            ),
            aws.ec2.LaunchTemplateTagSpecificationArgs(
                resource_type="volume",
                tags=instance_tags
            )
        ],
        update_default_version=True,
        tags={
            **tags,
            "Name": f"{name}-lt",
            "Module": "cluster"
        }
    )

    return {
        "launch_template": launch_template,
        "launch_template_id": launch_template.id,
        "latest_version": launch_template.latest_version
    }


def create_load_balancer(name: str, vpc_id: pulumi.Output[str], subnet_ids: List[pulumi.Output[str]],
                         security_group_id: pulumi.Output[str], api_port: int, internal: bool = True,
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create network load balancer in front of the Vault API

    Standbys stay in the pool (standbyok) since they forward requests to the
    active node. Sealed and uninitialized members drop out.

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        subnet_ids: Subnets for the load balancer
        security_group_id: Load balancer security group
        api_port: Vault API port
        internal: Internal (private) or internet-facing
        tags: Additional tags

    Returns:
        Dict with load balancer resources and outputs
    """
    tags = tags or {}

    lb = aws.lb.LoadBalancer(
        f"{name}-nlb",
        name_prefix=name[:6],
        load_balancer_type="network",
        internal=internal,
        subnets=subnet_ids,
        security_groups=[security_group_id],
        enable_cross_zone_load_balancing=True,
        tags={
            **tags,
            "Name": f"{name}-nlb",
            "Module": "cluster"
        }
    )

    target_group = aws.lb.TargetGroup(
        f"{name}-api-tg",
        name_prefix=name[:6],
        port=api_port,
        protocol="TCP",
        target_type="instance",
        vpc_id=vpc_id,
        deregistration_delay=30,
        health_check=aws.lb.TargetGroupHealthCheckArgs(
            protocol="HTTP",
            port=str(api_port),
            path=HEALTH_CHECK_PATH,
            matcher="200-399",
            interval=10,
            healthy_threshold=2,
            unhealthy_threshold=2
        ),
        tags={
            **tags,
            "Name": f"{name}-api-tg",
            "Module": "cluster"
        }
    )

    listener = aws.lb.Listener(
        f"{name}-api-listener",
        load_balancer_arn=lb.arn,
        port=api_port,
        protocol="TCP",
        default_actions=[
            aws.lb.ListenerDefaultActionArgs(
                type="forward",
                target_group_arn=target_group.arn
            )
        ]
    )

    return {
        "load_balancer": lb,
        "target_group": target_group,
        "listener": listener,
        "lb_arn": lb.arn,
        "lb_dns_name": lb.dns_name,
        "target_group_arn": target_group.arn
    }


def create_auto_scaling_group(name: str, cluster_size: int, subnet_ids: List[pulumi.Output[str]],
                              launch_template_id: pulumi.Output[str], target_group_arns: List[pulumi.Output[str]],
                              tags: Dict[str, str] = None, depends_on: List[pulumi.Resource] = None) -> Dict[str, Any]:
    """
    Create auto scaling group holding a fixed number of cluster members

    Args:
        name: Resource name prefix
        cluster_size: Number of members (min = max = desired)
        subnet_ids: Private subnets
        launch_template_id: Launch template
        target_group_arns: Target groups to register members with
        tags: Additional tags
        depends_on: Resources that must exist before members boot

    Returns:
        Dict with auto scaling group resource and outputs
    """
    tags = tags or {}
    member_tag = cluster_tag(name)
    asg_tags = {
        **tags,
        "Name": f"{name}-member",
        member_tag["key"]: member_tag["value"],
        "Module": "cluster"
    }

    asg = aws.autoscaling.Group(
        f"{name}-asg",
        name_prefix=f"{name}-",
        min_size=cluster_size,
        max_size=cluster_size,
        desired_capacity=cluster_size,
        vpc_zone_identifiers=subnet_ids,
        launch_template=aws.autoscaling.GroupLaunchTemplateArgs(
            id=launch_template_id,
            version="$Latest"
        ),
        target_group_arns=target_group_arns,
        health_check_type="EC2",
        health_check_grace_period=300,
        wait_for_capacity_timeout="0",
        instance_refresh=aws.autoscaling.GroupInstanceRefreshArgs(
            strategy="Rolling",
            preferences=aws.autoscaling.GroupInstanceRefreshPreferencesArgs(
                min_healthy_percentage=66
            )
        ),
        tags=[
            aws.autoscaling.GroupTagArgs(
                key=key,
                value=value,
                propagate_at_launch=True
            )
            for key, value in asg_tags.items()
        ],
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "asg": asg,
        "asg_name": asg.name,
        "asg_arn": asg.arn
    }


def create_cluster_resources(name: str, cluster_size: int, instance_type: str,
                             private_subnet_ids: List[pulumi.Output[str]], public_subnet_ids: List[pulumi.Output[str]],
                             vpc_id: pulumi.Output[str], cluster_security_group_id: pulumi.Output[str],
                             lb_security_group_id: pulumi.Output[str], instance_profile_name: pulumi.Output[str],
                             user_data: pulumi.Input[str], api_port: int = 8200, ami_id: str = "",
                             ssh_key_name: str = "", public_load_balancer: bool = False,
                             lb_subnet_ids: List[pulumi.Output[str]] = None,
                             tags: Dict[str, str] = None,
                             depends_on: List[pulumi.Resource] = None) -> Dict[str, Any]:
    """
    Create complete Vault cluster

    Args:
        name: Resource name prefix
        cluster_size: Number of members
        instance_type: EC2 instance type
        private_subnet_ids: Subnets for members (and an internal load balancer)
        public_subnet_ids: Subnets for an internet-facing load balancer
        vpc_id: VPC ID
        cluster_security_group_id: Member security group
        lb_security_group_id: Load balancer security group
        instance_profile_name: Member instance profile
        user_data: Base64 encoded startup script
        api_port: Vault API port
        ami_id: Explicit AMI, empty for latest Amazon Linux 2023 matching the instance architecture
        ssh_key_name: Optional EC2 key pair
        public_load_balancer: Internet-facing load balancer
        lb_subnet_ids: Load balancer subnets, at most one per zone; defaults to the public or private subnets
        tags: Additional tags
        depends_on: Resources members need at boot (IAM policy, storage)

    Returns:
        Dict with all cluster resources and outputs
    """
    if cluster_size < 1:
        raise ValueError(f"cluster_size must be at least 1, got {cluster_size}")

    tags = tags or {}
    member_tag = cluster_tag(name)

    resolved_ami = resolve_ami(ami_id, instance_architecture(instance_type))

    lt_result = create_launch_template(
        name,
        resolved_ami,
        instance_type,
        cluster_security_group_id,
        instance_profile_name,
        user_data,
        ssh_key_name,
        tags
    )

    lb_result = create_load_balancer(
        name,
        vpc_id,
        lb_subnet_ids or (public_subnet_ids if public_load_balancer else private_subnet_ids),
        lb_security_group_id,
        api_port,
        internal=not public_load_balancer,
        tags=tags
    )

    asg_result = create_auto_scaling_group(
        name,
        cluster_size,
        private_subnet_ids,
        lt_result["launch_template_id"],
        [lb_result["target_group_arn"]],
        tags,
        depends_on=depends_on
    )

    pulumi.log.info(
        f"{name}: {cluster_size} member(s), {'public' if public_load_balancer else 'internal'} load balancer on port {api_port}"
    )

    return {
        "asg_name": asg_result["asg_name"],
        "launch_template_id": lt_result["launch_template_id"],
        "lb_arn": lb_result["lb_arn"],
        "lb_dns_name": lb_result["lb_dns_name"],
        "target_group_arn": lb_result["target_group_arn"],
        "api_address": pulumi.Output.concat("http://", lb_result["lb_dns_name"], f":{api_port}"),
        "cluster_tag_key": member_tag["key"],
        "cluster_tag_value": member_tag["value"],
        # Keep references to resources for dependencies
        "_launch_template": lt_result["launch_template"],
        "_load_balancer": lb_result["load_balancer"],
        "_target_group": lb_result["target_group"],
        "_listener": lb_result["listener"],
        "_asg": asg_result["asg"]
    }

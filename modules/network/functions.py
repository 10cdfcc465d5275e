"""
Network Module Functions
Creates VPC, public/private subnets, routing, NAT and security groups for the Vault cluster
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any, Optional


def create_vpc(name: str, cidr: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create VPC with DNS settings

    Args:
        name: Resource name prefix
        cidr: VPC CIDR block
        tags: Additional tags

    Returns:
        Dict with vpc resource and outputs
    """
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        f"{name}-vpc",
        cidr_block=cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={
            **tags,
            "Name": f"{name}-vpc",
            "Module": "network"
        }
    )

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block
    }


def create_internet_gateway(name: str, vpc_id: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    tags = tags or {}

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-igw",
            "Module": "network"
        }
    )

    return {
        "igw": igw,
        "igw_id": igw.id
    }


def create_subnets(name: str, tier: str, vpc_id: pulumi.Output[str], subnet_cidrs: List[str],
                   availability_zones: List[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one subnet per CIDR, spread round-robin over the availability zones

    Args:
        name: Resource name prefix
        tier: "public" or "private"
        vpc_id: VPC ID
        subnet_cidrs: List of CIDR blocks for subnets
        availability_zones: List of availability zones
        tags: Additional tags

    Returns:
        Dict with subnet resources and outputs
    """
    tags = tags or {}

    subnets = []
    zones = []
    for i, cidr in enumerate(subnet_cidrs):
        zone = availability_zones[i % len(availability_zones)]
        subnet = aws.ec2.Subnet(
            f"{name}-{tier}-subnet-{i+1}",
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=zone,
            map_public_ip_on_launch=tier == "public",
            tags={
                **tags,
                "Name": f"{name}-{tier}-subnet-{i+1}",
                "Type": tier,
                "Module": "network"
            }
        )
        subnets.append(subnet)
        zones.append(zone)

    return {
        "subnets": subnets,
        "subnet_ids": [subnet.id for subnet in subnets],
        "availability_zones": zones
    }


def subnets_per_zone(subnet_ids: List[pulumi.Output[str]], availability_zones: List[str]) -> List[pulumi.Output[str]]:
    """First subnet in each availability zone; load balancers take at most one subnet per zone"""
    seen = set()
    selected = []
    for subnet_id, zone in zip(subnet_ids, availability_zones):
        if zone not in seen:
            seen.add(zone)
            selected.append(subnet_id)
    return selected


def create_public_route_table(name: str, vpc_id: pulumi.Output[str], igw_id: pulumi.Output[str],
                              subnet_ids: List[pulumi.Output[str]], tags: Dict[str, str] = None) -> Dict[str, Any]:
    tags = tags or {}

    route_table = aws.ec2.RouteTable(
        f"{name}-public-rt",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-public-rt",
            "Module": "network"
        }
    )

    route = aws.ec2.Route(
        f"{name}-public-route",
        route_table_id=route_table.id,
        destination_cidr_block="0.0.0.0/0",
        gateway_id=igw_id
    )

    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        association = aws.ec2.RouteTableAssociation(
            f"{name}-public-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        )
        associations.append(association)

    return {
        "route_table": route_table,
        "route": route,
        "associations": associations,
        "route_table_id": route_table.id
    }


def create_nat_gateway(name: str, public_subnet_id: pulumi.Output[str], igw: aws.ec2.InternetGateway,
                       tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create a single NAT gateway with its elastic IP in the given public subnet

    Args:
        name: Resource name prefix
        public_subnet_id: Public subnet to place the gateway in
        igw: Internet gateway the NAT gateway depends on
        tags: Additional tags

    Returns:
        Dict with eip, nat gateway and outputs
    """
    tags = tags or {}

    eip = aws.ec2.Eip(
        f"{name}-nat-eip",
        domain="vpc",
        tags={
            **tags,
            "Name": f"{name}-nat-eip",
            "Module": "network"
        },
        opts=pulumi.ResourceOptions(depends_on=[igw])
    )

    nat_gateway = aws.ec2.NatGateway(
        f"{name}-nat",
        allocation_id=eip.id,
        subnet_id=public_subnet_id,
        tags={
            **tags,
            "Name": f"{name}-nat",
            "Module": "network"
        },
        opts=pulumi.ResourceOptions(depends_on=[igw])
    )

    return {
        "eip": eip,
        "nat_gateway": nat_gateway,
        "nat_gateway_id": nat_gateway.id
    }


def create_private_route_tables(name: str, vpc_id: pulumi.Output[str], subnet_ids: List[pulumi.Output[str]],
                                nat_gateway_id: Optional[pulumi.Output[str]] = None,
                                tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one route table per private subnet, routed through the NAT gateway when there is one
    """
    tags = tags or {}

    route_tables = []
    routes = []
    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        route_table = aws.ec2.RouteTable(
            f"{name}-private-rt-{i+1}",
            vpc_id=vpc_id,
            tags={
                **tags,
                "Name": f"{name}-private-rt-{i+1}",
                "Module": "network"
            }
        )
        route_tables.append(route_table)

        if nat_gateway_id is not None:
            routes.append(aws.ec2.Route(
                f"{name}-private-route-{i+1}",
                route_table_id=route_table.id,
                destination_cidr_block="0.0.0.0/0",
                nat_gateway_id=nat_gateway_id
            ))

        associations.append(aws.ec2.RouteTableAssociation(
            f"{name}-private-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        ))

    return {
        "route_tables": route_tables,
        "routes": routes,
        "associations": associations,
        "route_table_ids": [rt.id for rt in route_tables]
    }


def _security_group(name: str, suffix: str, description: str, vpc_id: pulumi.Output[str],
                    tags: Dict[str, str]) -> aws.ec2.SecurityGroup:
    security_group = aws.ec2.SecurityGroup(
        f"{name}-{suffix}-sg",
        name_prefix=f"{name}-{suffix}-",
        description=description,
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-{suffix}-sg",
            "Module": "network"
        }
    )

    aws.ec2.SecurityGroupRule(
        f"{name}-{suffix}-egress",
        type="egress",
        from_port=0,
        to_port=0,
        protocol="-1",
        cidr_blocks=["0.0.0.0/0"],
        security_group_id=security_group.id
    )

    return security_group


def create_security_groups(name: str, vpc_id: pulumi.Output[str], api_port: int, cluster_port: int,
                           allowed_api_cidrs: List[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create security groups for the load balancer, the cluster members and the helper function

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        api_port: Vault API port
        cluster_port: Vault cluster (request forwarding) port
        allowed_api_cidrs: CIDRs allowed to reach the API through the load balancer
        tags: Additional tags

    Returns:
        Dict with security group resources and outputs
    """
    tags = tags or {}

    lb_sg = _security_group(name, "lb", "Vault API load balancer", vpc_id, tags)
    cluster_sg = _security_group(name, "cluster", "Vault cluster members", vpc_id, tags)
    function_sg = _security_group(name, "function", "Vault health check function", vpc_id, tags)

    # Clients reach the API through the load balancer
    lb_ingress = aws.ec2.SecurityGroupRule(
        f"{name}-lb-ingress-api",
        type="ingress",
        from_port=api_port,
        to_port=api_port,
        protocol="tcp",
        cidr_blocks=allowed_api_cidrs,
        security_group_id=lb_sg.id
    )

    # NLB targets see the client address, so the client CIDRs must be allowed on members too
    cluster_ingress_clients = aws.ec2.SecurityGroupRule(
        f"{name}-cluster-ingress-clients",
        type="ingress",
        from_port=api_port,
        to_port=api_port,
        protocol="tcp",
        cidr_blocks=allowed_api_cidrs,
        security_group_id=cluster_sg.id
    )

    cluster_ingress_lb = aws.ec2.SecurityGroupRule(
        f"{name}-cluster-ingress-lb",
        type="ingress",
        from_port=api_port,
        to_port=api_port,
        protocol="tcp",
        source_security_group_id=lb_sg.id,
        security_group_id=cluster_sg.id
    )

    cluster_ingress_api_self = aws.ec2.SecurityGroupRule(
        f"{name}-cluster-ingress-api-self",
        type="ingress",
        from_port=api_port,
        to_port=api_port,
        protocol="tcp",
        self=True,
        security_group_id=cluster_sg.id
    )

    cluster_ingress_cluster_self = aws.ec2.SecurityGroupRule(
        f"{name}-cluster-ingress-cluster-self",
        type="ingress",
        from_port=cluster_port,
        to_port=cluster_port,
        protocol="tcp",
        self=True,
        security_group_id=cluster_sg.id
    )

    cluster_ingress_function = aws.ec2.SecurityGroupRule(
        f"{name}-cluster-ingress-function",
        type="ingress",
        from_port=api_port,
        to_port=api_port,
        protocol="tcp",
        source_security_group_id=function_sg.id,
        security_group_id=cluster_sg.id
    )

    return {
        "lb_security_group": lb_sg,
        "cluster_security_group": cluster_sg,
        "function_security_group": function_sg,
        "rules": [
            lb_ingress,
            cluster_ingress_clients,
            cluster_ingress_lb,
            cluster_ingress_api_self,
            cluster_ingress_cluster_self,
            cluster_ingress_function,
        ],
        "lb_security_group_id": lb_sg.id,
        "cluster_security_group_id": cluster_sg.id,
        "function_security_group_id": function_sg.id
    }


def create_network_resources(name: str, vpc_cidr: str, public_subnet_cidrs: List[str],
                             private_subnet_cidrs: List[str], enable_nat_gateway: bool = True,
                             api_port: int = 8200, cluster_port: int = 8201,
                             allowed_api_cidrs: List[str] = None,
                             tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete network infrastructure for the Vault cluster

    Args:
        name: Resource name prefix
        vpc_cidr: VPC CIDR block
        public_subnet_cidrs: CIDR blocks for the public (load balancer, NAT) subnets
        private_subnet_cidrs: CIDR blocks for the private (cluster member) subnets
        enable_nat_gateway: Route private subnets to the internet through a NAT gateway
        api_port: Vault API port
        cluster_port: Vault cluster port
        allowed_api_cidrs: CIDRs allowed to reach the API, defaults to the VPC CIDR
        tags: Additional tags for all resources

    Returns:
        Dict with all network resources and outputs
    """
    if not public_subnet_cidrs:
        raise ValueError("public_subnet_cidrs must not be empty")
    if not private_subnet_cidrs:
        raise ValueError("private_subnet_cidrs must not be empty")

    tags = tags or {}
    allowed_api_cidrs = allowed_api_cidrs or [vpc_cidr]

    # Get availability zones
    azs = aws.get_availability_zones(state="available")

    vpc_result = create_vpc(name, vpc_cidr, tags)
    igw_result = create_internet_gateway(name, vpc_result["vpc_id"], tags)

    public_result = create_subnets(name, "public", vpc_result["vpc_id"], public_subnet_cidrs, azs.names, tags)
    private_result = create_subnets(name, "private", vpc_result["vpc_id"], private_subnet_cidrs, azs.names, tags)

    public_rt_result = create_public_route_table(
        name,
        vpc_result["vpc_id"],
        igw_result["igw_id"],
        public_result["subnet_ids"],
        tags
    )

    nat_result = None
    if enable_nat_gateway:
        nat_result = create_nat_gateway(name, public_result["subnet_ids"][0], igw_result["igw"], tags)
    else:
        pulumi.log.info(f"{name}: NAT gateway disabled, private subnets have no internet egress")

    private_rt_result = create_private_route_tables(
        name,
        vpc_result["vpc_id"],
        private_result["subnet_ids"],
        nat_result["nat_gateway_id"] if nat_result else None,
        tags
    )

    sg_result = create_security_groups(
        name,
        vpc_result["vpc_id"],
        api_port,
        cluster_port,
        allowed_api_cidrs,
        tags
    )

    return {
        "vpc_id": vpc_result["vpc_id"],
        "vpc_cidr_block": vpc_result["vpc_cidr_block"],
        "public_subnet_ids": public_result["subnet_ids"],
        "private_subnet_ids": private_result["subnet_ids"],
        "public_lb_subnet_ids": subnets_per_zone(public_result["subnet_ids"], public_result["availability_zones"]),
        "private_lb_subnet_ids": subnets_per_zone(private_result["subnet_ids"], private_result["availability_zones"]),
        "availability_zones": private_result["availability_zones"],
        "lb_security_group_id": sg_result["lb_security_group_id"],
        "cluster_security_group_id": sg_result["cluster_security_group_id"],
        "function_security_group_id": sg_result["function_security_group_id"],
        "nat_gateway_id": nat_result["nat_gateway_id"] if nat_result else None,
        # Keep references to all resources for dependencies
        "_vpc": vpc_result["vpc"],
        "_igw": igw_result["igw"],
        "_public_subnets": public_result["subnets"],
        "_private_subnets": private_result["subnets"],
        "_public_route_table": public_rt_result["route_table"],
        "_private_route_tables": private_rt_result["route_tables"],
        "_nat_gateway": nat_result["nat_gateway"] if nat_result else None,
        "_security_groups": sg_result
    }

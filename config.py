"""
Configuration management for the Vault cluster deployment
"""

import ipaddress
import pulumi
from typing import Dict, Any, List, Optional


def _default(value: Any, fallback: Any) -> Any:
    """Pulumi returns None for unset keys; keep explicit False/0 values"""
    return fallback if value is None else value


class Config:
    """Centralized configuration management for the Vault cluster"""

    def __init__(self, config: Optional[pulumi.Config] = None):
        self.config = config or pulumi.Config()

        # AWS Configuration
        self.aws_region = pulumi.Config("aws").get("region") or "us-east-1"

        # Naming
        self.name = self.config.get("name") or "vault"
        self.environment = self.config.get("environment") or "development"

        # VPC Configuration
        self.vpc_cidr = self.config.get("vpc_cidr") or "10.20.0.0/16"
        self.public_subnet_cidrs = _default(self.config.get_object("public_subnet_cidrs"), [
            "10.20.0.0/24", "10.20.1.0/24", "10.20.2.0/24"
        ])
        self.private_subnet_cidrs = _default(self.config.get_object("private_subnet_cidrs"), [
            "10.20.10.0/24", "10.20.11.0/24", "10.20.12.0/24"
        ])
        self.enable_nat_gateway = _default(self.config.get_bool("enable_nat_gateway"), True)

        # Load balancer
        self.public_load_balancer = _default(self.config.get_bool("public_load_balancer"), False)
        self.allowed_api_cidrs = _default(self.config.get_object("allowed_api_cidrs"), [])

        # Cluster Configuration
        self.cluster_size = _default(self.config.get_int("cluster_size"), 3)
        self.instance_type = self.config.get("instance_type") or "t3.small"
        self.ami_id = self.config.get("ami_id") or ""
        self.ssh_key_name = self.config.get("ssh_key_name") or ""

        # Vault
        self.vault_version = self.config.get("vault_version") or "1.15.4"
        self.vault_api_port = _default(self.config.get_int("vault_api_port"), 8200)
        self.vault_cluster_port = _default(self.config.get_int("vault_cluster_port"), 8201)
        self.vault_ui = _default(self.config.get_bool("vault_ui"), True)

        # Key management
        self.existing_kms_key_arn = self.config.get("existing_kms_key_arn") or ""
        self.kms_deletion_window_in_days = _default(self.config.get_int("kms_deletion_window_in_days"), 30)

        # Storage
        self.bucket_force_destroy = _default(self.config.get_bool("bucket_force_destroy"), False)

        # Helper function
        self.enable_health_check_function = _default(
            self.config.get_bool("enable_health_check_function"), True
        )
        self.health_check_schedule = self.config.get("health_check_schedule") or "rate(5 minutes)"

        # Logging Configuration
        self.log_retention_in_days = _default(self.config.get_int("log_retention_in_days"), 30)

        # Additional tags
        self.additional_tags = self.config.get_object("tags") or {}

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": self.name,
            "Environment": self.environment,
            "ManagedBy": "pulumi",
        }
        base_tags.update(self.additional_tags)
        return base_tags

    @property
    def effective_allowed_api_cidrs(self) -> List[str]:
        """CIDRs allowed to reach the API through the load balancer"""
        if self.allowed_api_cidrs:
            return self.allowed_api_cidrs
        if self.public_load_balancer:
            return ["0.0.0.0/0"]
        return [self.vpc_cidr]

    def validate(self) -> "Config":
        """
        Check the configuration for values the topology cannot be built from

        Raises:
            ValueError: on the first invalid value
        """
        if self.cluster_size < 1:
            raise ValueError(f"cluster_size must be at least 1, got {self.cluster_size}")
        if self.cluster_size % 2 == 0:
            pulumi.log.warn(
                f"cluster_size={self.cluster_size} is even; an odd member count tolerates the same failures with one node less"
            )

        if len(self.public_subnet_cidrs) < 2:
            raise ValueError("at least two public subnets are required for the load balancer")
        if len(self.private_subnet_cidrs) < 2:
            raise ValueError("at least two private subnets are required for the cluster")
        if self.enable_nat_gateway and len(self.public_subnet_cidrs) != len(self.private_subnet_cidrs):
            raise ValueError(
                "public_subnet_cidrs and private_subnet_cidrs must have the same length when enable_nat_gateway is set"
            )

        if self.vault_api_port == self.vault_cluster_port:
            raise ValueError(f"vault_api_port and vault_cluster_port must differ, both are {self.vault_api_port}")

        # IPv4 only; AddressValueError and NetmaskValueError are ValueErrors
        try:
            vpc_network = ipaddress.IPv4Network(self.vpc_cidr)
        except ValueError as e:
            raise ValueError(f"invalid vpc_cidr {self.vpc_cidr!r}: {e}") from e

        for cidr in self.public_subnet_cidrs + self.private_subnet_cidrs:
            try:
                subnet = ipaddress.IPv4Network(cidr)
            except ValueError as e:
                raise ValueError(f"invalid subnet CIDR {cidr!r}: {e}") from e
            if not subnet.subnet_of(vpc_network):
                raise ValueError(f"subnet {cidr} is not inside vpc_cidr {self.vpc_cidr}")

        for cidr in self.allowed_api_cidrs:
            try:
                ipaddress.IPv4Network(cidr)
            except ValueError as e:
                raise ValueError(f"invalid allowed_api_cidrs entry {cidr!r}: {e}") from e

        if not 7 <= self.kms_deletion_window_in_days <= 30:
            raise ValueError(
                f"kms_deletion_window_in_days must be between 7 and 30, got {self.kms_deletion_window_in_days}"
            )

        return self


def get_config() -> Config:
    """Get the validated global configuration instance"""
    return Config().validate()

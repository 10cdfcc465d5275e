"""
Vault cluster health check
Probes /v1/sys/health on every in-service member of the auto scaling group and publishes CloudWatch metrics
"""

import logging
import os
from typing import Any, Dict, List, Optional

import boto3
import urllib3

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

# /v1/sys/health status codes
STATUS_BY_CODE = {
    200: "active",
    429: "standby",
    472: "dr_secondary",
    473: "performance_standby",
    501: "uninitialized",
    503: "sealed",
}
HEALTHY_STATUSES = {"active", "standby", "dr_secondary", "performance_standby"}
UNREACHABLE = "unreachable"

REQUEST_TIMEOUT = 3

http = urllib3.PoolManager()


def classify_status(code: Optional[int]) -> str:
    """Map a health endpoint HTTP status to a member state"""
    if code is None:
        return UNREACHABLE
    return STATUS_BY_CODE.get(code, UNREACHABLE)


def probe(address: str, port: int, timeout: float = REQUEST_TIMEOUT) -> Optional[int]:
    """
    GET the health endpoint of one member

    Returns:
        HTTP status code, None when the member did not answer
    """
    url = f"http://{address}:{port}/v1/sys/health"
    try:
        # Non-2xx codes carry the member state
        response = http.request("GET", url, timeout=timeout, retries=False)
    except urllib3.exceptions.HTTPError as e:
        logger.warning("No answer from %s: %s", url, e)
        return None
    return response.status


def list_members(asg_name: str, autoscaling=None, ec2=None) -> List[Dict[str, str]]:
    """
    In-service instances of the auto scaling group with their private IPs
    """
    autoscaling = autoscaling or boto3.client("autoscaling")
    ec2 = ec2 or boto3.client("ec2")

    groups = autoscaling.describe_auto_scaling_groups(AutoScalingGroupNames=[asg_name])["AutoScalingGroups"]
    if not groups:
        raise RuntimeError(f"Auto scaling group {asg_name} not found")

    instance_ids = [
        instance["InstanceId"]
        for instance in groups[0]["Instances"]
        if instance["LifecycleState"] == "InService"
    ]
    if not instance_ids:
        return []

    members = []
    for reservation in ec2.describe_instances(InstanceIds=instance_ids)["Reservations"]:
        for instance in reservation["Instances"]:
            if "PrivateIpAddress" in instance:
                members.append({
                    "instance_id": instance["InstanceId"],
                    "address": instance["PrivateIpAddress"],
                })
    return members


def count_states(members: List[Dict[str, Any]]) -> Dict[str, int]:
    counts = {
        "total": len(members),
        "healthy": sum(1 for m in members if m["state"] in HEALTHY_STATUSES),
        "active": sum(1 for m in members if m["state"] == "active"),
        "sealed": sum(1 for m in members if m["state"] == "sealed"),
        "uninitialized": sum(1 for m in members if m["state"] == "uninitialized"),
        "unreachable": sum(1 for m in members if m["state"] == UNREACHABLE),
    }
    return counts


def publish_metrics(namespace: str, asg_name: str, counts: Dict[str, int], cloudwatch=None) -> None:
    cloudwatch = cloudwatch or boto3.client("cloudwatch")
    dimensions = [{"Name": "AutoScalingGroupName", "Value": asg_name}]
    cloudwatch.put_metric_data(
        Namespace=namespace,
        MetricData=[
            {"MetricName": "HealthyMembers", "Dimensions": dimensions, "Value": counts["healthy"], "Unit": "Count"},
            {"MetricName": "ActiveMembers", "Dimensions": dimensions, "Value": counts["active"], "Unit": "Count"},
            {"MetricName": "SealedMembers", "Dimensions": dimensions, "Value": counts["sealed"], "Unit": "Count"},
        ]
    )


def handler(event, context):
    asg_name = os.environ["ASG_NAME"]
    port = int(os.environ.get("API_PORT", "8200"))
    namespace = os.environ.get("METRIC_NAMESPACE", "Vault")

    members = list_members(asg_name)
    for member in members:
        member["state"] = classify_status(probe(member["address"], port))
        logger.info("%s (%s): %s", member["instance_id"], member["address"], member["state"])

    counts = count_states(members)
    if counts["active"] != 1:
        logger.warning("%s has %d active member(s)", asg_name, counts["active"])

    publish_metrics(namespace, asg_name, counts)

    return {
        "asg": asg_name,
        "members": members,
        "counts": counts,
    }

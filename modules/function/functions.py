"""
Function Module Functions
Deploys a Python Lambda function from a local source directory with logs and an optional schedule
"""

import os
import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any, Optional


def create_log_group(name: str, retention_in_days: int = 30, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the log group Lambda writes to, so retention is managed here

    Args:
        name: Function name
        retention_in_days: Log retention in days
        tags: Additional tags

    Returns:
        Dict with log group resource and outputs
    """
    tags = tags or {}

    log_group = aws.cloudwatch.LogGroup(
        f"{name}-log-group",
        name=f"/aws/lambda/{name}",
        retention_in_days=retention_in_days,
        tags={
            **tags,
            "Name": f"{name}-log-group",
            "Module": "function"
        }
    )

    return {
        "log_group": log_group,
        "log_group_name": log_group.name
    }


def create_function(name: str, source_dir: str, handler: str, role_arn: pulumi.Input[str],
                    subnet_ids: List[pulumi.Input[str]] = None, security_group_ids: List[pulumi.Input[str]] = None,
                    environment: Dict[str, pulumi.Input[str]] = None, timeout: int = 30, memory_size: int = 128,
                    tags: Dict[str, str] = None, depends_on: List[pulumi.Resource] = None) -> Dict[str, Any]:
    """
    Create Lambda function packaged from a directory

    Args:
        name: Function name
        source_dir: Directory holding the handler module
        handler: Handler in module.function form
        role_arn: Execution role
        subnet_ids: Subnets to attach the function to, None for no VPC
        security_group_ids: Security groups when attached to a VPC
        environment: Environment variables
        timeout: Timeout in seconds
        memory_size: Memory in MB
        tags: Additional tags
        depends_on: Resources to create first (log group, role policies)

    Returns:
        Dict with function resource and outputs
    """
    if not os.path.isdir(source_dir):
        raise FileNotFoundError(f"Function source directory {source_dir} does not exist")

    tags = tags or {}

    vpc_config = None
    if subnet_ids:
        vpc_config = aws.lambda_.FunctionVpcConfigArgs(
            subnet_ids=subnet_ids,
            security_group_ids=security_group_ids or []
        )

    function = aws.lambda_.Function(
        f"{name}-function",
        name=name,
        runtime="python3.12",
        handler=handler,
        role=role_arn,
        code=pulumi.FileArchive(source_dir),
        timeout=timeout,
        memory_size=memory_size,
        vpc_config=vpc_config,
        environment=aws.lambda_.FunctionEnvironmentArgs(
            variables=environment or {}
        ),
        tags={
            **tags,
            "Name": name,
            "Module": "function"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "function": function,
        "function_name": function.name,
        "function_arn": function.arn
    }


def create_schedule(name: str, function: aws.lambda_.Function, schedule_expression: str,
                    tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Invoke the function on a schedule

    Args:
        name: Function name
        function: Function to invoke
        schedule_expression: rate(...) or cron(...) expression
        tags: Additional tags

    Returns:
        Dict with rule, target, permission and outputs
    """
    tags = tags or {}

    rule = aws.cloudwatch.EventRule(
        f"{name}-schedule",
        name=f"{name}-schedule",
        schedule_expression=schedule_expression,
        tags={
            **tags,
            "Name": f"{name}-schedule",
            "Module": "function"
        }
    )

    target = aws.cloudwatch.EventTarget(
        f"{name}-schedule-target",
        rule=rule.name,
        arn=function.arn
    )

    permission = aws.lambda_.Permission(
        f"{name}-schedule-permission",
        action="lambda:InvokeFunction",
        function=function.name,
        principal="events.amazonaws.com",
        source_arn=rule.arn
    )

    return {
        "rule": rule,
        "target": target,
        "permission": permission,
        "rule_name": rule.name
    }


def create_function_resources(name: str, source_dir: str, handler: str, role_arn: pulumi.Input[str],
                              subnet_ids: List[pulumi.Input[str]] = None,
                              security_group_ids: List[pulumi.Input[str]] = None,
                              environment: Dict[str, pulumi.Input[str]] = None,
                              schedule_expression: Optional[str] = None,
                              log_retention_in_days: int = 30, timeout: int = 30, memory_size: int = 128,
                              tags: Dict[str, str] = None,
                              depends_on: List[pulumi.Resource] = None) -> Dict[str, Any]:
    """
    Create complete function deployment

    Args:
        name: Function name
        source_dir: Directory holding the handler module
        handler: Handler in module.function form
        role_arn: Execution role
        subnet_ids: Subnets to attach the function to
        security_group_ids: Security groups for the function
        environment: Environment variables
        schedule_expression: Invoke on this schedule, None for no schedule
        log_retention_in_days: Log retention in days
        timeout: Timeout in seconds
        memory_size: Memory in MB
        tags: Additional tags
        depends_on: Extra resources the function waits for

    Returns:
        Dict with all function resources and outputs
    """
    tags = tags or {}

    log_result = create_log_group(name, log_retention_in_days, tags)

    function_result = create_function(
        name,
        source_dir,
        handler,
        role_arn,
        subnet_ids,
        security_group_ids,
        environment,
        timeout,
        memory_size,
        tags,
        depends_on=[log_result["log_group"], *(depends_on or [])]
    )

    schedule_result = None
    if schedule_expression:
        schedule_result = create_schedule(name, function_result["function"], schedule_expression, tags)

    return {
        "function_name": function_result["function_name"],
        "function_arn": function_result["function_arn"],
        "log_group_name": log_result["log_group_name"],
        "rule_name": schedule_result["rule_name"] if schedule_result else None,
        # Keep references to resources for dependencies
        "_log_group": log_result["log_group"],
        "_function": function_result["function"],
        "_schedule": schedule_result
    }

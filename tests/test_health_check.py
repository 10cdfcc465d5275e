"""
Unit tests for the health check function runtime
"""

import os
import sys
import unittest
from unittest.mock import MagicMock, Mock, patch

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import urllib3

from lambdas.health_check import handler as health_check


class TestClassifyStatus(unittest.TestCase):

    def test_known_codes(self):
        self.assertEqual(health_check.classify_status(200), "active")
        self.assertEqual(health_check.classify_status(429), "standby")
        self.assertEqual(health_check.classify_status(473), "performance_standby")
        self.assertEqual(health_check.classify_status(501), "uninitialized")
        self.assertEqual(health_check.classify_status(503), "sealed")

    def test_unknown_or_missing(self):
        self.assertEqual(health_check.classify_status(None), "unreachable")
        self.assertEqual(health_check.classify_status(500), "unreachable")


class TestProbe(unittest.TestCase):

    @patch('lambdas.health_check.handler.http')
    def test_ok(self, mock_http):
        mock_http.request.return_value = Mock(status=200)

        self.assertEqual(health_check.probe("10.20.10.5", 8200), 200)
        mock_http.request.assert_called_once_with(
            "GET", "http://10.20.10.5:8200/v1/sys/health", timeout=health_check.REQUEST_TIMEOUT, retries=False
        )

    @patch('lambdas.health_check.handler.http')
    def test_error_status_carries_state(self, mock_http):
        mock_http.request.return_value = Mock(status=503)

        self.assertEqual(health_check.probe("10.20.10.5", 8200), 503)

    @patch('lambdas.health_check.handler.http')
    def test_no_answer(self, mock_http):
        mock_http.request.side_effect = urllib3.exceptions.ConnectTimeoutError("timed out")

        self.assertIsNone(health_check.probe("10.20.10.5", 8200))


class TestListMembers(unittest.TestCase):

    def test_in_service_members(self):
        autoscaling = Mock()
        autoscaling.describe_auto_scaling_groups.return_value = {
            "AutoScalingGroups": [{
                "Instances": [
                    {"InstanceId": "i-1", "LifecycleState": "InService"},
                    {"InstanceId": "i-2", "LifecycleState": "Terminating"},
                    {"InstanceId": "i-3", "LifecycleState": "InService"},
                ]
            }]
        }
        ec2 = Mock()
        ec2.describe_instances.return_value = {
            "Reservations": [{
                "Instances": [
                    {"InstanceId": "i-1", "PrivateIpAddress": "10.20.10.5"},
                    {"InstanceId": "i-3", "PrivateIpAddress": "10.20.11.7"},
                ]
            }]
        }

        members = health_check.list_members("vault-asg", autoscaling=autoscaling, ec2=ec2)

        ec2.describe_instances.assert_called_once_with(InstanceIds=["i-1", "i-3"])
        self.assertEqual(members, [
            {"instance_id": "i-1", "address": "10.20.10.5"},
            {"instance_id": "i-3", "address": "10.20.11.7"},
        ])

    def test_empty_group(self):
        autoscaling = Mock()
        autoscaling.describe_auto_scaling_groups.return_value = {"AutoScalingGroups": [{"Instances": []}]}
        ec2 = Mock()

        self.assertEqual(health_check.list_members("vault-asg", autoscaling=autoscaling, ec2=ec2), [])
        ec2.describe_instances.assert_not_called()

    def test_missing_group(self):
        autoscaling = Mock()
        autoscaling.describe_auto_scaling_groups.return_value = {"AutoScalingGroups": []}

        with self.assertRaises(RuntimeError):
            health_check.list_members("vault-asg", autoscaling=autoscaling, ec2=Mock())


class TestHandler(unittest.TestCase):

    @patch.dict(os.environ, {"ASG_NAME": "vault-asg", "API_PORT": "8200", "METRIC_NAMESPACE": "Vault"})
    @patch('lambdas.health_check.handler.boto3')
    @patch('lambdas.health_check.handler.probe')
    @patch('lambdas.health_check.handler.list_members')
    def test_summary_and_metrics(self, mock_list_members, mock_probe, mock_boto3):
        mock_list_members.return_value = [
            {"instance_id": "i-1", "address": "10.20.10.5"},
            {"instance_id": "i-2", "address": "10.20.11.6"},
            {"instance_id": "i-3", "address": "10.20.12.7"},
        ]
        mock_probe.side_effect = [200, 429, 503]
        cloudwatch = MagicMock()
        mock_boto3.client.return_value = cloudwatch

        result = health_check.handler({}, None)

        self.assertEqual(result["asg"], "vault-asg")
        self.assertEqual([m["state"] for m in result["members"]], ["active", "standby", "sealed"])
        self.assertEqual(result["counts"]["healthy"], 2)
        self.assertEqual(result["counts"]["active"], 1)
        self.assertEqual(result["counts"]["sealed"], 1)

        mock_boto3.client.assert_called_with("cloudwatch")
        metric_data = cloudwatch.put_metric_data.call_args.kwargs["MetricData"]
        values = {m["MetricName"]: m["Value"] for m in metric_data}
        self.assertEqual(values, {"HealthyMembers": 2, "ActiveMembers": 1, "SealedMembers": 1})
        self.assertEqual(cloudwatch.put_metric_data.call_args.kwargs["Namespace"], "Vault")


if __name__ == "__main__":
    unittest.main()

"""
Function Module
Python Lambda deployment with logs and schedule
"""

from .functions import create_function_resources

__all__ = ["create_function_resources"]

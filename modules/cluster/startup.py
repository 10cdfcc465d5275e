"""
Startup script rendering for Vault cluster members
"""

import base64
import os
from typing import Any, Dict

import jinja2
import pulumi

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")
STARTUP_TEMPLATE = "startup.sh.j2"

REQUIRED_VARIABLES = (
    "vault_version",
    "region",
    "kms_key_id",
    "bucket_name",
    "table_name",
    "api_port",
    "cluster_port",
    "cluster_tag_key",
    "cluster_tag_value",
    "enable_ui",
)


def render_startup_script(template_name: str = STARTUP_TEMPLATE, **variables: Any) -> str:
    """
    Render the startup script template

    Args:
        template_name: Template file under templates/
        **variables: Template variables, see REQUIRED_VARIABLES

    Returns:
        Rendered shell script

    Raises:
        FileNotFoundError: template does not exist
        ValueError: a required variable is missing
    """
    missing = [key for key in REQUIRED_VARIABLES if key not in variables]
    if missing:
        raise ValueError(f"Missing startup script variables: {', '.join(missing)}")

    template_path = os.path.join(TEMPLATE_DIR, template_name)
    if not os.path.exists(template_path):
        raise FileNotFoundError(f'Template "{template_name}" does not exist.')

    with open(template_path, "r", encoding="utf-8") as fin:
        template = fin.read()

    j2_template = jinja2.Template(template, undefined=jinja2.StrictUndefined, keep_trailing_newline=True)
    return j2_template.render(**variables)


def encode_user_data(script: str) -> str:
    """Launch templates take user data base64 encoded"""
    return base64.b64encode(script.encode("utf-8")).decode("ascii")


def startup_script_output(vault_version: str, region: str, kms_key_id: pulumi.Input[str],
                          bucket_name: pulumi.Input[str], table_name: pulumi.Input[str],
                          api_port: int, cluster_port: int, cluster_tag_key: str,
                          cluster_tag_value: str, enable_ui: bool = True) -> pulumi.Output[str]:
    """
    Render the startup script once the resource outputs it references are known

    Returns:
        Base64 encoded user data
    """
    static: Dict[str, Any] = {
        "vault_version": vault_version,
        "region": region,
        "api_port": api_port,
        "cluster_port": cluster_port,
        "cluster_tag_key": cluster_tag_key,
        "cluster_tag_value": cluster_tag_value,
        "enable_ui": enable_ui,
    }

    return pulumi.Output.all(
        kms_key_id=kms_key_id,
        bucket_name=bucket_name,
        table_name=table_name
    ).apply(lambda args: encode_user_data(render_startup_script(**static, **args)))

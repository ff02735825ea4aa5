from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel


class SchedulerConfig(BaseModel):
    """Settings for the continuation sweep loop."""

    sweep_interval_seconds: float = 60.0


class WebhookConfig(BaseModel):
    """Settings for outbound webhook steps."""

    timeout_seconds: float = 10.0


class EmailConfig(BaseModel):
    """Default sender used when an email step does not override it."""

    sender_name: str = "GangRun Printing"
    sender_email: str = "noreply@gangrunprinting.com"


class JobsConfig(BaseModel):
    """Thresholds for the scheduled trigger jobs."""

    abandoned_cart_after_minutes: int = 60
    inactive_after_days: int = 90


class GangflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    customer_database_url: Optional[str] = None
    scheduler: SchedulerConfig = SchedulerConfig()
    webhook: WebhookConfig = WebhookConfig()
    email: EmailConfig = EmailConfig()
    jobs: JobsConfig = JobsConfig()


def load_config(path: Optional[str] = None) -> GangflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to GANGFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("GANGFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = GangflowConfig(**data)
    else:
        config = GangflowConfig()

    env_db_url = os.getenv("GANGFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_customer_url = os.getenv("GANGFLOW_CUSTOMER_DATABASE_URL")
    if env_customer_url:
        config.customer_database_url = env_customer_url
    return config

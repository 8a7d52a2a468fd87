"""
Configuration module for the data lake sync.

Reads environment variables and provides configuration values for the
operational database, the sync queue, the raw bucket and dump tuning.
"""

import json
import os
from pathlib import Path
from typing import Dict, Any
from datetime import datetime

from dotenv import load_dotenv

"""
Injects environment variables from a .env file when running outside AWS or in local development.
"""

_AWS_RUNTIME_INDICATORS = (
    "AWS_EXECUTION_ENV",
    "AWS_LAMBDA_FUNCTION_NAME",
    "ECS_CONTAINER_METADATA_URI",
)


def _load_dotenv_if_present(dotenv_path: Path) -> None:
    """
    Loads environment variables from a .env file if it exists and not running in AWS.

    Existing environment variables are never overwritten.
    """
    if any(os.getenv(indicator) for indicator in _AWS_RUNTIME_INDICATORS):
        return
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=False)


env_path = Path(__file__).parent.parent / ".env"
_load_dotenv_if_present(env_path)


class Config:
    """
    Configuration class that reads environment variables for the data lake sync.
    """

    # S3 Configuration
    S3_DATA_LAKE_RAW_BUCKET: str = os.getenv("S3_DATA_LAKE_RAW_BUCKET", "")
    MICROSERVICE_NAME: str = os.getenv("MICROSERVICE_NAME", "")

    # SQS Configuration
    DATA_LAKE_SYNC_SQS_QUEUE_URL: str = os.getenv("DATA_LAKE_SYNC_SQS_QUEUE_URL", "")
    CLIENT_CODE_ATTRIBUTE: str = "client-code"
    MAX_BATCH_MESSAGES: int = 50
    SQS_SEND_BATCH_SIZE: int = 10

    # RDS Configuration
    RDS_SECRET_ARN: str = os.getenv("RDS_SECRET_ARN", "")
    CLIENTS_TABLE: str = os.getenv("CLIENTS_TABLE", "clients")
    CLIENT_ACTIVE_STATUS: str = "active"

    # Entity settings document
    DATA_LAKE_SETTINGS_PATH: str = os.getenv("DATA_LAKE_SETTINGS_PATH", "settings.json")

    # Dump Configuration
    DEFAULT_BATCH_SIZE: int = 1000
    DEFAULT_MAX_SIZE_MB: int = 500
    COMPRESSION_LEVEL: int = 6
    UPLOAD_CHUNK_SIZE: int = 8 * 1024 * 1024
    UPLOAD_BUFFER_CHUNKS: int = 4
    MAX_CONCURRENT_UPLOADS: int = 4
    UPLOAD_PROGRESS_LOG_BYTES: int = 64 * 1024 * 1024

    # Lazy-loaded secrets cache
    _rds_secret_cache: Dict[str, Any] = {}

    @classmethod
    def _load_rds_secret(cls) -> Dict[str, Any]:
        """
        Retrieve and cache the RDS secret from AWS Secrets Manager.

        Returns:
            Dict containing the secret payload.
        """
        if not cls._rds_secret_cache:
            if not cls.RDS_SECRET_ARN:
                raise ValueError("RDS_SECRET_ARN environment variable is required")

            import boto3
            from botocore.exceptions import BotoCoreError, ClientError

            secrets_client = boto3.client("secretsmanager")
            try:
                response = secrets_client.get_secret_value(SecretId=cls.RDS_SECRET_ARN)
                cls._rds_secret_cache = json.loads(response["SecretString"])
            except (BotoCoreError, ClientError, ValueError) as e:
                raise ValueError(
                    f"Failed to retrieve RDS secret from Secrets Manager: {e}"
                )
        return cls._rds_secret_cache

    @classmethod
    def get_rds_connection_details(cls) -> Dict[str, Any]:
        """
        Provide database connection details sourced from the RDS secret.

        Returns:
            Dict containing host, port, database, user, and password.
        """
        secret = cls._load_rds_secret()

        required_keys = ["host", "port", "username", "password"]
        missing_keys = [key for key in required_keys if key not in secret]
        if missing_keys:
            raise ValueError(
                f"RDS secret missing required keys: {', '.join(missing_keys)}"
            )

        database_name = secret.get("dbname") or secret.get("database")
        if not database_name:
            raise ValueError("RDS secret must include either 'dbname' or 'database'")

        return {
            "host": secret["host"],
            "port": int(secret["port"]),
            "database": database_name,
            "user": secret["username"],
            "password": secret["password"],
        }

    @classmethod
    def validate(cls) -> None:
        """
        Validate that required configuration values are present.

        Raises:
            ValueError: If any required configuration is missing.
        """
        required_vars = [
            ("S3_DATA_LAKE_RAW_BUCKET", cls.S3_DATA_LAKE_RAW_BUCKET),
            ("DATA_LAKE_SYNC_SQS_QUEUE_URL", cls.DATA_LAKE_SYNC_SQS_QUEUE_URL),
            ("MICROSERVICE_NAME", cls.MICROSERVICE_NAME),
            ("RDS_SECRET_ARN", cls.RDS_SECRET_ARN),
        ]

        missing = [name for name, value in required_vars if not value]
        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

    @classmethod
    def get_raw_key_prefix(
        cls,
        microservice: str,
        entity: str,
        incremental: bool,
        client_code: str,
        run_date: datetime,
    ) -> str:
        """
        Generate the S3 key prefix for raw tier data.

        Args:
            microservice: Name of the service owning the entity
            entity: The entity name (e.g., 'order', 'product')
            incremental: Whether the dump belongs to an incremental load
            client_code: Tenant code
            run_date: Wall-clock time of the dump run (partition date)

        Returns:
            str: S3 key prefix for the raw data
        """
        load_type = "incremental" if incremental else "initial"
        return "/".join(
            [
                f"microservice={microservice}",
                f"entity={entity}",
                f"load_type={load_type}",
                f"client_code={client_code}",
                f"year={run_date.year}",
                f"month={run_date.month:02d}",
                f"day={run_date.day:02d}",
            ]
        )

    @classmethod
    def get_raw_key(cls, prefix: str, window_from: str, pushed_at: int, part_index: int) -> str:
        """
        Generate the S3 key for one rotation part of a dump.

        Args:
            prefix: Key prefix from get_raw_key_prefix
            window_from: The window start exactly as received in the message
            pushed_at: Dump run timestamp in epoch milliseconds
            part_index: 1-based part number

        Returns:
            str: S3 key of the part object
        """
        return f"{prefix}/{window_from}-{pushed_at}-{part_index:03d}.ndjson.gz"

    @classmethod
    def max_size_bytes(cls, max_size_mb: int | None) -> int:
        """Byte budget of a single part."""
        return (max_size_mb or cls.DEFAULT_MAX_SIZE_MB) * 1024 * 1024

"""
Provides UTC timestamped logging helpers for the load and dump Lambdas.

Lines go to stdout so CloudWatch picks them up unchanged.
"""

from datetime import datetime, UTC
from typing import Optional


def _utc_timestamp() -> str:
    """
    Generate the current UTC timestamp string.

    Returns:
        str: Timestamp formatted as YYYY-MM-DD HH:MM:SS in UTC.
    """
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


def client_section(client_code: Optional[str], entity: str) -> str:
    """
    Build the section label used for every tenant/entity scoped log line.

    Args:
        client_code (Optional[str]): Tenant code, if known.
        entity (str): Entity being synced.

    Returns:
        str: Label such as "[client1 - order]".
    """
    return f"[{client_code or 'unknown'} - {entity}]"


def log_section_start(section: str) -> None:
    """
    Log the start of a section.

    Args:
        section (str): Description of the section that is beginning.
    """
    print(f"[{_utc_timestamp()}] Starting: {section}")


def log_section_complete(section: str, details: Optional[str] = None) -> None:
    """
    Log the completion of a section.

    Args:
        section (str): Description of the section that finished.
        details (Optional[str]): Optional extra context to append to the message.
    """
    suffix = f" - {details}" if details else ""
    print(f"[{_utc_timestamp()}] Completed: {section}{suffix}")


def log_progress(section: str, message: str, *, flush: bool = False) -> None:
    """
    Log an in-progress update for a section.

    Args:
        section (str): Description of the section that is running.
        message (str): Progress message to display for the section.
        flush (bool): Whether to force flush the output buffer.
    """
    print(f"[{_utc_timestamp()}] {section}: {message}", flush=flush)


def log_error(section: str, error: Exception | str) -> None:
    """
    Log an error that occurred during a section.

    Args:
        section (str): Description of the section where the error occurred.
        error (Exception | str): Exception instance or error message to record.
    """
    print(f"[{_utc_timestamp()}] Error in {section}: {error}", flush=True)

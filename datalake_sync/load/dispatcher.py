"""
Batch dispatcher.

Publishes batches of window messages to the sync queue and reports whether
every message of a batch was accepted.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from datalake_sync.config import Config
from datalake_sync.errors import DispatchFailure
from datalake_sync.models import WindowMessage
from datalake_sync.utils.logging_utils import client_section, log_error, log_progress


@dataclass
class PublishResult:
    """Outcome of publishing one batch."""

    failed_count: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)


class SqsPublisher:
    """
    Publishes message bodies to SQS, tagging each with the tenant code.

    SQS accepts at most 10 entries per SendMessageBatch call, so larger
    batches are sent in chunks and their failures aggregated.
    """

    def __init__(self, sqs_client=None):
        self.sqs_client = sqs_client or boto3.client("sqs")

    def publish_batch(
        self, queue_url: str, client_code: str, bodies: Sequence[Dict[str, Any]]
    ) -> PublishResult:
        """
        Send message bodies to the queue.

        Args:
            queue_url: Destination queue URL
            client_code: Tenant the messages belong to
            bodies: JSON-serializable message bodies

        Returns:
            PublishResult with the per-message outcome

        Raises:
            DispatchFailure: If a SendMessageBatch call itself fails
        """
        result = PublishResult()

        for start in range(0, len(bodies), Config.SQS_SEND_BATCH_SIZE):
            chunk = bodies[start : start + Config.SQS_SEND_BATCH_SIZE]
            entries = [
                {
                    "Id": str(start + offset),
                    "MessageBody": json.dumps(body),
                    "MessageAttributes": {
                        Config.CLIENT_CODE_ATTRIBUTE: {
                            "DataType": "String",
                            "StringValue": client_code,
                        }
                    },
                }
                for offset, body in enumerate(chunk)
            ]

            try:
                response = self.sqs_client.send_message_batch(QueueUrl=queue_url, Entries=entries)
            except (ClientError, BotoCoreError) as e:
                raise DispatchFailure(f"SendMessageBatch to {queue_url} failed: {e}") from e

            for success in response.get("Successful", []):
                result.results.append({"id": success["Id"], "messageId": success.get("MessageId"), "success": True})
            for failure in response.get("Failed", []):
                result.failed_count += 1
                result.results.append(
                    {
                        "id": failure["Id"],
                        "success": False,
                        "code": failure.get("Code"),
                        "message": failure.get("Message"),
                    }
                )

        return result


class BatchDispatcher:
    """Hands batches of at most MAX_BATCH_MESSAGES windows to the queue."""

    def __init__(self, publisher: SqsPublisher, queue_url: str):
        self.publisher = publisher
        self.queue_url = queue_url

    def dispatch(self, client_code: str, windows: Sequence[WindowMessage]) -> bool:
        """
        Publish one batch of windows for a tenant.

        The batch is all-or-nothing: any rejected message makes the whole
        dispatch fail. Nothing is retried here.

        Args:
            client_code: Tenant code
            windows: Windows to publish (1..MAX_BATCH_MESSAGES)

        Returns:
            True if the queue accepted every message, False otherwise
        """
        if not windows:
            return True
        if len(windows) > Config.MAX_BATCH_MESSAGES:
            raise ValueError(
                f"Batch of {len(windows)} windows exceeds the limit of {Config.MAX_BATCH_MESSAGES}"
            )

        first, last = windows[0], windows[-1]
        section = client_section(client_code, first.entity)
        description = (
            f"{'Incremental' if first.incremental else 'Initial Load'} - From {first.from_} To {last.to}"
        )

        try:
            result = self.publisher.publish_batch(
                self.queue_url, client_code, [window.to_payload() for window in windows]
            )
        except DispatchFailure as e:
            log_error(section, f"Failed to trigger Sync - {description}: {e}")
            return False

        if result.failed_count:
            log_error(
                section,
                f"Failed to trigger Sync - {description} - "
                f"{result.failed_count}/{len(windows)} rejected: {json.dumps(result.results)}",
            )
            return False

        log_progress(section, f"Triggered Sync - {description} ({len(windows)} message(s))")
        return True

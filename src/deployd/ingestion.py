"""Push ingestion: verify, parse, record a pending deployment, enqueue it."""

import hashlib
import hmac
import json

from pydantic import ValidationError

from .build_queue import BuildQueue
from .logging_config import get_logger
from .models import Deployment
from .schemas import IgnoredEvent, PushEvent, parse_event
from .store import RecordStore

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


class IngestionError(Exception):
    """Base class for rejected notifications."""


class SignatureError(IngestionError):
    """Signature header missing or not matching the body."""


class MalformedEventError(IngestionError):
    """Body is not JSON or lacks a required push field."""


class ProjectNotFoundError(IngestionError):
    """No project is registered for the pushed repository."""

    def __init__(self, repo_owner: str, repo_name: str):
        self.repo_owner = repo_owner
        self.repo_name = repo_name
        super().__init__(f"Project not found for repository {repo_owner}/{repo_name}")


class EnqueueError(IngestionError):
    """The deployment was recorded but could not be queued; it is marked failed."""

    def __init__(self, deployment_id: int, cause: Exception):
        self.deployment_id = deployment_id
        self.cause = cause
        super().__init__(f"Failed to enqueue deployment {deployment_id}: {cause}")


def sign(secret: str, body: bytes) -> str:
    """``sha256=<hex>`` HMAC of ``body``, as sent in X-Hub-Signature-256."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


class PushIngestion:
    """Turns verified push notifications into queued deployments."""

    def __init__(self, store: RecordStore, queue: BuildQueue, webhook_secret: str = ""):
        self.store = store
        self.queue = queue
        self.webhook_secret = webhook_secret

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Check ``signature`` against the body.

        A missing signature always fails. Without a configured secret any
        non-empty signature passes (local development).
        """
        if not signature:
            return False
        if not self.webhook_secret:
            return True
        return hmac.compare_digest(signature, sign(self.webhook_secret, body))

    async def handle(
        self, event_type: str, body: bytes, signature: str | None
    ) -> Deployment | None:
        """Process one notification.

        Returns:
            The pending deployment, or None for event types that are ignored.

        Raises:
            SignatureError, MalformedEventError, ProjectNotFoundError, EnqueueError
        """
        if not self.verify_signature(body, signature):
            logger.warning("push_signature_rejected", event_type=event_type)
            raise SignatureError("Invalid signature")

        try:
            payload = json.loads(body) if body else {}
        except json.JSONDecodeError as e:
            raise MalformedEventError(f"Body is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedEventError("Body must be a JSON object")

        try:
            event = parse_event(event_type, payload)
        except ValidationError as e:
            logger.warning("push_event_malformed", errors=e.error_count())
            raise MalformedEventError(f"Failed to parse push event: {e}") from e

        if isinstance(event, IgnoredEvent):
            logger.info("event_ignored", event_type=event.event_type)
            return None

        return await self._handle_push(event)

    async def _handle_push(self, event: PushEvent) -> Deployment:
        project = await self.store.find_project_by_repo(event.repo_owner, event.repo_name)
        if project is None:
            logger.warning(
                "push_project_not_found", repo_owner=event.repo_owner, repo_name=event.repo_name
            )
            raise ProjectNotFoundError(event.repo_owner, event.repo_name)

        deployment = await self.store.create_deployment(
            project.id,
            commit_sha=event.commit_sha,
            commit_message=event.head_commit.message,
            branch=event.branch,
        )

        try:
            await self.queue.enqueue(deployment.id)
        except Exception as e:
            logger.error("deployment_enqueue_failed", deployment_id=deployment.id, error=str(e))
            await self.store.fail_deployment(deployment.id)
            raise EnqueueError(deployment.id, e) from e

        logger.info(
            "deployment_triggered",
            deployment_id=deployment.id,
            project_id=project.id,
            branch=event.branch,
            commit_sha=event.commit_sha,
        )
        return deployment

"""
Work Order Hub - Message Label State Machine

Signed documents that arrive by email carry labels on the source message:

    queue          -> message is waiting to be processed
    processed      -> signed copy applied to its work order
    needs_review   -> signed copy parked in the review queue (optional label)

After a disposition is committed the message is moved along the
transition table below. Label bookkeeping is best-effort: every failure is
logged and reported in the result, never raised, and never undoes the
disposition. Port calls are idempotent, so replays are harmless.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

import httpx

from . import config
from .errors import LabelTransitionFailure
from .models import LabelTransitionResult, ProcessingMode

logger = logging.getLogger(__name__)


# =============================================================================
# LABEL CONFIGURATION
# =============================================================================

class LabelRole:
    QUEUE = "queue"
    PROCESSED = "processed"
    NEEDS_REVIEW = "needs_review"


@dataclass(frozen=True)
class WorkspaceLabels:
    """Label ids configured for a workspace. Optional roles may be None."""
    queue: str
    processed: Optional[str] = None
    needs_review: Optional[str] = None

    def label_for(self, role: str) -> Optional[str]:
        return getattr(self, role, None)


# Format: {disposition mode: {"remove": [roles], "apply": [roles]}}
LABEL_TRANSITIONS: Dict[ProcessingMode, Dict[str, List[str]]] = {
    ProcessingMode.UPDATED: {
        "remove": [LabelRole.QUEUE],
        "apply": [LabelRole.PROCESSED],
    },
    ProcessingMode.NEEDS_REVIEW: {
        # queue label stays so the message can be retried after review
        "remove": [],
        "apply": [LabelRole.NEEDS_REVIEW],
    },
}


# =============================================================================
# PORTS
# =============================================================================

class LabelPort(ABC):
    """Idempotent label operations on a source message."""

    @abstractmethod
    async def remove_label(self, message_id: str, label_id: str) -> None:
        """Remove a label. Removing an absent label is a no-op. Raises LabelTransitionFailure."""

    @abstractmethod
    async def apply_label(self, message_id: str, label_id: str) -> None:
        """Add a label. Adding a present label is a no-op. Raises LabelTransitionFailure."""


class InMemoryLabelPort(LabelPort):
    """Label state kept in a dict; `failing` names operations that should raise."""

    def __init__(self, initial: Optional[Dict[str, Set[str]]] = None, failing: Optional[Set[str]] = None):
        self.labels: Dict[str, Set[str]] = {k: set(v) for k, v in (initial or {}).items()}
        self.failing = set(failing or ())
        self.calls: List[tuple] = []

    async def remove_label(self, message_id, label_id):
        self.calls.append(("remove", message_id, label_id))
        if "remove" in self.failing:
            raise LabelTransitionFailure(f"remove {label_id} from {message_id} failed")
        self.labels.setdefault(message_id, set()).discard(label_id)

    async def apply_label(self, message_id, label_id):
        self.calls.append(("apply", message_id, label_id))
        if "apply" in self.failing:
            raise LabelTransitionFailure(f"apply {label_id} to {message_id} failed")
        self.labels.setdefault(message_id, set()).add(label_id)


class GmailLabelPort(LabelPort):
    """
    Gmail REST label operations for one mailbox.

    Checks the message's current labels before each modify so repeated
    calls do not issue redundant writes.
    """

    def __init__(
        self,
        access_token: str,
        user_id: str = "me",
        api_base: str = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.user_id = user_id
        self.api_base = (api_base or config.GMAIL_API_BASE).rstrip("/")
        self._client = client

    def _message_url(self, message_id: str) -> str:
        return f"{self.api_base}/users/{self.user_id}/messages/{message_id}"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(method, url, headers=self._headers(), **kwargs)
            else:
                async with httpx.AsyncClient(timeout=config.GMAIL_REQUEST_TIMEOUT) as client:
                    response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise LabelTransitionFailure(f"Gmail {method} {url} failed: {e}") from e

        if response.status_code >= 400:
            raise LabelTransitionFailure(
                f"Gmail {method} {url} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    async def get_labels(self, message_id: str) -> List[str]:
        response = await self._request(
            "GET", self._message_url(message_id), params={"format": "minimal"}
        )
        return response.json().get("labelIds") or []

    async def remove_label(self, message_id, label_id):
        if label_id not in await self.get_labels(message_id):
            logger.debug("Label %s not on message %s, skipping removal", label_id, message_id)
            return
        await self._request(
            "POST", f"{self._message_url(message_id)}/modify",
            json={"removeLabelIds": [label_id]}
        )
        logger.info("Removed label %s from message %s", label_id, message_id)

    async def apply_label(self, message_id, label_id):
        if label_id in await self.get_labels(message_id):
            logger.debug("Label %s already on message %s", label_id, message_id)
            return
        await self._request(
            "POST", f"{self._message_url(message_id)}/modify",
            json={"addLabelIds": [label_id]}
        )
        logger.info("Applied label %s to message %s", label_id, message_id)


# =============================================================================
# TRANSITION
# =============================================================================

async def apply_label_transition(
    port: LabelPort,
    message_id: str,
    labels: WorkspaceLabels,
    mode: ProcessingMode,
) -> LabelTransitionResult:
    """
    Move a source message to the label state for a committed disposition.

    Never raises. Each remove/apply is attempted independently and failures
    are collected in the result.
    """
    result = LabelTransitionResult()
    transition = LABEL_TRANSITIONS.get(mode)
    if transition is None or not config.LABELS_ENABLED:
        return result

    result.attempted = True

    for role in transition["remove"]:
        label_id = labels.label_for(role)
        if not label_id:
            continue
        try:
            await port.remove_label(message_id, label_id)
            result.removed.append(label_id)
        except Exception as e:
            logger.error("Label transition: failed to remove %s from %s: %s", label_id, message_id, e)
            result.errors.append(f"remove {role}: {e}")

    for role in transition["apply"]:
        label_id = labels.label_for(role)
        if not label_id:
            continue
        try:
            await port.apply_label(message_id, label_id)
            result.applied.append(label_id)
        except Exception as e:
            logger.error("Label transition: failed to apply %s to %s: %s", label_id, message_id, e)
            result.errors.append(f"apply {role}: {e}")

    result.success = not result.errors
    logger.info(
        "Label transition for message %s (%s): removed=%s applied=%s errors=%d",
        message_id, mode.value, result.removed, result.applied, len(result.errors)
    )
    return result

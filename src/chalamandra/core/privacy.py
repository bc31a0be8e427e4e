"""Privacy Gate - the only pathway for content to reach remote analysis.

This module strips identifying content (email addresses, phone numbers,
payment-card-like digit sequences) from a message before it may leave the
local environment, and enforces that nothing unsanitized ever reaches a
remote backend.

**CRITICAL SECURITY BOUNDARY**

If this module is bypassed, it's a security bug. A remote adapter handed raw
Content raises PrivacyViolationError; the orchestrator does not catch it.

Design Philosophy:
    - Privacy by Default: remote enhancement is OFF until explicitly enabled
    - Pattern classes, not lookup tables: identifiers are recognized by shape
    - Idempotent: sanitizing twice equals sanitizing once
    - Transparency: every transmission is recorded (hash and size, never text)

Example:
    >>> from chalamandra.core.privacy import PrivacyGate, PrivacySettings
    >>>
    >>> gate = PrivacyGate()
    >>> safe = gate.prepare_for_remote(Content(text="mail jane@example.com"))
    >>> safe.text
    'mail [EMAIL]'
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from chalamandra.core.models import Content, ImageRef

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Placeholders & Patterns
# =============================================================================


EMAIL_PLACEHOLDER = "[EMAIL]"
PHONE_PLACEHOLDER = "[PHONE]"
CARD_PLACEHOLDER = "[CARD]"

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

# 13-19 digits, optionally grouped by single spaces, dots or dashes.
CARD_PATTERN = re.compile(r"(?<!\w)(?:\d[ .-]?){12,18}\d(?!\w)")

PHONE_PATTERN = re.compile(
    r"(?<![\w+])"
    r"(?:"
    # National formats: (555) 123-4567, 555.123.4567, +1 555 123 4567
    r"(?:\+\d{1,3}[ .-]?)?(?:\(\d{2,4}\)[ .-]?|\d{2,4}[ .-]?)?\d{3}[ .-]?\d{4}"
    r"|"
    # International grouping: +34 612 345 678
    r"\+\d{1,3}(?:[ .-]?\d{2,4}){2,4}"
    r")"
    r"(?!\w)"
)

# Order matters: cards before phones so long digit runs are not split.
IDENTIFIER_PATTERNS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("email", EMAIL_PATTERN, EMAIL_PLACEHOLDER),
    ("card", CARD_PATTERN, CARD_PLACEHOLDER),
    ("phone", PHONE_PATTERN, PHONE_PLACEHOLDER),
)


# =============================================================================
# Enums
# =============================================================================


class PrivacyLevel(str, Enum):
    """Privacy level chosen by the user.

    Attributes:
        HIGH: Nothing leaves the machine, even with remote opt-in.
        STANDARD: Sanitized content may be sent when the user opted in.
        LOW: Same as STANDARD for the orchestrator; reserved for richer
             payloads (e.g. image alt text) in remote prompts.
    """

    HIGH = "high"
    STANDARD = "standard"
    LOW = "low"


# =============================================================================
# Custom Exceptions
# =============================================================================


class PrivacyError(Exception):
    """Base exception for privacy-related errors."""

    pass


class PrivacyViolationError(PrivacyError):
    """Raised when unsanitized content is about to reach a remote backend.

    A fatal precondition violation. The cascade never absorbs it.
    """

    pass


# =============================================================================
# Supporting Models
# =============================================================================


class SanitizedContent(Content):
    """Content that has passed through the sanitizer.

    Only PrivacySanitizer creates instances. Remote adapters check for this
    type before sending anything.
    """


class PrivacySettings(BaseModel):
    """Privacy configuration, read once per request.

    Attributes:
        privacy_level: Overall privacy level.
        allow_remote: Explicit opt-in to remote enhancement.

    Example:
        >>> settings = PrivacySettings(privacy_level=PrivacyLevel.STANDARD, allow_remote=True)
        >>> settings.remote_permitted()
        True
    """

    privacy_level: PrivacyLevel = PrivacyLevel.HIGH
    allow_remote: bool = False

    def remote_permitted(self) -> bool:
        """Check whether remote enhancement is allowed at all.

        Returns:
            True only if the user opted in and the level is not HIGH.
        """
        return self.allow_remote and self.privacy_level != PrivacyLevel.HIGH

    def narrowed(self, allow_remote: bool | None) -> "PrivacySettings":
        """Apply a per-request opt-out. A request can never widen settings."""
        if allow_remote is None or allow_remote == self.allow_remote:
            return self
        return self.model_copy(update={"allow_remote": self.allow_remote and allow_remote})

    def to_user_summary(self) -> str:
        """Generate a human-readable explanation of the current settings."""
        lines = [f"Privacy Level: {self.privacy_level.value.upper()}"]
        lines.append(f"Remote Enhancement: {'Opted in' if self.allow_remote else 'Off'}")
        if self.remote_permitted():
            lines.append("Outbound text is sanitized: emails, phone numbers and card numbers")
            lines.append("are replaced with placeholders before any remote call.")
        else:
            lines.append("All analysis stays on this machine.")
        return "\n".join(lines)


class TransmissionRecord(BaseModel):
    """Record of content handed to a remote backend.

    Logged for audit purposes. Stores a hash of the payload, not the payload.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload_hash: str
    payload_size_bytes: int
    identifiers_removed: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Sanitizer
# =============================================================================


def _sanitize_text(text: str) -> str:
    # Run to a fixed point so the result is stable under re-sanitization.
    # Each pass that changes anything removes at least one '@' or digit run,
    # so the loop terminates.
    while True:
        result = text
        for _, pattern, placeholder in IDENTIFIER_PATTERNS:
            result = pattern.sub(placeholder, result)
        if result == text:
            return result
        text = result


def find_identifiers(text: str) -> Counter[str]:
    """Count identifier classes present in text.

    Args:
        text: Text to scan.

    Returns:
        Counter keyed by "email", "card" and "phone". Values only, never matches.
    """
    found: Counter[str] = Counter()
    remaining = text
    for kind, pattern, placeholder in IDENTIFIER_PATTERNS:
        matches = pattern.findall(remaining)
        if matches:
            found[kind] += len(matches)
            remaining = pattern.sub(placeholder, remaining)
    return found


class PrivacySanitizer:
    """Replaces recognizable identifiers with fixed placeholder tokens.

    Never raises: unmatched input passes through unchanged.
    """

    def sanitize_text(self, text: str) -> str:
        """Sanitize a single string."""
        if not text:
            return text
        return _sanitize_text(text)

    def sanitize(self, content: Content) -> SanitizedContent:
        """Sanitize text, image references and metadata values.

        Args:
            content: Content to sanitize (raw or already sanitized).

        Returns:
            SanitizedContent with identifiers replaced.
        """
        images = tuple(
            ImageRef(
                source_uri=self.sanitize_text(image.source_uri),
                alt_text=self.sanitize_text(image.alt_text),
                pixel_area=image.pixel_area,
            )
            for image in content.images
        )
        metadata = {key: self.sanitize_text(value) for key, value in content.metadata.items()}
        return SanitizedContent(
            text=self.sanitize_text(content.text),
            images=images,
            metadata=metadata,
        )


_default_sanitizer = PrivacySanitizer()


def sanitize(content: Content) -> SanitizedContent:
    """Module-level convenience wrapper around PrivacySanitizer.sanitize."""
    return _default_sanitizer.sanitize(content)


def ensure_sanitized(content: Content) -> SanitizedContent:
    """Verify content went through the sanitizer.

    Raises:
        PrivacyViolationError: If content is not SanitizedContent.
    """
    if not isinstance(content, SanitizedContent):
        logger.critical("Remote call attempted with unsanitized content")
        raise PrivacyViolationError(
            "Remote backends only accept sanitized content; run it through the PrivacyGate first"
        )
    return content


# =============================================================================
# Main Privacy Gate Class
# =============================================================================


class PrivacyGate:
    """Central gatekeeper for remote-bound content.

    Combines the sanitizer with an audit trail of what was sent.

    Attributes:
        transmission_history: Records of prepared payloads, most recent last.
    """

    MAX_HISTORY = 200

    def __init__(self, sanitizer: PrivacySanitizer | None = None) -> None:
        self._sanitizer = sanitizer or _default_sanitizer
        self.transmission_history: list[TransmissionRecord] = []

    def prepare_for_remote(self, content: Content) -> SanitizedContent:
        """Sanitize content and record the transmission.

        Args:
            content: Raw content.

        Returns:
            Sanitized content safe to hand to a remote adapter.
        """
        removed = find_identifiers(content.text)
        for image in content.images:
            removed.update(find_identifiers(image.alt_text))
        for value in content.metadata.values():
            removed.update(find_identifiers(value))

        sanitized = self._sanitizer.sanitize(content)
        self.record_transmission(sanitized, dict(removed))

        if removed:
            logger.info(
                "Sanitized outbound content: "
                + ", ".join(f"{count} {kind}" for kind, count in sorted(removed.items()))
            )
        return sanitized

    def record_transmission(
        self, content: SanitizedContent, identifiers_removed: dict[str, int] | None = None
    ) -> TransmissionRecord:
        """Log a transmission without storing its text."""
        payload = content.model_dump_json().encode("utf-8")
        record = TransmissionRecord(
            payload_hash=hashlib.sha256(payload).hexdigest(),
            payload_size_bytes=len(payload),
            identifiers_removed=identifiers_removed or {},
        )
        self.transmission_history.append(record)
        if len(self.transmission_history) > self.MAX_HISTORY:
            del self.transmission_history[: -self.MAX_HISTORY]
        logger.debug(f"Transmission recorded: {record.id} ({record.payload_size_bytes} bytes)")
        return record

    def get_transmission_summary(self) -> dict[str, Any]:
        """Summarize recorded transmissions for display."""
        totals: Counter[str] = Counter()
        for record in self.transmission_history:
            totals.update(record.identifiers_removed)
        return {
            "transmissions": len(self.transmission_history),
            "bytes": sum(r.payload_size_bytes for r in self.transmission_history),
            "identifiers_removed": dict(totals),
        }

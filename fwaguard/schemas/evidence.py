"""
Evidence Schemas — what the collaborators hand to ``analyze``.

Validation happens here, before any extractor runs.
"""

import hashlib
import json
import math
from datetime import datetime
from enum import StrEnum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

MAX_TRANSCRIPT_CHARS: int = 200_000
MAX_BATCH_ITEMS: int = 50_000


class TranscriptEvidence(BaseModel):
    """A call transcript."""
    text: str = Field(min_length=1, max_length=MAX_TRANSCRIPT_CHARS)
    call_id: Optional[str] = Field(default=None, max_length=128)
    agent_id: Optional[str] = Field(default=None, max_length=128)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("transcript text is blank")
        return v


class BillingRecord(BaseModel):
    id: str = Field(min_length=1, max_length=128)
    amount: float = Field(ge=0.0)
    timestamp: Optional[datetime] = None

    @field_validator("amount")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("amount must be finite")
        return v


class BillingEvidence(BaseModel):
    """A batch of billing records. Record ids must be unique within the batch."""
    records: list[BillingRecord] = Field(min_length=1, max_length=MAX_BATCH_ITEMS)
    batch_id: Optional[str] = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def _unique_ids(self) -> "BillingEvidence":
        ids = [r.id for r in self.records]
        if len(ids) != len(set(ids)):
            raise ValueError("billing record ids must be unique within a batch")
        return self


class VerificationStatus(StrEnum):
    VERIFIED = "VERIFIED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    NOT_PERFORMED = "NOT_PERFORMED"


class IdentityVerification(BaseModel):
    status: VerificationStatus = VerificationStatus.NOT_PERFORMED
    method: Optional[str] = None


class EnrollmentEvent(BaseModel):
    """
    One enrollment action.

    consent_scope: products/plans the beneficiary consented to.
    enrolled_products: products the enrollment actually applied.
    """
    event_id: str = Field(min_length=1, max_length=128)
    beneficiary_id: Optional[str] = None
    consent_scope: list[str] = Field(default_factory=list)
    enrolled_products: list[str] = Field(default_factory=list)
    identity_verification: IdentityVerification = Field(default_factory=IdentityVerification)
    text: str = Field(default="", max_length=MAX_TRANSCRIPT_CHARS)


class EnrollmentEvidence(BaseModel):
    events: list[EnrollmentEvent] = Field(min_length=1, max_length=MAX_BATCH_ITEMS)
    batch_id: Optional[str] = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def _unique_ids(self) -> "EnrollmentEvidence":
        ids = [e.event_id for e in self.events]
        if len(ids) != len(set(ids)):
            raise ValueError("enrollment event ids must be unique within a batch")
        return self


Evidence = Union[TranscriptEvidence, BillingEvidence, EnrollmentEvidence]


def evidence_fingerprint(evidence: Evidence) -> str:
    """SHA-256 of the canonical JSON payload (cache key material)."""
    payload = json.dumps(evidence.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()


def evidence_identity(evidence: Evidence) -> str:
    """
    Human-traceable identity for an evidence payload.

    The caller-supplied id (call_id / batch_id) when present,
    otherwise a prefix of the content fingerprint.
    """
    explicit = None
    if isinstance(evidence, TranscriptEvidence):
        explicit = evidence.call_id
    elif isinstance(evidence, (BillingEvidence, EnrollmentEvidence)):
        explicit = evidence.batch_id
    if explicit:
        return explicit
    return "sha256:" + evidence_fingerprint(evidence)[:32]

"""
Biometric Login Flow

Glue between the identity provider, the descriptor extractor and the store:

- enroll: capture a descriptor and store it for an identity
- authenticate: 1:1 verification of a live frame against an identity's
  stored embedding; opens the offline session on a match
- handle_sign_in: the identity provider confirmed a session, so the
  registry is refreshed and the offline session is dropped
- restore_session: start-up without a provider session falls back to the
  offline session, if any

"No face found" and "no match" are distinct outcomes: the first asks the
user to retry the capture, the second is a negative authentication result
that carries the distance.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Tuple

from biostore.models import Embedding, IdentityAccount, OfflineSession, RegistryRecord, now_ms
from biostore.store import BiometricStore

logger = logging.getLogger(__name__)


class DescriptorExtractor(Protocol):
    """Produces a 128-value face descriptor from a frame, or None if no face is found."""

    def extract(self, frame: Any) -> Optional[Sequence[float]]:
        ...


class AuthOutcome(Enum):
    ENROLLED = "enrolled"
    MATCHED = "matched"
    NO_MATCH = "no_match"
    NO_FACE = "no_face"
    NOT_ENROLLED = "not_enrolled"


@dataclass
class AuthResult:
    """
    Outcome of an enrollment or authentication attempt.

    Attributes:
        outcome: What happened.
        identity_id: Identity the attempt was for.
        distance: Descriptor distance, set when a comparison ran.
        session: Offline session opened by a successful match.
    """

    outcome: AuthOutcome
    identity_id: str
    distance: Optional[float] = None
    session: Optional[OfflineSession] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (AuthOutcome.ENROLLED, AuthOutcome.MATCHED)


class BiometricLogin:
    """
    Face login on top of a BiometricStore.

    Args:
        store: The biometric store.
        extractor: Descriptor extractor for live frames.
        threshold: Match threshold. Defaults to the store's configured value.
    """

    def __init__(
        self,
        store: BiometricStore,
        extractor: DescriptorExtractor,
        threshold: Optional[float] = None,
    ):
        self.store = store
        self.extractor = extractor
        self.threshold = threshold

    async def enroll(self, identity_id: str, frame: Any) -> AuthResult:
        """
        Capture a descriptor from a frame and store it for an identity.

        Re-enrolling replaces the previous descriptor.
        """
        descriptor = self.extractor.extract(frame)
        if descriptor is None:
            logger.info(f"Enrollment for {identity_id}: no face detected")
            return AuthResult(AuthOutcome.NO_FACE, identity_id)

        embedding = Embedding(identity_id=identity_id, descriptor=descriptor, updated_at=now_ms())
        await self.store.save_embedding(embedding)
        logger.info(f"Enrolled {identity_id}")
        return AuthResult(AuthOutcome.ENROLLED, identity_id)

    async def authenticate(self, identity_id: str, frame: Any) -> AuthResult:
        """
        Verify a live frame against an identity's stored embedding.

        On a match the offline session is written with the registry's email and
        display name for the identity.
        """
        stored = await self.store.get_embedding(identity_id)
        if stored is None:
            logger.info(f"Authentication for {identity_id}: no stored embedding")
            return AuthResult(AuthOutcome.NOT_ENROLLED, identity_id)

        live = self.extractor.extract(frame)
        if live is None:
            logger.info(f"Authentication for {identity_id}: no face detected")
            return AuthResult(AuthOutcome.NO_FACE, identity_id)

        result = self.store.compare_descriptors(stored.descriptor, live, self.threshold)
        if not result.is_match:
            logger.info(f"Authentication for {identity_id}: mismatch "
                        f"(distance {result.distance:.3f})")
            return AuthResult(AuthOutcome.NO_MATCH, identity_id, distance=result.distance)

        record = self.store.get_registry_record(identity_id)
        session = await self.store.set_offline_session(
            identity_id,
            email=record.email if record else None,
            display_name=record.display_name if record else None,
        )
        logger.info(f"Authentication for {identity_id}: match "
                    f"(distance {result.distance:.3f})")
        return AuthResult(
            AuthOutcome.MATCHED, identity_id, distance=result.distance, session=session
        )

    async def handle_sign_in(self, account: IdentityAccount) -> RegistryRecord:
        """
        Record a sign-in confirmed by the identity provider.

        Refreshes the registry entry from the account handle, sets the enrolled
        flag from whether an embedding exists, and clears the offline session.
        """
        embedding = await self.store.get_embedding(account.identity_id)
        record = await self.store.update_registry(
            account.identity_id,
            email=account.email,
            display_name=account.display_name,
            photo_url=account.photo_url,
            enrolled=embedding is not None,
        )
        await self.store.clear_offline_session()
        return record

    async def restore_session(self) -> Optional[Tuple[OfflineSession, bool]]:
        """
        Return the offline session and whether its identity is enrolled.

        Used at start-up when the identity provider has no session.
        """
        session = await self.store.get_offline_session()
        if session is None:
            return None

        embedding = await self.store.get_embedding(session.identity_id)
        return session, embedding is not None

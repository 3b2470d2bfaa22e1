"""
Applicant service - staff registration of document applicants and the
"document ready for collection" flow.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from huduma.database import get_session
from huduma.db_models import Applicant, Document
from huduma.exceptions import InvalidTransition, NotFound, PermissionDenied, ValidationError
from huduma.models import (
    Actor,
    ApplicantStatus,
    DocumentType,
    NotificationEvent,
    Recipient,
)
from huduma.repositories import ApplicantRepository
from huduma.services.notification_service import NotificationDispatcher, SessionFactory

logger = logging.getLogger(__name__)

DOCUMENT_LABELS = {
    DocumentType.NATIONAL_ID: "National ID",
    DocumentType.PASSPORT: "Passport",
    DocumentType.VISA: "Visa",
    DocumentType.BIRTH_CERTIFICATE: "Birth Certificate",
    DocumentType.DRIVING_LICENSE: "Driving License",
    DocumentType.GOOD_CONDUCT_CERTIFICATE: "Certificate of Good Conduct",
    DocumentType.MARRIAGE_CERTIFICATE: "Marriage Certificate",
    DocumentType.DEATH_CERTIFICATE: "Death Certificate",
}


def _document_type(value: Optional[str]) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError:
        raise ValidationError(f"Unknown document type '{value}'")


class ApplicantService:
    """Staff-facing applicant operations"""

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        session_factory: SessionFactory = get_session,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or NotificationDispatcher(session_factory=session_factory)

    @staticmethod
    def _require_staff(actor: Actor) -> None:
        if not actor.is_staff:
            raise PermissionDenied(f"Actor {actor.id} is not staff")

    def register_applicant(
        self,
        actor: Actor,
        application_id: str,
        full_name: str,
        phone: str,
        email: Optional[str] = None,
        document_type: str = DocumentType.NATIONAL_ID.value,
    ) -> Applicant:
        """
        Register a walk-in applicant.

        Raises:
            ValidationError: Missing fields, unknown document type, or a
                duplicate application ID
        """
        self._require_staff(actor)
        if not application_id or not full_name or not phone:
            raise ValidationError("application_id, full_name and phone are required")
        kind = _document_type(document_type)

        try:
            with self.session_factory() as session:
                applicant = ApplicantRepository(session).create_applicant(
                    Applicant(
                        application_id=application_id,
                        full_name=full_name,
                        phone=phone,
                        email=email or None,
                        document_type=kind.value,
                        registered_by=actor.id,
                    )
                )
        except IntegrityError as e:
            raise ValidationError(f"Application ID {application_id} already registered") from e

        logger.info(f"Applicant {applicant.id} ({application_id}) registered by {actor.id}")
        return applicant

    def mark_document_ready(
        self,
        actor: Actor,
        applicant_id: int,
        document_number: str,
        document_type: Optional[str] = None,
    ) -> Applicant:
        """
        Record the issued document and tell the applicant to collect it.

        Status change, document row and outbox notification commit together;
        delivery is attempted afterwards.
        """
        self._require_staff(actor)
        if not document_number or not document_number.strip():
            raise ValidationError("document_number is required")
        document_number = document_number.strip()

        with self.session_factory() as session:
            repo = ApplicantRepository(session)
            applicant = repo.get_applicant(applicant_id)
            if applicant is None:
                raise NotFound("Applicant", applicant_id)
            if applicant.status == ApplicantStatus.COLLECTED.value:
                raise InvalidTransition("mark ready", applicant.status)

            kind = _document_type(document_type or applicant.document_type)

            applicant.status = ApplicantStatus.READY.value
            repo.save(applicant)
            repo.add_document(
                Document(
                    applicant_id=applicant.id,
                    document_type=kind.value,
                    document_number=document_number,
                    uploaded_by=actor.id,
                )
            )

            notification = self.dispatcher.enqueue(
                session,
                NotificationEvent.ID_READY,
                Recipient(
                    name=applicant.full_name, email=applicant.email, phone=applicant.phone
                ),
                {
                    "application_id": applicant.application_id,
                    "document_number": document_number,
                    "document_label": DOCUMENT_LABELS[kind],
                },
                applicant_id=applicant.id,
            )

        logger.info(f"Applicant {applicant_id} document {document_number} ready")
        self.dispatcher.deliver_after_commit(notification)
        return applicant

    def mark_collected(self, actor: Actor, applicant_id: int) -> Applicant:
        """Applicant picked up their document (ready -> collected)"""
        self._require_staff(actor)

        with self.session_factory() as session:
            repo = ApplicantRepository(session)
            applicant = repo.get_applicant(applicant_id)
            if applicant is None:
                raise NotFound("Applicant", applicant_id)
            if applicant.status != ApplicantStatus.READY.value:
                raise InvalidTransition("mark collected", applicant.status)

            applicant.status = ApplicantStatus.COLLECTED.value
            repo.save(applicant)

        logger.info(f"Applicant {applicant_id} collected their document")
        return applicant

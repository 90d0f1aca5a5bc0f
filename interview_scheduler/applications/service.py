"""Application lookups and status updates used by the scheduler."""

from uuid import UUID

from sqlalchemy.orm import Session

from .models import Application, ApplicationStatus


def get_application(db: Session, application_id: UUID) -> Application | None:
    return db.query(Application).filter(Application.id == application_id).first()


def update_status(db: Session, application: Application, new_status: ApplicationStatus) -> None:
    application.status = new_status
    db.flush()


def append_note(application: Application, note: str) -> None:
    application.notes = f"{application.notes}\n{note}" if application.notes else note

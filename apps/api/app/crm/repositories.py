from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.crm.models import CRMUser, MedicalInstitution


class InstitutionRepository:
    def find_by_id(self, session: Session, institution_id: uuid.UUID) -> MedicalInstitution | None:
        return session.scalar(select(MedicalInstitution).where(MedicalInstitution.id == institution_id))


class UserRepository:
    def find_by_id(self, session: Session, user_id: uuid.UUID) -> CRMUser | None:
        return session.scalar(select(CRMUser).where(CRMUser.id == user_id))

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from refined_crm import audit, events
from refined_crm.core.database import atomic
from refined_crm.directory.models import CustomFieldDefinition, UserAccount
from refined_crm.directory.schemas import CustomFieldCreate, CustomFieldRead, UserRead, UserSummary, UserUpdate
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.guard import authorize_operation, authorize_user_update, require_actor


logger = logging.getLogger("refined_crm.directory")


def _not_found(entity: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} not found")


def _publish(event_type: str, ctx: AuthContext, payload: dict[str, Any]) -> None:
    events.publish(events.build_envelope(event_type, payload, actor_user_id=ctx.actor_id))


class UserDirectoryService:
    entity_type = "user"

    def list_user_summaries(self, session: Session, ctx: AuthContext | None) -> list[UserSummary]:
        require_actor(ctx)
        rows = session.scalars(select(UserAccount).order_by(UserAccount.full_name.asc())).all()
        return [UserSummary.model_validate(row) for row in rows]

    def list_users(self, session: Session, ctx: AuthContext | None) -> list[UserRead]:
        authorize_operation(ctx, "user.list")
        rows = session.scalars(select(UserAccount).order_by(UserAccount.created_at.desc())).all()
        return [UserRead.model_validate(row) for row in rows]

    def get_user(self, session: Session, ctx: AuthContext | None, user_id: uuid.UUID) -> UserRead:
        require_actor(ctx)
        user = session.get(UserAccount, user_id)
        if user is None:
            raise _not_found("user")
        return UserRead.model_validate(user)

    def update_user(self, session: Session, ctx: AuthContext | None, user_id: uuid.UUID, dto: UserUpdate) -> UserRead:
        actor = authorize_operation(ctx, "user.update")
        changes = dto.model_dump(exclude_unset=True)

        try:
            with atomic(session):
                user = session.scalar(select(UserAccount).where(UserAccount.id == user_id).with_for_update())
                if user is None:
                    raise _not_found("user")
                authorize_user_update(actor, user.role, changes)
                if not changes:
                    return UserRead.model_validate(user)

                before = UserRead.model_validate(user).model_dump(mode="json")
                for key, value in changes.items():
                    setattr(user, key, value)
                session.flush()
                updated = UserRead.model_validate(user)
                audit.record_change(
                    actor,
                    self.entity_type,
                    user.id,
                    "update",
                    before=before,
                    after=updated.model_dump(mode="json"),
                )
        except IntegrityError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="email already in use") from exc

        if "role" in changes and before["role"] != updated.role:
            logger.info("directory.user.role_changed", extra={"user_id": str(user_id), "new_role": updated.role})
        _publish("directory.user.updated", actor, {"user_id": str(user_id)})
        return updated

    def delete_user(self, session: Session, ctx: AuthContext | None, user_id: uuid.UUID) -> None:
        actor = authorize_operation(ctx, "user.delete")
        with atomic(session):
            user = session.get(UserAccount, user_id)
            if user is None:
                raise _not_found("user")
            before = UserRead.model_validate(user).model_dump(mode="json")
            session.delete(user)
            audit.record_change(actor, self.entity_type, user_id, "delete", before=before)
        _publish("directory.user.deleted", actor, {"user_id": str(user_id)})


class CustomFieldService:
    entity_type = "custom_field"

    def list_custom_fields(self, session: Session, ctx: AuthContext | None) -> list[CustomFieldRead]:
        require_actor(ctx)
        rows = session.scalars(select(CustomFieldDefinition).order_by(CustomFieldDefinition.created_at.desc())).all()
        return [CustomFieldRead.model_validate(row) for row in rows]

    def create_custom_field(self, session: Session, ctx: AuthContext | None, dto: CustomFieldCreate) -> CustomFieldRead:
        actor = authorize_operation(ctx, "custom_field.create")
        with atomic(session):
            definition = CustomFieldDefinition(label=dto.label, field_type=dto.field_type, created_by_id=actor.user_id)
            session.add(definition)
            session.flush()
            created = CustomFieldRead.model_validate(definition)
            audit.record_change(
                actor,
                self.entity_type,
                definition.id,
                "create",
                after=created.model_dump(mode="json"),
            )
        return created

    def delete_custom_field(self, session: Session, ctx: AuthContext | None, field_id: uuid.UUID) -> None:
        actor = authorize_operation(ctx, "custom_field.delete")
        with atomic(session):
            definition = session.get(CustomFieldDefinition, field_id)
            if definition is None:
                raise _not_found("custom field")
            session.delete(definition)
            audit.record_change(actor, self.entity_type, field_id, "delete")


user_directory_service = UserDirectoryService()
custom_field_service = CustomFieldService()

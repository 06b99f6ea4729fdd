# backend/app/repositories/call_repository.py
"""
Call Repository.

Status changes go through ``transition``, a conditional UPDATE that only
matches rows whose current status may legally move to the target. Two
handlers racing on the same call therefore cannot both win.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple, cast

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import CALL_TRANSITIONS, CallStatus, CallType
from ..core.exceptions import RepositoryException
from ..models.call import Call
from .base_repository import BaseRepository


class CallRepository(BaseRepository[Call]):
    def __init__(self, db: Session):
        super().__init__(db, Call)

    def create_ringing(self, caller_id: str, callee_id: str, call_type: CallType) -> Call:
        return self.create(
            caller_id=caller_id,
            callee_id=callee_id,
            call_type=call_type,
            status=CallStatus.RINGING,
            started_at=datetime.now(timezone.utc),
        )

    def transition(self, call_id: str, target: CallStatus) -> Tuple[Optional[Call], bool]:
        """
        Move a call to ``target`` if its current status allows it.

        Returns:
            (call, changed): call is None when the id is unknown; changed is
            False when the current status does not permit the transition.
        """
        allowed_from = [
            status for status, targets in CALL_TRANSITIONS.items() if target in targets
        ]
        now = datetime.now(timezone.utc)
        values: Dict[str, Any] = {"status": target}
        if target is CallStatus.ACTIVE:
            values["answered_at"] = now
        if target.is_terminal:
            values["ended_at"] = now

        try:
            result = self.db.execute(
                update(Call)
                .where(Call.id == call_id, Call.status.in_(allowed_from))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.db.flush()
            call = self.db.query(Call).populate_existing().filter(Call.id == call_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error transitioning call {call_id} to {target.value}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to update call: {str(e)}")

        return cast(Optional[Call], call), bool(result.rowcount)

    def list_for_user(self, user_id: str, *, limit: int = 20, offset: int = 0) -> Sequence[Call]:
        """Calls where the user was caller or callee, most recent first."""
        return cast(
            Sequence[Call],
            self.db.query(Call)
            .filter(or_(Call.caller_id == user_id, Call.callee_id == user_id))
            .order_by(Call.started_at.desc())
            .offset(offset)
            .limit(limit)
            .all(),
        )

"""
approval_kernel.services.action_recorder -- Append-only action log.

Responsibility:
    Append one immutable, hash-chained action per state-changing event and
    read a draft's history back in order.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, utils/.
    Flushes only; the caller owns the transaction.

Invariants enforced:
    - Per-draft sequence: ``seq`` comes from the draft row's ``action_seq``
      counter, read and bumped while the caller holds the draft row lock,
      so sequence numbers are gapless and never reused (not max(seq)+1).
    - Hash chain: each action stores its predecessor's hash and a hash over
      its own fields plus that predecessor hash.
    - History order: ``seq`` ascending, the order in which actions were
      applied.  ``occurred_at`` never decreases along ``seq`` (an earlier
      timestamp is raised to its predecessor's), so this is also timestamp
      order with ties broken by insertion.

Failure modes:
    - DraftNotFoundError if the draft does not exist.
    - ActionChainBrokenError from verify_chain() on a tampered log.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import ActionKind, ActionRecord
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import ActionChainBrokenError, DraftNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.action import ActionModel
from approval_kernel.models.draft import DraftModel
from approval_kernel.utils.hashing import hash_action

logger = get_logger("services.action_recorder")


class ActionRecorder:
    """Appends and reads a draft's action log."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        draft_id: UUID,
        actor_id: UUID,
        kind: ActionKind,
        comment: str = "",
        *,
        approver_id: UUID | None = None,
        stage_id: UUID | None = None,
        occurred_at: datetime | None = None,
    ) -> ActionRecord:
        """Append an action to the draft's log.

        The draft row must already be locked by the caller's transaction.
        """
        draft = self._session.get(DraftModel, draft_id)
        if draft is None:
            raise DraftNotFoundError(str(draft_id))

        occurred_at = (occurred_at or self._clock.now()).astimezone(timezone.utc)
        seq = draft.action_seq + 1
        draft.action_seq = seq

        prev_hash = None
        if seq > 1:
            prev = self._session.execute(
                select(ActionModel.hash, ActionModel.occurred_at).where(
                    ActionModel.draft_id == draft_id,
                    ActionModel.seq == seq - 1,
                )
            ).one_or_none()
            if prev is not None:
                prev_hash = prev.hash
                occurred_at = max(occurred_at, prev.occurred_at)

        action = ActionModel(
            draft_id=draft_id,
            seq=seq,
            actor_id=actor_id,
            kind=kind.value,
            comment=comment,
            occurred_at=occurred_at,
            approver_id=approver_id,
            stage_id=stage_id,
            prev_hash=prev_hash,
            hash=hash_action(
                draft_id=draft_id,
                seq=seq,
                actor_id=actor_id,
                kind=kind.value,
                comment=comment,
                occurred_at=occurred_at,
                approver_id=approver_id,
                prev_hash=prev_hash,
            ),
        )
        self._session.add(action)
        self._session.flush()

        logger.info(
            "action_recorded",
            extra={
                "draft_id": str(draft_id),
                "seq": seq,
                "kind": kind.value,
                "actor_id": str(actor_id),
            },
        )
        return action.to_dto()

    def history(self, draft_id: UUID) -> Iterator[ActionRecord]:
        """Yield the draft's actions in ``seq`` order.

        Rows are fetched in batches as the iterator is consumed; the
        session must stay open until iteration ends.
        """
        stmt = (
            select(ActionModel)
            .where(ActionModel.draft_id == draft_id)
            .order_by(ActionModel.seq)
            .execution_options(yield_per=100)
        )
        for model in self._session.scalars(stmt):
            yield model.to_dto()

    def count(self, draft_id: UUID) -> int:
        """Number of actions recorded for a draft."""
        draft = self._session.get(DraftModel, draft_id)
        if draft is None:
            raise DraftNotFoundError(str(draft_id))
        return draft.action_seq

    def verify_chain(self, draft_id: UUID) -> int:
        """Recompute the draft's hash chain.

        Returns:
            Number of actions verified.

        Raises:
            ActionChainBrokenError: at the first action whose stored links
                or hash disagree with the recomputed chain.
        """
        stmt = (
            select(ActionModel)
            .where(ActionModel.draft_id == draft_id)
            .order_by(ActionModel.seq)
        )
        prev_hash: str | None = None
        verified = 0
        for expected_seq, action in enumerate(self._session.scalars(stmt), start=1):
            if action.seq != expected_seq:
                raise ActionChainBrokenError(
                    str(draft_id), expected_seq, f"seq {expected_seq}", f"seq {action.seq}",
                )
            if action.prev_hash != prev_hash:
                raise ActionChainBrokenError(
                    str(draft_id), action.seq, str(prev_hash), str(action.prev_hash),
                )
            expected = hash_action(
                draft_id=action.draft_id,
                seq=action.seq,
                actor_id=action.actor_id,
                kind=action.kind,
                comment=action.comment,
                occurred_at=action.occurred_at,
                approver_id=action.approver_id,
                prev_hash=action.prev_hash,
            )
            if expected != action.hash:
                raise ActionChainBrokenError(
                    str(draft_id), action.seq, expected, action.hash,
                )
            prev_hash = action.hash
            verified += 1

        logger.debug(
            "action_chain_verified",
            extra={"draft_id": str(draft_id), "actions": verified},
        )
        return verified

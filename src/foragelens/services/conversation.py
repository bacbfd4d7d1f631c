import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from foragelens.errors import ForageLensError, SessionNotFoundError
from foragelens.models import ConversationMessage, ConversationSession, MessageRole, SessionStatus
from foragelens.services.identification import IdentificationService
from foragelens.services.identification_pipeline import PipelineCallbacks
from foragelens.services.message_builder import DEFAULT_MAX_CONTEXT_TOKENS, build_llm_messages

logger = logging.getLogger(__name__)


@dataclass
class SendMessageResult:
    ok: bool
    session: Optional[ConversationSession] = None
    response: Optional[str] = None
    cached: bool = False
    error: Optional[str] = None
    message: Optional[str] = None


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class ConversationService:
    def __init__(
        self,
        db: Session,
        identification: Optional[IdentificationService] = None,
        max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
    ):
        self.db = db
        self.identification = identification
        self.max_context_tokens = max_context_tokens

    def start_conversation(self) -> ConversationSession:
        session = ConversationSession(id=_new_id("session"), status=SessionStatus.ACTIVE)
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        return session

    def get_session(self, session_id: str) -> Optional[ConversationSession]:
        return self.db.get(ConversationSession, session_id)

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[ConversationSession]:
        query = select(ConversationSession).order_by(ConversationSession.created_at.desc())
        if status is not None:
            query = query.where(ConversationSession.status == status)
        return list(self.db.scalars(query))

    def end_conversation(self, session_id: str) -> None:
        session = self.get_session(session_id)
        if session is None:
            return
        session.status = SessionStatus.COMPLETED
        self.db.commit()

    def _append(self, session: ConversationSession, role: MessageRole, content: str, photos=None) -> None:
        session.messages.append(
            ConversationMessage(
                id=_new_id("msg"),
                position=len(session.messages),
                role=role,
                content=content,
                photos=photos or None,
            )
        )

    async def send_message(
        self,
        session_id: str,
        text: str,
        photos: Optional[List[str]] = None,
        callbacks: Optional[PipelineCallbacks] = None,
    ) -> SendMessageResult:
        session = self.get_session(session_id)
        if session is None:
            missing = SessionNotFoundError(session_id)
            return SendMessageResult(ok=False, error=missing.code, message=missing.message)
        if self.identification is None:
            raise RuntimeError("ConversationService was created without an identification service")

        self._append(session, MessageRole.USER, text, photos)
        self.db.commit()

        try:
            llm_messages = build_llm_messages(session.messages, max_context_tokens=self.max_context_tokens)
            outcome = await self.identification.identify(llm_messages, callbacks=callbacks)
        except ForageLensError as e:
            logger.warning(f"Identification failed for {session_id}: {e.code} {e.message}")
            # The user turn was committed above, so the session keeps it.
            self.db.rollback()
            return SendMessageResult(ok=False, session=session, error=e.code, message=e.message)

        self._append(session, MessageRole.ASSISTANT, outcome.response)
        self.db.commit()
        return SendMessageResult(ok=True, session=session, response=outcome.response, cached=outcome.cached)

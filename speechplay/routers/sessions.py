"""
SpeechPlay v1.2: Safety Gate Session Router
The game layer drives a session through these endpoints:
create → set card → child responses / choices → poll timer events → end.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from speechplay.session.registry import SessionEntry, SessionRegistry, get_registry
from speechplay.state.types import AudioSignals, CardContext, CardImage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sessions", tags=["sessions"])


# ─── Request Models ──────────────────────────────────────────────────────────

class CardImageIn(BaseModel):
    image: str = ""
    label: str = ""


class CardIn(BaseModel):
    category: str
    question: str
    target_answers: list[str] = Field(min_length=1)
    images: list[CardImageIn] = []

    def to_card(self) -> CardContext:
        return CardContext(
            category=self.category,
            question=self.question,
            target_answers=tuple(self.target_answers),
            images=tuple(CardImage(image=i.image, label=i.label) for i in self.images),
        )


class ResponseIn(BaseModel):
    transcription: str
    screaming: bool = False
    crying: bool = False
    prolonged_silence: bool = False

    def audio_signals(self) -> Optional[AudioSignals]:
        signals = AudioSignals(
            screaming=self.screaming,
            crying=self.crying,
            prolonged_silence=self.prolonged_silence,
        )
        return signals if signals.any() else None


class ChoiceIn(BaseModel):
    action: str


class SessionCreated(BaseModel):
    session_id: str


# ─── Dependencies ────────────────────────────────────────────────────────────

def get_entry(
    session_id: str, registry: SessionRegistry = Depends(get_registry),
) -> SessionEntry:
    entry = registry.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return entry


# ─── Endpoints ───────────────────────────────────────────────────────────────

@router.post("", response_model=SessionCreated)
async def create_session(registry: SessionRegistry = Depends(get_registry)):
    entry = registry.create()
    return SessionCreated(session_id=entry.session.session_id)


@router.post("/{session_id}/card")
async def set_card(req: CardIn, entry: SessionEntry = Depends(get_entry)):
    entry.session.set_current_card(req.to_card())
    return entry.session.snapshot()


@router.post("/{session_id}/responses")
async def submit_response(req: ResponseIn, entry: SessionEntry = Depends(get_entry)):
    result = await entry.session.process_child_response(
        req.transcription, audio_signals=req.audio_signals(),
    )
    return result.to_dict()


@router.post("/{session_id}/choices")
async def select_choice(req: ChoiceIn, entry: SessionEntry = Depends(get_entry)):
    entry.session.handle_choice_selection(req.action)
    return entry.session.snapshot()


@router.post("/{session_id}/resume")
async def resume(entry: SessionEntry = Depends(get_entry)):
    entry.session.resume_session()
    return entry.session.snapshot()


@router.get("/{session_id}")
async def get_session(entry: SessionEntry = Depends(get_entry)):
    return entry.session.snapshot()


@router.get("/{session_id}/events")
async def drain_events(entry: SessionEntry = Depends(get_entry)):
    return {"events": [r.to_dict() for r in entry.drain()]}


@router.delete("/{session_id}")
async def end_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    if not registry.end(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": session_id, "status": "ENDED"}

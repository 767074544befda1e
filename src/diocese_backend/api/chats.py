import logging
from typing import Annotated, List
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from diocese_backend.api.exceptions import BadRequestException, NotFoundException, UnauthorizedException
from diocese_backend.database import get_db
from diocese_backend.interface.chats import ChatGet, ChatList, ChatRename, ChatSave
from diocese_backend.model.chat import Chat
from diocese_backend.permissions.auth import require_identity
from diocese_backend.permissions.principal import Identity

logger = logging.getLogger(__name__)

chats_router = APIRouter()


def get_owned_chat(chat_id: str, identity: Identity, db: Session, required: bool = True):
    """Load a chat and make sure it belongs to the caller"""

    chat = db.query(Chat).filter(Chat.id == chat_id).first()

    if chat is None:
        if required:
            raise NotFoundException(detail="Chat not found")
        return None

    if chat.user_id != identity.id:
        logger.warning(f"User {identity.id} tried to access chat {chat_id} of user {chat.user_id}")
        raise UnauthorizedException()

    return chat


def commit_chat(db: Session):
    try:
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error saving chat: {e}")
        db.rollback()
        raise BadRequestException("Chat could not be saved")


@chats_router.get("", response_model=List[ChatList])
def list_chats(identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    return (
        db.query(Chat)
        .filter(Chat.user_id == identity.id)
        .order_by(Chat.created_at.desc())
        .all()
    )


@chats_router.get("/{chat_id}", response_model=ChatGet)
def get_chat(chat_id: UUID, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    return get_owned_chat(str(chat_id), identity, db)


@chats_router.put("/{chat_id}", response_model=ChatGet)
def save_chat(chat_id: UUID, payload: ChatSave, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    """Create the chat or replace its messages, last write wins"""

    chat = get_owned_chat(str(chat_id), identity, db, required=False)
    messages = [m.model_dump() for m in payload.messages]

    if chat is None:
        chat = Chat(id=str(chat_id), user_id=identity.id, name=payload.name, messages=messages)
        db.add(chat)
    else:
        chat.messages = messages
        if payload.name is not None:
            chat.name = payload.name

    commit_chat(db)
    db.refresh(chat)
    return chat


@chats_router.patch("/{chat_id}", response_model=ChatGet)
def rename_chat(chat_id: UUID, payload: ChatRename, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    chat = get_owned_chat(str(chat_id), identity, db)
    chat.name = payload.name
    commit_chat(db)
    db.refresh(chat)
    return chat


@chats_router.delete("/{chat_id}", status_code=204)
def delete_chat(chat_id: UUID, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    chat = get_owned_chat(str(chat_id), identity, db)
    db.delete(chat)
    commit_chat(db)

import logging
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from diocese_backend.api.chats import commit_chat, get_owned_chat
from diocese_backend.api.exceptions import ServiceUnavailableException
from diocese_backend.database import get_db, get_engine
from diocese_backend.interface.chats import ChatMessage, ChatRequest, ChatResponse, CorrectQueryRequest, QueryRequest, QueryResult, QueryValidation
from diocese_backend.llm import LLMClient, LLMError, get_llm_client
from diocese_backend.model.chat import Chat
from diocese_backend.permissions.auth import require_identity
from diocese_backend.permissions.principal import Identity, add_role_restrictions_to_prompt
from diocese_backend.permissions.query_constraints import clean_sql_code, extract_sql
from diocese_backend.references import determine_query_type, reference_section
from diocese_backend.services.sql_runner import describe_schema, engine_for, foreign_keys, run_query, validate_query

logger = logging.getLogger(__name__)

query_router = APIRouter()

MAX_REVISIONS = 1

ASSISTANT_SYSTEM_PROMPT = """
You are a PostgreSQL expert for a diocese management database. Whenever the user asks
for data, answer with a single complete and executable SQL query enclosed in a ```sql
code block, followed by at most a short explanation.

Rules:
1. ALWAYS use IDs (not names) for GROUP BY, JOIN conditions, aggregations and filtering.
2. Names should ONLY be used for display purposes.
3. ALWAYS handle NULL values appropriately using COALESCE, NULLIF, or IS NULL/IS NOT NULL.
4. For score calculations, always use the formula: (knowledge_score / NULLIF(knowledge_total, 0)) * 100
5. Role IDs in the users table: Teachers have role = 5, Students have role = 7.
6. Never guess table or column names, use the schema below.
"""


def get_query_engine(x_connection_string: Annotated[Optional[str], Header()] = None) -> Engine:
    """Engine for the reporting database, optionally overridden per request"""
    if x_connection_string:
        return engine_for(x_connection_string)
    return get_engine()


def build_system_prompt(identity: Identity, engine: Engine, question: str = "") -> str:
    """Assistant instructions with schema, relationships, question references and role restrictions"""

    try:
        schema = describe_schema(engine)
        keys = foreign_keys(engine)
    except SQLAlchemyError as e:
        logger.error(f"Could not read schema: {e}")
        schema, keys = [], []

    base = ASSISTANT_SYSTEM_PROMPT
    if schema:
        base += "\nSchema:\n" + "\n".join(schema)
    if keys:
        base += "\n\nForeign keys:\n" + "\n".join(
            f"{k['table_name']}.{k['column_name']} -> {k['foreign_table_name']}.{k['foreign_column_name']}"
            for k in keys
        )

    base += "\n\n" + reference_section(determine_query_type(question))

    return add_role_restrictions_to_prompt(base, identity)


def revision_request(sql: str, validation: QueryValidation) -> dict:
    errors = "\n".join(f"- {error}" for error in validation.errors)
    return {
        "role": "user",
        "content": f"The query below failed validation:\n```sql\n{sql}\n```\nErrors:\n{errors}\n"
                   "Answer again with a corrected query."
    }


@query_router.post("/run-sql", response_model=QueryResult)
def run_sql(
    payload: QueryRequest,
    identity: Annotated[Identity, Depends(require_identity)],
    engine: Engine = Depends(get_query_engine)
):
    """Run a statement on behalf of the caller, constrained to their data"""
    return run_query(payload.sql, identity, engine)


@query_router.post("/correct-query")
async def correct_query(
    payload: CorrectQueryRequest,
    identity: Annotated[Identity, Depends(require_identity)],
    llm: LLMClient = Depends(get_llm_client)
):
    try:
        corrected = await llm.correct_sql(payload.sql_code)
    except LLMError as e:
        raise ServiceUnavailableException(str(e))

    return {"corrected_sql": clean_sql_code(corrected)}


@query_router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    response: Response,
    identity: Annotated[Identity, Depends(require_identity)],
    db: Session = Depends(get_db),
    engine: Engine = Depends(get_query_engine),
    llm: LLMClient = Depends(get_llm_client)
):
    """Answer a question with generated SQL executed against the caller's permitted data"""

    chat_id = str(payload.id)
    existing = get_owned_chat(chat_id, identity, db, required=False)

    messages = [m.model_dump() for m in payload.messages]
    question = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
    system = build_system_prompt(identity, engine, question)

    try:
        answer = await llm.complete(system, messages)
        sql = extract_sql(answer)
        validation = validate_query(sql, identity, engine) if sql else None

        for _ in range(MAX_REVISIONS):
            if validation is None or validation.valid:
                break
            logger.info(f"Generated query for chat {chat_id} failed validation: {validation.errors}")
            answer = await llm.complete(
                system, messages + [{"role": "assistant", "content": answer}, revision_request(sql, validation)]
            )
            sql = extract_sql(answer)
            validation = validate_query(sql, identity, engine) if sql else None
    except LLMError as e:
        raise ServiceUnavailableException(str(e))

    result = run_query(sql, identity, engine) if sql else None

    reply = ChatMessage(role="assistant", content=answer)
    stored_reply = reply.model_dump()
    if result is not None:
        stored_reply["query"] = result.model_dump()

    if existing is None:
        try:
            name = await llm.generate_chat_name(messages)
        except LLMError:
            name = next((m["content"] for m in messages if m["role"] == "user"), "New chat")[:100]

        db.add(Chat(id=chat_id, user_id=identity.id, name=name, messages=messages + [stored_reply]))
    else:
        existing.messages = messages + [stored_reply]

    commit_chat(db)

    should_update_chats = existing is None
    response.headers["x-should-update-chats"] = str(should_update_chats).lower()

    return ChatResponse(
        id=chat_id,
        message=reply,
        sql=result.sql if result is not None else None,
        result=result,
        validation=validation,
        should_update_chats=should_update_chats
    )

import logging
from typing import Annotated, Optional
import httpx
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from diocese_backend.interface.settings import ApiKeyValidation, ConnectionValidation, ValidationResult
from diocese_backend.llm import LLMClient
from diocese_backend.permissions.auth import AUTH_COOKIES, collect_evidence, get_current_identity, require_identity
from diocese_backend.permissions.principal import Identity, derive_constraints, role_prompt_instructions
from diocese_backend.permissions.query_constraints import inject_constraints, missing_filters
from diocese_backend.services.sql_runner import validate_connection

logger = logging.getLogger(__name__)

settings_router = APIRouter()
debug_router = APIRouter()


@settings_router.post("/validate-connection", response_model=ValidationResult)
def validate_db_connection(payload: ConnectionValidation, identity: Annotated[Identity, Depends(require_identity)]):

    error = validate_connection(payload.connection_string)

    if error is not None:
        return ValidationResult(valid=False, message="Connection error", detail=error)

    return ValidationResult(valid=True, message="Valid connection")


@settings_router.post("/validate-openai-key", response_model=ValidationResult)
async def validate_openai_key(payload: ApiKeyValidation, identity: Annotated[Identity, Depends(require_identity)]):

    if not payload.api_key.startswith("sk-"):
        return ValidationResult(valid=False, message="Invalid API key format")

    try:
        models = await LLMClient(api_key=payload.api_key).list_models()
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 401:
            return ValidationResult(valid=False, message="Invalid or expired API key")
        return ValidationResult(valid=False, message="API key validation error", detail=str(e))
    except httpx.HTTPError as e:
        return ValidationResult(valid=False, message="API key validation error", detail=str(e))

    if not models:
        return ValidationResult(valid=False, message="API key appears valid but unable to retrieve models")

    return ValidationResult(valid=True, message="Valid API key")


class ConstraintPreviewRequest(BaseModel):
    sql: str = Field("SELECT * FROM testing_centers", min_length=1)


@debug_router.post("/constraints")
def preview_constraints(
    payload: ConstraintPreviewRequest,
    identity: Annotated[Optional[Identity], Depends(get_current_identity)]
):
    """Show how the caller's constraints would rewrite a statement"""

    constraint = derive_constraints(identity)
    modified = inject_constraints(payload.sql, constraint)

    return {
        "identity": identity,
        "constraint": constraint,
        "prompt_instructions": role_prompt_instructions(identity),
        "original_sql": payload.sql,
        "modified_sql": modified,
        "missing_filters": missing_filters(modified, constraint),
    }


@debug_router.get("/session")
def debug_session(request: Request, identity: Annotated[Optional[Identity], Depends(get_current_identity)]):
    return {
        "cookies_present": [name for name in AUTH_COOKIES if request.cookies.get(name)],
        "evidence": [type(e).__name__ for e in collect_evidence(request.cookies)],
        "identity": identity,
    }

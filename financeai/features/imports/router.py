import json
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from financeai.core.database import get_db
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.imports.schemas import (
    ImportCommitRequest,
    ImportCommitResponse,
    ImportOptions,
    ImportResult,
    TextImportRequest,
)
from financeai.features.imports.service import AIImportService, classify_against_existing, get_import_service
from financeai.features.transactions.schemas import TransactionResponse
from financeai.features.transactions.service import TransactionService

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


async def _existing_transactions(db: AsyncSession, user_id, txn_service: TransactionService):
    rows = await txn_service.get_user_transactions(db, user_id)
    return [TransactionResponse.model_validate(t) for t in rows]


@router.post("/text", response_model=ImportResult)
async def import_text(
    payload: TextImportRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    import_service: Annotated[AIImportService, Depends(get_import_service)],
    txn_service: Annotated[TransactionService, Depends()]
):
    """Parse pasted statement text into candidate transactions (nothing is saved)."""
    existing = await _existing_transactions(db, current_user.id, txn_service)
    return await import_service.process_text(payload.text, payload.options, existing)


@router.post("/file", response_model=ImportResult)
async def import_file(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    import_service: Annotated[AIImportService, Depends(get_import_service)],
    txn_service: Annotated[TransactionService, Depends()],
    file: UploadFile = File(...),
    skip_duplicates: bool = Form(False),
    date_format: str = Form("auto"),
    currency: str = Form("USD"),
    confidence_threshold: float = Form(0.0),
    category_mapping: Optional[str] = Form(None, description="JSON object of category renames")
):
    try:
        mapping = json.loads(category_mapping) if category_mapping else {}
        options = ImportOptions(
            skip_duplicates=skip_duplicates,
            date_format=date_format,
            currency=currency,
            confidence_threshold=confidence_threshold,
            category_mapping=mapping,
        )
    except ValueError as e:
        # pydantic's ValidationError is a ValueError too
        detail = jsonable_encoder(e.errors()) if isinstance(e, ValidationError) else f"Invalid category_mapping: {e}"
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File exceeds the 5MB upload limit")

    existing = await _existing_transactions(db, current_user.id, txn_service)
    return await import_service.process_file(file.filename or "upload", content, options, existing)


@router.post("/commit", response_model=ImportCommitResponse, status_code=status.HTTP_201_CREATED)
async def commit_import(
    payload: ImportCommitRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    txn_service: Annotated[TransactionService, Depends()]
):
    """Save reviewed import rows; duplicates of stored rows or of earlier rows in the batch are skipped by default."""
    existing = await _existing_transactions(db, current_user.id, txn_service)

    to_create = []
    duplicates = conflicts = 0
    for item in payload.transactions:
        verdict = classify_against_existing(item, existing)
        if verdict == "duplicate":
            duplicates += 1
            if payload.skip_duplicates:
                continue
        elif verdict == "conflict":
            conflicts += 1
        to_create.append(item)
        existing.append(item)

    skipped = duplicates if payload.skip_duplicates else 0
    created = await txn_service.create_transactions(db, current_user.id, to_create) if to_create else []
    logger.info(f"Committed {len(created)} imported transaction(s) for user {current_user.id}, skipped {skipped}")
    return ImportCommitResponse(
        created=[TransactionResponse.model_validate(t) for t in created],
        duplicates_skipped=skipped,
        conflicts=conflicts,
    )

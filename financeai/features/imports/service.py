"""
Statement import: free text or CSV parsed into transactions by the LLM.

Nothing here raises to the caller; every problem ends up in the
``errors``/``warnings`` lists of the returned ImportResult.
"""
import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import Request
from pydantic import ValidationError

from financeai.core.ids import timestamped_id
from financeai.core.llm import LLMService, LLMConfigurationError, LLMError, parse_json_payload
from financeai.core.resilience import RetryOutcome, RetryPolicy, call_with_retry, is_transient_error
from financeai.features.imports.schemas import (
    ImportedTransaction,
    ImportOptions,
    ImportResult,
    ParsedTransaction,
    ValidationResult,
)

logger = logging.getLogger(__name__)

MAX_SAFE_SIZE = 50_000
MAX_ALLOWED_SIZE = 200_000
MAX_SAFE_TOKENS = 12_000
MAX_ALLOWED_TOKENS = 30_000

SUPPORTED_EXTENSIONS = ("csv", "txt")

DUPLICATE_TOLERANCE = 0.01
CONFLICT_PREFIX_LENGTH = 10


@dataclass
class SizeCheck:
    is_valid: bool
    error: Optional[str] = None
    warning: Optional[str] = None


@dataclass
class ParseOutcome:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def validate_request_size(content: str) -> SizeCheck:
    length = len(content)
    # Rough estimate: 4 chars per token
    estimated_tokens = math.ceil(length / 4)

    if length > MAX_ALLOWED_SIZE or estimated_tokens > MAX_ALLOWED_TOKENS:
        return SizeCheck(
            is_valid=False,
            error=(
                f"File is too large to process ({round(length / 1000)}KB, ~{estimated_tokens} tokens). "
                f"Maximum supported size is {round(MAX_ALLOWED_SIZE / 1000)}KB. "
                "Consider breaking the file into smaller parts."
            ),
        )

    if length > MAX_SAFE_SIZE or estimated_tokens > MAX_SAFE_TOKENS:
        return SizeCheck(
            is_valid=True,
            warning=(
                f"Large file detected ({round(length / 1000)}KB). Processing may take longer and could "
                "fail if the AI service is busy. Consider processing during off-peak hours for better reliability."
            ),
        )

    return SizeCheck(is_valid=True)


def classify_against_existing(item, existing: Sequence) -> str:
    """'duplicate', 'conflict' or 'valid' for one candidate row.

    Duplicate: same date, same description ignoring case, amounts within a
    cent. Conflict: same date, an existing description containing the first
    characters of the candidate's, amounts differing by a cent or more.
    """
    description = item.description.lower()
    prefix = description[:CONFLICT_PREFIX_LENGTH]

    for other in existing:
        if other.date == item.date and other.description.lower() == description \
                and abs(other.amount - item.amount) < DUPLICATE_TOLERANCE:
            return "duplicate"

    for other in existing:
        if other.date == item.date and prefix in other.description.lower() \
                and abs(other.amount - item.amount) >= DUPLICATE_TOLERANCE:
            return "conflict"

    return "valid"


class AIImportService:

    def __init__(
        self,
        llm: LLMService,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep
    ):
        self.llm = llm
        self.retry_policy = retry_policy or RetryPolicy(jitter=1.0)
        self._sleep = sleep

    async def process_text(
        self,
        text: str,
        options: Optional[ImportOptions] = None,
        existing: Optional[Sequence] = None
    ) -> ImportResult:
        options = options or ImportOptions()
        result = ImportResult()

        size = validate_request_size(text)
        if not size.is_valid:
            result.errors.append(size.error)
            result.summary.failed = 1
            return result
        if size.warning:
            result.warnings.append(size.warning)

        try:
            parsed = await self.parse_with_ai(text, options)
            transactions, row_errors, row_warnings = self.build_transactions(parsed.rows, options)
        except Exception as e:
            logger.exception("Unexpected failure while importing text")
            result.errors.append(str(e) or "Unknown error")
            result.summary.failed = 1
            return result

        result.errors.extend(parsed.errors + row_errors)
        result.warnings.extend(parsed.warnings + row_warnings)

        if existing is not None:
            validation = self.validate_transactions(transactions, existing)
            result.summary.duplicates_found = len(validation.duplicates)
            result.warnings.extend(validation.warnings)
            result.errors.extend(validation.errors)
            if options.skip_duplicates:
                duplicate_ids = {t.id for t in validation.duplicates}
                transactions = [t for t in transactions if t.id not in duplicate_ids]

        result.transactions = transactions
        result.summary.successfully_parsed = 1 if transactions else 0
        result.summary.failed = 0 if transactions else 1
        logger.info(
            f"Import parsed {len(transactions)} transaction(s), "
            f"{len(result.errors)} error(s), {result.summary.duplicates_found} duplicate(s)"
        )
        return result

    async def process_file(
        self,
        filename: str,
        content: bytes,
        options: Optional[ImportOptions] = None,
        existing: Optional[Sequence] = None
    ) -> ImportResult:
        """Text-based uploads only; binary formats are reported as unsupported."""
        extension = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
        if extension not in SUPPORTED_EXTENSIONS:
            return self._failed_file(
                filename, f"Unsupported file type: {extension or 'unknown'}. Supported types: CSV, TXT"
            )

        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            return self._failed_file(filename, "Failed to extract content: file is not valid UTF-8 text")

        if not text.strip():
            return self._failed_file(filename, "File is empty")

        result = await self.process_text(text, options, existing)
        result.errors = [f"{filename}: {e}" for e in result.errors]
        result.warnings = [f"{filename}: {w}" for w in result.warnings]
        return result

    def _failed_file(self, filename: str, message: str) -> ImportResult:
        result = ImportResult()
        result.errors.append(f"{filename}: {message}")
        result.summary.failed = 1
        return result

    async def parse_with_ai(self, content: str, options: ImportOptions) -> ParseOutcome:
        prompt = self.build_prompt(content, options)
        outcome = RetryOutcome()
        try:
            text = await call_with_retry(
                lambda: self.llm.generate_response(
                    prompt, temperature=0.1, response_format="json_object", timeout=self.retry_policy.timeout
                ),
                self.retry_policy,
                should_retry=is_transient_error,
                sleep=self._sleep,
                outcome=outcome,
            )
        except Exception as e:
            transient = is_transient_error(e)
            logger.error(f"Import parsing failed after {outcome.attempts} attempt(s): {type(e).__name__}: {e}")
            if transient:
                return ParseOutcome(
                    errors=[
                        f"AI parsing failed after {outcome.attempts} attempts. "
                        "The AI service may be overloaded. Please try again later."
                    ],
                    warnings=[
                        "This appears to be a temporary issue with the AI service. "
                        "You may have better luck trying again in a few minutes."
                    ],
                )
            return ParseOutcome(errors=[f"AI parsing failed: {e}"])

        return self.parse_ai_response(text)

    def build_prompt(self, content: str, options: ImportOptions) -> str:
        date_format = "any common format" if options.date_format == "auto" else options.date_format
        return f"""You are a financial data parser. Parse the following financial data and extract transactions.

IMPORTANT: Respond ONLY with valid JSON in this exact format:
{{
  "transactions": [
    {{
      "date": "YYYY-MM-DD",
      "description": "Transaction description",
      "amount": 123.45,
      "category": "Category name",
      "type": "income" or "expense",
      "confidence": 0.95
    }}
  ],
  "errors": ["Any parsing errors"],
  "warnings": ["Any warnings or notes"]
}}

Rules:
1. Extract ALL financial transactions you can identify
2. Convert dates to YYYY-MM-DD format (expected input format: {date_format})
3. Use positive numbers for amounts (we'll handle income/expense in the type field)
4. Categorize transactions appropriately (Food & Dining, Transportation, Income, etc.)
5. Set confidence between 0.0 and 1.0 based on how certain you are about the parsing
6. If you can't parse something, add it to errors array
7. Currency: {options.currency}

Data to parse:
{content}

Remember: Respond ONLY with the JSON object, no additional text."""

    @staticmethod
    def parse_ai_response(text: str) -> ParseOutcome:
        try:
            data = parse_json_payload(text)
            rows = data.get("transactions")
            if not isinstance(rows, list):
                raise LLMError("Invalid response format: missing transactions array")
        except LLMError as e:
            return ParseOutcome(
                errors=[f"Failed to parse AI response: {e}"],
                warnings=["The AI response was not in the expected format"],
            )

        errors = data.get("errors") or []
        warnings = data.get("warnings") or []
        return ParseOutcome(
            rows=[r for r in rows if isinstance(r, dict)],
            errors=[str(e) for e in errors] if isinstance(errors, list) else [str(errors)],
            warnings=[str(w) for w in warnings] if isinstance(warnings, list) else [str(warnings)],
        )

    def build_transactions(
        self,
        rows: Sequence[Dict[str, Any]],
        options: ImportOptions
    ) -> Tuple[List[ImportedTransaction], List[str], List[str]]:
        transactions: List[ImportedTransaction] = []
        errors: List[str] = []
        warnings: List[str] = []

        for index, raw in enumerate(rows, start=1):
            try:
                row = ParsedTransaction.model_validate(raw)
            except ValidationError as e:
                reason = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
                errors.append(f"Could not parse transaction {index}: {reason}")
                continue

            if row.confidence < options.confidence_threshold:
                warnings.append(
                    f"Skipped low-confidence transaction ({row.confidence:.2f} < "
                    f"{options.confidence_threshold:.2f}): {row.description}"
                )
                continue

            transactions.append(ImportedTransaction(
                id=self.generate_import_id(),
                date=row.date,
                description=row.description,
                amount=row.amount,
                category=options.category_mapping.get(row.category, row.category),
                type=row.type,
                confidence=row.confidence,
            ))

        return transactions, errors, warnings

    def validate_transactions(
        self,
        imported: Sequence[ImportedTransaction],
        existing: Sequence
    ) -> ValidationResult:
        result = ValidationResult()
        for item in imported:
            verdict = classify_against_existing(item, existing)
            if verdict == "duplicate":
                result.duplicates.append(item)
            elif verdict == "conflict":
                result.conflicts.append(item)
                result.warnings.append(f"Potential conflict found for transaction: {item.description}")
            else:
                result.valid.append(item)
        return result

    @staticmethod
    def generate_import_id() -> str:
        return timestamped_id("ai-import")


def get_import_service(request: Request) -> AIImportService:
    service = getattr(request.app.state, "import_service", None)
    if service is None:
        raise LLMConfigurationError("AI import service is not configured")
    return service

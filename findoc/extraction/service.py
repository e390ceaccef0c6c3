"""Extraction gateway: document image -> raw ExtractedFieldSet.

One image per call, no batching. The model identifies the document type
first and then applies type-specific rules for picking the reference number
and payment status. Quality and missing-field assessments are the model's
own and are passed through untouched.
"""

import io
import logging

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ValidationError

from findoc.extraction.schema import ExtractedFieldSet
from findoc.llm.base import ImageInput, LLMProvider, TokenUsage
from findoc.llm.json_tools import parse_json_object
from findoc.shared.config import Settings
from findoc.shared.errors import InvalidDocument, MalformedUpstreamResponse

logger = logging.getLogger(__name__)

SUPPORTED_MEDIA_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})

EXTRACTION_PROMPT = """You are a financial document data extraction assistant. \
Extract payment-relevant information from invoices, receipts, bills and statements.

STEP 1: Identify the document type from its content and layout.
STEP 2: Apply the extraction rules for that document type.

Required fields:
- vendor_name: business that provided the goods or services
- reference_number: primary document identifier (see type-specific rules)
- transaction_date: date issued, purchased or billed (YYYY-MM-DD)
- total_amount: final amount paid, due or charged (number only, no currency symbols)
- currency: ISO currency code (USD, EUR, ...); use USD if not shown

Optional fields (null when absent):
- payment_due_date: only when explicitly shown and payment is still owed (YYYY-MM-DD)
- customer_name: payer, customer, patient or account holder
- customer_address: billing or service address
- line_items: every visible line item

DOCUMENT TYPES:

RETAIL RECEIPTS (completed purchases): "RECEIPT", "PAID", "APPROVED", card type, timestamp.
  reference_number priority: Order #, Receipt #, Transaction ID, long codes near those labels.
  Ignore "Invoice No" used for internal tracking, member IDs, profile or seat numbers.
  document_type "receipt", payment_status "paid".

INVOICES (payment requested): "INVOICE", "Amount Due", "Payment Due Date", "Please Pay".
  reference_number priority: Invoice #/Number/No, then Reference #.
  document_type "invoice", payment_status "unpaid".

UTILITY/SERVICE BILLS: utility or phone company, "Account Number", service period.
  reference_number priority: Account #, then Bill # or Statement #.
  document_type "bill", payment_status "unpaid" unless stamped PAID.

MEDICAL/HEALTHCARE: hospital, clinic or pharmacy, patient details, procedure codes.
  reference_number priority: Account # or Patient Account, Statement #, Visit #.
  Ignore NPI numbers, provider IDs and member IDs.
  document_type "bill".

STATEMENTS: balances, previous charges, "Statement Date", "Account Summary".
  reference_number priority: Statement #, then Account #.
  document_type "statement".

ORDER CONFIRMATIONS: "Order Confirmed", "Confirmation #", usually after an online purchase.
  reference_number priority: Order # or Confirmation #, then Reference #.
  document_type "order_confirmation", payment_status "paid" if processed else "unpaid".

GENERAL RULES:
- Look for "#", "No.", "Number", "ID" labels next to reference numbers.
- Prefer longer alphanumeric codes (6+ characters) over short numeric sequences.
- Ignore member, loyalty and customer IDs unless nothing else exists.

Also report:
- extraction_quality: "high", "medium" or "low" (legibility and completeness)
- missing_fields: names of required fields you could not find

Return ONLY valid JSON with this structure:
{
  "vendor_name": "...",
  "reference_number": "...",
  "transaction_date": "YYYY-MM-DD",
  "total_amount": 0.0,
  "currency": "USD",
  "payment_due_date": "YYYY-MM-DD" or null,
  "customer_name": "..." or null,
  "customer_address": "..." or null,
  "document_type": "receipt|invoice|bill|statement|order_confirmation",
  "payment_status": "paid|unpaid",
  "line_items": [
    {"description": "...", "quantity": null, "unit_price": null, "amount": 0.0}
  ],
  "extraction_quality": "high|medium|low",
  "missing_fields": []
}"""


class ExtractionResult(BaseModel):
    """Result of a successful extraction call.

    Attributes:
        fields: Extracted document fields
        usage: Tokens billed for the call
        provider: Name of provider that performed extraction
        model: Model that served the call
    """

    fields: ExtractedFieldSet
    usage: TokenUsage
    provider: str
    model: str


def detect_media_type(data: bytes, declared: str | None = None) -> str:
    """Resolve the image media type, sniffing the bytes when needed.

    Args:
        data: Raw image bytes
        declared: Media type supplied by the caller, if any

    Returns:
        A supported image media type

    Raises:
        InvalidDocument: If the bytes are empty or not a supported image
    """
    if not data:
        raise InvalidDocument("Empty document image")
    if declared in SUPPORTED_MEDIA_TYPES:
        return declared  # type: ignore[return-value]

    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidDocument(f"Unreadable document image: {e}") from e

    media_type = Image.MIME.get(image_format or "")
    if media_type not in SUPPORTED_MEDIA_TYPES:
        raise InvalidDocument(
            f"Unsupported image format: {image_format}. "
            f"Supported: {', '.join(sorted(SUPPORTED_MEDIA_TYPES))}"
        )
    return media_type


class ExtractionGateway:
    """Sends one document image to the extraction model and parses the reply."""

    def __init__(self, provider: LLMProvider, settings: Settings) -> None:
        """Initialize gateway.

        Args:
            provider: LLM provider serving the extraction model
            settings: Application settings (model, token cap)
        """
        self.provider = provider
        self.settings = settings

    def extract(self, image: bytes, media_type: str | None = None) -> ExtractionResult:
        """Extract fields from a document image.

        Args:
            image: Raw image bytes
            media_type: Declared media type; sniffed when missing or unsupported

        Returns:
            ExtractionResult with the raw field set and token usage

        Raises:
            InvalidDocument: Image is empty or unsupported
            MalformedUpstreamResponse: Reply is not the expected JSON shape
            PipelineError: Any other classified upstream failure
        """
        image_input = ImageInput(data=image, media_type=detect_media_type(image, media_type))
        logger.info(
            f"Extracting fields from {image_input.media_type} image "
            f"({len(image)} bytes) via {self.provider.provider_name}"
        )

        response = self.provider.complete(
            EXTRACTION_PROMPT,
            model=self.settings.extraction_model,
            max_tokens=self.settings.extraction_max_tokens,
            image=image_input,
        )
        usage = TokenUsage(
            input_tokens=response.input_tokens, output_tokens=response.output_tokens
        )

        try:
            fields = ExtractedFieldSet.model_validate(parse_json_object(response.text))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Failed to parse extraction response: {e}")
            raise MalformedUpstreamResponse(
                f"Extraction response could not be parsed: {e}",
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
            ) from e

        logger.info(
            f"Extraction complete: document_type={fields.document_type} "
            f"quality={fields.extraction_quality} payment_status={fields.payment_status}"
        )
        return ExtractionResult(
            fields=fields, usage=usage, provider=response.provider, model=response.model
        )

"""
Extraction Provider Abstraction Layer

Provides a unified interface for the hosted AI models (Google Gemini,
Anthropic Claude, OpenAI GPT-4o) that read a drawing PDF and return its
Bill-of-Materials tables as JSON.

All OCR, table detection and cleanup happens inside the model. Callers only
see `extract_from_pdf(pdf_bytes, filename) -> ExtractionResult`, which keeps
the normalization and scoring code testable with fixed fixtures.
"""

import base64
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Tuple, Dict, Any, List

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Result from a single extraction call."""
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    raw_response: str = ""
    tokens_used: int = 0
    error: Optional[str] = None

    @property
    def drawings(self) -> List[Dict[str, Any]]:
        drawings = self.data.get("drawings")
        return drawings if isinstance(drawings, list) else []


# ============================================================================
# Extraction Prompt and Schema (shared across providers)
# ============================================================================

EXTRACTION_PROMPT = """You are an advanced document processing pipeline. Your task is to extract Bill of Materials (BOM) data from a multi-page engineering PDF.
A single PDF file can contain multiple distinct drawings, often one per page.

**Your process must be:**
1.  Iterate through each page of the PDF.
2.  For each page, identify if it contains a distinct engineering drawing with its own title block and a "BILL OF MATERIALS" table.
3.  For each distinct drawing you find, perform the following two-stage extraction:

**Stage 1: Structural Analysis**
- Perform high-fidelity OCR on the drawing's page.
- From the title block, extract the specific 'DrawingNo', 'Supplier' and 'IssuedApprovedDate' for THIS drawing.
- Locate the "BILL OF MATERIALS" table associated with THIS drawing.
- For each row in the table, extract the raw text and estimate an OCR confidence score (0.0 to 1.0).

**Stage 2: Semantic Interpretation & Cleaning**
- Clean up OCR errors from the extracted raw text.
- Keep QTY exactly as printed (e.g. 43'-4", 12", 3.5m, 7).
- For each item, record the page number it was found on.

**Final Output:**
Group the results by the distinct drawings you found. Return ONLY a JSON object of this shape:
{
  "drawings": [
    {
      "Supplier": "KENT | TENG | TECSAR | WORLEY | Unknown",
      "DrawingNo": "drawing number from the title block",
      "IssuedApprovedDate": "issue/approval date if shown",
      "BOM": [
        {
          "ITEM": "item number",
          "QTY": "raw quantity text",
          "SIZE_ND": "size or nominal diameter",
          "DESCRIPTION": "full item description",
          "Page": 1,
          "ocrConfidence": 0.95
        }
      ]
    }
  ]
}"""

BOM_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "ITEM": {"type": "string", "description": "The final, clean item number."},
        "QTY": {"type": "string", "description": "The raw quantity value from the table, e.g., '43'-4\"'."},
        "SIZE_ND": {"type": "string", "description": "The final, clean size or nominal diameter value."},
        "DESCRIPTION": {"type": "string", "description": "The final, clean, full item description."},
        "Page": {"type": "integer", "description": "The page number where this item was found."},
        "ocrConfidence": {"type": "number", "description": "Estimated OCR confidence (0.0 to 1.0) for this row."},
    },
    "required": ["ITEM", "QTY", "SIZE_ND", "DESCRIPTION", "Page", "ocrConfidence"],
}

BOM_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "drawings": {
            "type": "array",
            "description": "An array of all distinct drawings found in the document.",
            "items": {
                "type": "object",
                "properties": {
                    "Supplier": {"type": "string"},
                    "DrawingNo": {"type": "string"},
                    "IssuedApprovedDate": {"type": "string"},
                    "BOM": {"type": "array", "items": BOM_ITEM_SCHEMA},
                },
                "required": ["Supplier", "DrawingNo", "BOM"],
            },
        }
    },
    "required": ["drawings"],
}

PDF_MEDIA_TYPE = "application/pdf"


def _log_retry(retry_state):
    logger.warning(f"Extraction call failed, retrying (attempt {retry_state.attempt_number}/3)...")


# ============================================================================
# Abstract Base Class
# ============================================================================

class ExtractionProvider(ABC):
    """
    Abstract base class for BOM extraction providers.

    Subclasses send a PDF to a hosted model and return its JSON answer.
    """

    PROVIDER_NAME: str = "unknown"
    DEFAULT_MODEL: str = ""
    TRANSIENT_ERRORS: Tuple[type, ...] = ()

    def __init__(self, api_key: str, model: Optional[str] = None, timeout: float = 120.0):
        """
        Initialize the provider.

        Args:
            api_key: API key for the provider
            model: Model to use (defaults to provider's default)
            timeout: Per-request timeout in seconds
        """
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout

    def extract_from_pdf(
        self,
        pdf_bytes: bytes,
        filename: str,
        prompt: str = EXTRACTION_PROMPT
    ) -> ExtractionResult:
        """
        Extract BOM drawings from a PDF.

        Transient failures are retried; any other failure is returned as an
        unsuccessful result rather than raised.
        """
        try:
            raw_response, tokens_used = self._call_with_retry(pdf_bytes, filename, prompt)
        except Exception as e:
            logger.error(f"{self.PROVIDER_NAME} extraction failed for {filename}: {e}")
            return ExtractionResult(success=False, error=self._describe_error(e))

        data = self._parse_json_response(raw_response)
        if data is None:
            return ExtractionResult(
                success=False,
                raw_response=raw_response,
                tokens_used=tokens_used,
                error="Model response was not valid JSON"
            )

        return ExtractionResult(
            success=True,
            data=data,
            raw_response=raw_response,
            tokens_used=tokens_used
        )

    def _call_with_retry(self, pdf_bytes: bytes, filename: str, prompt: str) -> Tuple[str, int]:
        if not self.TRANSIENT_ERRORS:
            return self._request(pdf_bytes, filename, prompt)

        @retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception_type(self.TRANSIENT_ERRORS),
            before_sleep=_log_retry,
            reraise=True,
        )
        def _make_request():
            return self._request(pdf_bytes, filename, prompt)

        return _make_request()

    @abstractmethod
    def _request(self, pdf_bytes: bytes, filename: str, prompt: str) -> Tuple[str, int]:
        """
        Send one request.

        Returns:
            Tuple of (raw response text, tokens used)
        """

    @abstractmethod
    def test_connection(self) -> Tuple[bool, str]:
        """
        Test the API connection.

        Returns:
            Tuple of (success, message)
        """

    def _describe_error(self, error: Exception) -> str:
        return str(error)

    def _parse_json_response(self, raw_response: str) -> Optional[Dict[str, Any]]:
        """
        Parse JSON from the model's response.

        Handles cases where the model wraps the JSON in prose or code fences.
        Returns None when no JSON object can be recovered.
        """
        text = (raw_response or "").strip()
        try:
            data = json.loads(text)
            if isinstance(data, dict):
                return data
            # A bare list is read as the drawings array
            if isinstance(data, list):
                return {"drawings": data}
        except json.JSONDecodeError:
            pass

        json_match = re.search(r'\{[\s\S]*\}', text)
        if json_match:
            try:
                data = json.loads(json_match.group())
                if isinstance(data, dict):
                    return data
            except json.JSONDecodeError:
                pass

        logger.warning("Could not parse JSON from response")
        return None


# ============================================================================
# Gemini Provider
# ============================================================================

class GeminiProvider(ExtractionProvider):
    """Extraction provider using Google's Gemini API."""

    PROVIDER_NAME = "gemini"
    DEFAULT_MODEL = "gemini-2.5-flash"

    def __init__(self, api_key: str, model: Optional[str] = None, timeout: float = 120.0):
        super().__init__(api_key, model, timeout)

        import google.generativeai as genai
        from google.api_core import exceptions as google_exceptions

        genai.configure(api_key=api_key)
        self._genai = genai
        self.client = genai.GenerativeModel(self.model)
        self.TRANSIENT_ERRORS = (
            google_exceptions.ResourceExhausted,
            google_exceptions.ServiceUnavailable,
            google_exceptions.DeadlineExceeded,
        )

    def _request(self, pdf_bytes: bytes, filename: str, prompt: str) -> Tuple[str, int]:
        response = self.client.generate_content(
            [prompt, {"mime_type": PDF_MEDIA_TYPE, "data": pdf_bytes}],
            generation_config=self._genai.GenerationConfig(
                response_mime_type="application/json",
                response_schema=BOM_RESPONSE_SCHEMA,
            ),
            request_options={"timeout": self.timeout},
        )
        usage = getattr(response, "usage_metadata", None)
        tokens_used = getattr(usage, "total_token_count", 0) if usage else 0
        return response.text, tokens_used or 0

    def _describe_error(self, error: Exception) -> str:
        error_str = str(error)
        if "API_KEY_INVALID" in error_str or "API key not valid" in error_str:
            return "Authentication failed: Invalid API key"
        return error_str

    def test_connection(self) -> Tuple[bool, str]:
        """Test connection to the Gemini API."""
        try:
            self.client.generate_content("Reply with exactly: OK")
            return True, "Connection successful!"
        except Exception as e:
            error_str = str(e)
            if "API_KEY_INVALID" in error_str or "API key not valid" in error_str:
                return False, "Invalid API key"
            if "429" in error_str or "quota" in error_str.lower():
                return False, "Rate limited (key is valid)"
            return False, f"Error: {error_str}"


# ============================================================================
# Anthropic Provider
# ============================================================================

class AnthropicProvider(ExtractionProvider):
    """Extraction provider using Anthropic's Claude API."""

    PROVIDER_NAME = "anthropic"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, api_key: str, model: Optional[str] = None, timeout: float = 120.0,
                 max_tokens: int = 8192):
        super().__init__(api_key, model, timeout)
        self.max_tokens = max_tokens

        import anthropic
        self._anthropic = anthropic
        self.client = anthropic.Anthropic(api_key=api_key)
        self.TRANSIENT_ERRORS = (
            anthropic.RateLimitError,
            anthropic.APITimeoutError,
            anthropic.APIConnectionError,
        )

    def _request(self, pdf_bytes: bytes, filename: str, prompt: str) -> Tuple[str, int]:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "document",
                            "source": {
                                "type": "base64",
                                "media_type": PDF_MEDIA_TYPE,
                                "data": base64.standard_b64encode(pdf_bytes).decode("utf-8")
                            }
                        },
                        {
                            "type": "text",
                            "text": prompt
                        }
                    ]
                }
            ]
        )

        raw_response = response.content[0].text if response.content else ""
        tokens_used = ((response.usage.input_tokens or 0) + (response.usage.output_tokens or 0)) if response.usage else 0
        return raw_response, tokens_used

    def _describe_error(self, error: Exception) -> str:
        if isinstance(error, self._anthropic.AuthenticationError):
            return f"Authentication failed: {error}"
        return str(error)

    def test_connection(self) -> Tuple[bool, str]:
        """Test connection to Anthropic API."""
        try:
            self.client.messages.create(
                model=self.model,
                max_tokens=10,
                messages=[{"role": "user", "content": "Hi"}]
            )
            return True, "Connection successful!"

        except self._anthropic.AuthenticationError:
            return False, "Invalid API key"
        except self._anthropic.RateLimitError:
            return False, "Rate limited (key is valid)"
        except Exception as e:
            return False, f"Error: {str(e)}"


# ============================================================================
# OpenAI Provider
# ============================================================================

class OpenAIProvider(ExtractionProvider):
    """Extraction provider using OpenAI's GPT-4o API."""

    PROVIDER_NAME = "openai"
    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, api_key: str, model: Optional[str] = None, timeout: float = 120.0,
                 max_tokens: int = 8192):
        super().__init__(api_key, model, timeout)
        self.max_tokens = max_tokens

        import openai
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout)
        self.TRANSIENT_ERRORS = (
            openai.RateLimitError,
            openai.APITimeoutError,
            openai.APIConnectionError,
        )

    def _request(self, pdf_bytes: bytes, filename: str, prompt: str) -> Tuple[str, int]:
        encoded = base64.standard_b64encode(pdf_bytes).decode("utf-8")
        response = self.client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "bom_extraction", "schema": BOM_RESPONSE_SCHEMA},
            },
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "file",
                            "file": {
                                "filename": filename,
                                "file_data": f"data:{PDF_MEDIA_TYPE};base64,{encoded}"
                            }
                        },
                        {
                            "type": "text",
                            "text": prompt
                        }
                    ]
                }
            ]
        )

        raw_response = response.choices[0].message.content if response.choices and response.choices[0].message else ""
        tokens_used = response.usage.total_tokens if response.usage else 0
        return raw_response or "", tokens_used

    def _describe_error(self, error: Exception) -> str:
        error_str = str(error)
        if "Incorrect API key" in error_str or "invalid_api_key" in error_str:
            return "Authentication failed: Invalid API key"
        return error_str

    def test_connection(self) -> Tuple[bool, str]:
        """Test connection to OpenAI API."""
        try:
            self.client.chat.completions.create(
                model="gpt-4o-mini",  # cheaper model for testing
                max_tokens=10,
                messages=[{"role": "user", "content": "Hi"}]
            )
            return True, "Connection successful!"

        except Exception as e:
            error_str = str(e)
            if "Incorrect API key" in error_str or "invalid_api_key" in error_str:
                return False, "Invalid API key"
            elif "Rate limit" in error_str:
                return False, "Rate limited (key is valid)"
            else:
                return False, f"Error: {error_str}"


# ============================================================================
# Factory Function
# ============================================================================

PROVIDERS = {
    "gemini": GeminiProvider,
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def get_provider(
    provider_name: str,
    api_key: str,
    model: Optional[str] = None,
    timeout: float = 120.0
) -> ExtractionProvider:
    """
    Factory function to create an extraction provider.

    Args:
        provider_name: Provider name ('gemini', 'anthropic' or 'openai')
        api_key: API key for the provider
        model: Optional model override
        timeout: Per-request timeout in seconds

    Returns:
        ExtractionProvider instance

    Raises:
        ValueError: If provider name is unknown
    """
    provider_class = PROVIDERS.get(provider_name.lower())
    if provider_class is None:
        raise ValueError(f"Unknown provider: {provider_name}. Supported: {list(PROVIDERS.keys())}")

    return provider_class(api_key=api_key, model=model, timeout=timeout)


def get_available_providers() -> List[str]:
    """Get list of available provider names."""
    return list(PROVIDERS.keys())


def get_provider_display_names() -> Dict[str, str]:
    """Get mapping of provider names to display names."""
    return {
        "gemini": "Google Gemini",
        "anthropic": "Anthropic Claude",
        "openai": "OpenAI GPT-4o"
    }

import time
import base64
import asyncio
from typing import List, Tuple, Optional
from abc import ABC, abstractmethod

from loguru import logger
from google import genai
from google.genai import types

from khata.core.config import settings
from khata.models.schemas import ExtractedMark, KhataExtraction
from khata.services.circuit_breaker import CircuitBreaker, gemini_circuit_breaker, openai_circuit_breaker
from khata.services.normalization import normalize_rows
from khata.services.prompts import KHATA_EXTRACTION_PROMPT, KHATA_SYSTEM_PROMPT
from khata.services.recovery import coerce_rows, recover_json
from khata.utils import messages
from khata.utils.exceptions import (
    KhataError,
    LLMConnectionError,
    LLMExtractionError,
    ResponseRecoveryError,
)
from khata.utils.file_processor import ImageBlob, file_processor


class BaseLLMExtractor(ABC):
    """Abstract base class for vision model providers"""

    provider: str = "none"

    @abstractmethod
    async def generate(self, prompt: str, image: ImageBlob) -> str:
        """Send one image with the instruction, return the raw reply text"""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is reachable"""
        pass


class GeminiExtractor(BaseLLMExtractor):

    provider = "gemini"

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.google_api_key

        if not self.api_key:
            raise LLMConnectionError("Google API key not configured. Set GOOGLE_API_KEY in environment.")

        self.client = genai.Client(api_key=self.api_key)
        self.model_name = settings.gemini_model
        logger.info(f"Initialized Gemini extractor with model: {self.model_name}")

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model_name,
                contents="Say OK",
            )
            return bool(response.text) and "ok" in response.text.lower()
        except Exception as e:
            logger.error(f"Gemini health check failed: {e}")
            return False

    async def generate(self, prompt: str, image: ImageBlob) -> str:
        image_bytes, mime_type = image
        response = await asyncio.to_thread(
            self.client.models.generate_content,
            model=self.model_name,
            contents=[
                types.Content(
                    role="user",
                    parts=[
                        types.Part(text=prompt),
                        types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                    ],
                )
            ],
            config=types.GenerateContentConfig(
                system_instruction=KHATA_SYSTEM_PROMPT,
                temperature=0.1,  # Low = deterministic transcription
                max_output_tokens=8192,
            ),
        )
        return response.text or ""


class OpenAIExtractor(BaseLLMExtractor):

    provider = "openai"

    def __init__(self):
        if not settings.openai_api_key:
            raise LLMConnectionError("OpenAI API key not configured")

        from openai import OpenAI

        self.client = OpenAI(api_key=settings.openai_api_key)
        self.model = settings.openai_model
        logger.info(f"Initialized OpenAI extractor with model: {self.model}")

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.model,
                messages=[{"role": "user", "content": "Say OK"}],
                max_tokens=10
            )
            return "ok" in (response.choices[0].message.content or "").lower()
        except Exception as e:
            logger.error(f"OpenAI health check failed: {e}")
            return False

    async def generate(self, prompt: str, image: ImageBlob) -> str:
        image_bytes, mime_type = image
        base64_image = base64.b64encode(image_bytes).decode("utf-8")

        response = await asyncio.to_thread(
            self.client.chat.completions.create,
            model=self.model,
            messages=[
                {"role": "system", "content": KHATA_SYSTEM_PROMPT},
                {"role": "user", "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{base64_image}", "detail": "high"}
                    },
                ]},
            ],
            max_tokens=4096,
            temperature=0.1
        )
        return response.choices[0].message.content or ""


class KhataExtractionService:
    def __init__(self):
        """Initialize service (extractor created lazily on first use)."""
        self.extractor: Optional[BaseLLMExtractor] = None
        self.provider: str = settings.default_llm_provider
        self._initialized = False

    async def initialize(self):
        if self._initialized:
            return

        try:
            if self.provider == "openai":
                self.extractor = OpenAIExtractor()
            else:
                self.extractor = GeminiExtractor()
                self.provider = "gemini"

            self._initialized = True
            logger.info(f"Khata extraction service initialized with provider: {self.provider}")

        except LLMConnectionError as e:
            logger.error(f"Failed to initialize extraction service: {e}")
            raise

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return openai_circuit_breaker if self.provider == "openai" else gemini_circuit_breaker

    async def health_check(self) -> Tuple[bool, str]:
        if not self._initialized:
            await self.initialize()

        if self.extractor:
            is_healthy = await self.extractor.health_check()
            return is_healthy, self.provider

        return False, "none"

    def check_image_count(self, count: int) -> None:
        file_processor.validate_image_count(count)

    async def _call_model(self, image: ImageBlob) -> str:
        async def attempt() -> str:
            try:
                return await asyncio.wait_for(
                    self.extractor.generate(KHATA_EXTRACTION_PROMPT, image),
                    timeout=settings.ai_timeout_seconds,
                )
            except asyncio.TimeoutError:
                raise LLMConnectionError(messages.TIMEOUT)

        return await self.circuit_breaker.call(attempt)

    async def extract(self, images: List[ImageBlob]) -> KhataExtraction:
        """
        Run every image through the model one after another and collect the rows.

        Raises:
            InputRejectedError: zero images or more than the configured maximum
            LLMExtractionError: every model call failed
            ResponseRecoveryError: calls went through but no reply could be parsed
        """
        self.check_image_count(len(images))

        if not self._initialized:
            await self.initialize()
        if not self.extractor:
            raise LLMExtractionError("Extractor not initialized")

        start_time = time.time()
        rows: List[ExtractedMark] = []
        warnings: List[str] = []
        raw_responses: List[str] = []
        call_failures = 0
        recovered = 0

        for number, image in enumerate(images, start=1):
            try:
                text = await self._call_model(image)
            except KhataError as e:
                call_failures += 1
                logger.error(f"Model call failed for image {number}: {e.message}")
                warnings.append(messages.image_failed(number, e.message))
                continue
            except Exception as e:
                call_failures += 1
                logger.error(f"Model call failed for image {number}: {e}")
                warnings.append(messages.image_failed(number, messages.EXTRACTION_FAILED))
                continue

            raw_responses.append(text)
            recovery = recover_json(text)
            found = coerce_rows(recovery.data) if recovery.success else None
            if found is None:
                logger.warning(f"Unrecoverable reply for image {number}: {text[:500]!r}")
                warnings.append(messages.image_failed(number, messages.RECOVERY_FAILED))
                continue

            recovered += 1
            image_rows, row_warnings = normalize_rows(found, existing_rolls=[r.roll_number for r in rows])
            warnings.extend(row_warnings)
            if not image_rows:
                warnings.append(messages.image_empty(number))

            seen = {r.roll_number for r in rows}
            for roll in sorted({r.roll_number for r in image_rows} & seen):
                warnings.append(messages.duplicate_roll_across_images(roll))
            rows.extend(image_rows)

        if call_failures == len(images):
            raise LLMExtractionError(messages.EXTRACTION_FAILED, details={"warnings": warnings})

        if recovered == 0:
            raise ResponseRecoveryError(messages.RECOVERY_FAILED, raw_responses=raw_responses, warnings=warnings)

        logger.info(
            f"Extracted {len(rows)} row(s) from {len(images)} image(s) "
            f"in {time.time() - start_time:.2f}s"
        )
        return KhataExtraction(
            extracted_marks=rows,
            warnings=warnings,
            images_processed=len(images),
            raw_responses=raw_responses,
        )


extraction_service = KhataExtractionService()

"""
OpenAI-based normalization service.

Uses OpenAI's Chat Completions API in JSON mode to clean up the free-text
attributes of a raw device record, then merges the response back over
the raw record to build a PhoneData.
"""

import json
import logging
import time
from typing import Any

import httpx
from openai import APIConnectionError, APIError, AsyncOpenAI, RateLimitError
from pydantic import BaseModel, Field, ValidationError, field_validator

from specscraper.core.config import settings
from specscraper.extraction.schemas import (
    CameraFeature,
    CameraType,
    NormalizedCamera,
    PhoneData,
    RawPhoneData,
)
from specscraper.normalization.base import BaseNormalizationService, NormalizationError
from specscraper.normalization.prompts import build_user_prompt, get_system_prompt
from specscraper.normalization.retry import RetryExhausted, RetryPolicy, with_retry

logger = logging.getLogger(__name__)


class OpenAINormalizationError(NormalizationError):
    """Raised when OpenAI normalization fails."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message, cause=cause, provider="openai")


def _as_list(value: Any) -> Any:
    """Models sometimes answer with a "|" or comma separated string."""
    if isinstance(value, str):
        separator = "|" if "|" in value else ","
        return [item.strip() for item in value.split(separator) if item.strip()]
    return value


class AICamera(BaseModel):
    type: CameraType
    features: list[CameraFeature] | None = None


class AINormalizationResponse(BaseModel):
    """The subset of fields the model returns."""

    display_features: list[str] = Field(default_factory=list)
    camera_features: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    cpu: str | None = None
    cameras: list[AICamera] = Field(default_factory=list)

    @field_validator("display_features", "camera_features", "materials", "colors", mode="before")
    @classmethod
    def accept_strings(cls, v: Any) -> Any:
        return _as_list(v)


def fields_for_ai(raw: RawPhoneData) -> dict[str, Any]:
    """The attributes worth sending to the model."""
    return {
        "display_features": raw.display_features,
        "camera_features": raw.camera_features,
        "materials": raw.materials,
        "colors": raw.colors,
        "cpu": raw.cpu,
        "cameras": [{"type": camera.type} for camera in raw.cameras],
    }


def guess_camera_type(label: str) -> CameraType:
    """Map a page camera label onto a normalized type without the model."""
    text = label.lower()
    if "selfie" in text or "front" in text:
        return "selfie"
    if "tele" in text or "zoom" in text or "periscope" in text:
        return "zoom"
    if "wide" in text:
        return "wide"
    if "macro" in text:
        return "macro"
    if "lidar" in text or "tof" in text:
        return "lidar"
    if "infrared" in text:
        return "infrared"
    return "main"


def merge_normalized(raw: RawPhoneData, response: AINormalizationResponse) -> PhoneData:
    """Overlay the model's fields on the raw record.

    Cameras are matched by position; any camera the model skipped keeps a
    type guessed from its page label.
    """
    cameras = []
    for index, camera in enumerate(raw.cameras):
        ai_camera = response.cameras[index] if index < len(response.cameras) else None
        cameras.append(
            NormalizedCamera(
                resolution_mp=camera.resolution_mp,
                aperture_fstop=camera.aperture_fstop,
                sensor=camera.sensor,
                type=ai_camera.type if ai_camera else guess_camera_type(camera.type),
                features=(ai_camera.features or []) if ai_camera else [],
            )
        )

    payload = raw.model_dump(exclude={"cameras"})
    payload.update(
        display_features=response.display_features,
        camera_features=response.camera_features,
        materials=response.materials,
        colors=response.colors,
        cpu=response.cpu or raw.cpu,
        cameras=cameras,
    )
    return PhoneData.model_validate(payload)


class OpenAINormalizationService(BaseNormalizationService):
    """Service for normalizing device records using the OpenAI API.

    Example:
        service = OpenAINormalizationService(api_key="sk-...")
        phone = await service.normalize(raw)
        print(phone.display_features)
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: int = 120,
        temperature: float = 0.1,
        language: str = "English",
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize the OpenAI normalization service.

        Args:
            api_key: OpenAI API key
            model: Model name (e.g., gpt-4o-mini, gpt-4o)
            timeout: Request timeout in seconds
            temperature: Sampling temperature (lower = more deterministic)
            language: Language the normalized text is written in
            retry_policy: Backoff for transient API failures
        """
        self._model = model
        self._timeout = timeout
        self._temperature = temperature
        self._language = language
        self._retry_policy = retry_policy or RetryPolicy()

        self._client = AsyncOpenAI(
            api_key=api_key,
            timeout=httpx.Timeout(timeout, connect=30.0),
        )

        logger.info(
            "OpenAINormalizationService initialized",
            extra={"model": model, "timeout": timeout, "language": language},
        )

    @classmethod
    def from_settings(cls) -> "OpenAINormalizationService":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            timeout=settings.OPENAI_TIMEOUT,
            temperature=settings.OPENAI_TEMPERATURE,
            language=settings.NORMALIZATION_LANGUAGE,
        )

    async def _complete(self, fields: dict[str, Any]) -> str:
        request_kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": get_system_prompt(self._language)},
                {"role": "user", "content": build_user_prompt(fields)},
            ],
            "response_format": {"type": "json_object"},
        }

        # gpt-5*, o-series models don't support custom temperature
        model_lower = self._model.lower()
        if not any(model_lower.startswith(prefix) for prefix in ("gpt-5", "o1", "o3", "o4")):
            request_kwargs["temperature"] = self._temperature

        response = await self._client.chat.completions.create(**request_kwargs)
        content = response.choices[0].message.content
        if not content:
            raise OpenAINormalizationError("Empty response from OpenAI")
        return content

    async def normalize(self, raw: RawPhoneData) -> PhoneData:
        """Normalize a raw device record using OpenAI.

        Connection errors and rate limits are retried with exponential
        backoff; everything else fails immediately.

        Raises:
            OpenAINormalizationError: If normalization fails
        """
        fields = fields_for_ai(raw)
        complete = with_retry(
            retryable_exceptions=(APIConnectionError, RateLimitError),
            policy=self._retry_policy,
        )(self._complete)

        logger.info(
            "Starting OpenAI normalization",
            extra={"slug": raw.slug, "model": self._model, "camera_count": len(raw.cameras)},
        )
        start_time = time.time()

        try:
            content = await complete(fields)
            result = AINormalizationResponse.model_validate(json.loads(content))
        except OpenAINormalizationError:
            raise
        except RetryExhausted as e:
            logger.error(
                "OpenAI normalization retries exhausted",
                extra={"slug": raw.slug, "attempts": e.attempts, "error": str(e.__cause__)},
            )
            raise OpenAINormalizationError(
                f"Retries exhausted: {e.__cause__}", cause=e
            ) from e
        except json.JSONDecodeError as e:
            logger.error(
                "OpenAI response JSON parse failed",
                extra={"slug": raw.slug, "error": str(e)},
            )
            raise OpenAINormalizationError(f"Invalid JSON response: {e}", cause=e) from e
        except ValidationError as e:
            logger.error(
                "OpenAI response validation failed",
                extra={"slug": raw.slug, "error": str(e)},
            )
            raise OpenAINormalizationError(f"Invalid response format: {e}", cause=e) from e
        except APIError as e:
            logger.error(
                "OpenAI API error",
                extra={
                    "slug": raw.slug,
                    "error": str(e),
                    "status_code": getattr(e, "status_code", None),
                },
            )
            raise OpenAINormalizationError(f"API error: {e}", cause=e) from e

        phone = merge_normalized(raw, result)
        logger.info(
            "OpenAI normalization completed",
            extra={
                "slug": raw.slug,
                "elapsed_seconds": round(time.time() - start_time, 2),
                "model": self._model,
            },
        )
        return phone

"""Generation transports.

A transport performs one external generation call: a prompt plus opaque
attachments in, raw text and optional token counters out. Transports must
signal retryable failures (overloaded, unavailable, rate limited) with
TransientTransportError and every other failure with TransportError.
"""

import asyncio
import base64
import os
from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import openai
from openai import AsyncOpenAI

from examforge.config.profile import TransportConfig
from examforge.exceptions import TransientTransportError, TransportError
from examforge.logger import get_logger, mask_sensitive
from examforge.schemas.generation import Attachment, TokenUsage, TransportResponse

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 503})
TRANSIENT_MARKERS = ("overloaded", "service unavailable", "unavailable")

_FINISH_REASONS = {"stop": "stop", "length": "length"}


def is_transient_message(message: str) -> bool:
    """Check whether a provider error message describes a transient state."""
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSIENT_MARKERS)


class BaseGenerationTransport(ABC):
    """Abstract base class for generation backends.

    All calls are async. Implementations acquire their resources in
    ``__aenter__`` and release them in ``__aexit__``.
    """

    @abstractmethod
    async def call(
        self,
        prompt: str,
        attachments: Sequence[Attachment],
        temperature: float,
    ) -> TransportResponse:
        """Perform one generation call.

        Args:
            prompt: Rendered prompt text.
            attachments: Source material (images or extracted text).
            temperature: Sampling randomness (0.0 = deterministic).

        Returns:
            Raw generated text with token counters when reported.

        Raises:
            TransientTransportError: If the service is overloaded,
                unavailable or rate limited.
            TransportError: For every other failure.
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Identifier of the model behind this transport."""
        pass

    async def __aenter__(self) -> "BaseGenerationTransport":
        """Enter the async context manager.

        Returns:
            Transport instance for use in async with statements.
        """
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: Any,
    ) -> None:
        """Exit the async context manager."""
        return None


class OpenAITransport(BaseGenerationTransport):
    """Transport for OpenAI-compatible chat completion APIs.

    Images are sent as base64 data-URL ``image_url`` parts and text
    attachments as additional text parts of the single user message.

    Attributes:
        max_output_tokens: Generation length limit per call.
    """

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        base_url: str | None = None,
        max_output_tokens: int = 8192,
        client: Any = None,
    ):
        """Initialize the transport.

        Args:
            model_name: Provider model identifier.
            api_key: API key; read from OPENAI_API_KEY on entry when None.
            base_url: Optional endpoint override.
            max_output_tokens: Generation length limit per call.
            client: Pre-built AsyncOpenAI-compatible client.
        """
        self._model_name = model_name
        self._api_key = api_key
        self._base_url = base_url
        self.max_output_tokens = max_output_tokens
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(
        cls, config: TransportConfig, max_output_tokens: int = 8192
    ) -> "OpenAITransport":
        """Create a transport from configuration.

        Args:
            config: Transport settings.
            max_output_tokens: Generation length limit per call.

        Returns:
            Configured transport; the API key is read from
            ``config.api_key_env``.
        """
        return cls(
            model_name=config.model_name,
            api_key=os.getenv(config.api_key_env),
            base_url=config.base_url,
            max_output_tokens=max_output_tokens,
        )

    @property
    def model_name(self) -> str:
        return self._model_name

    async def __aenter__(self) -> "OpenAITransport":
        """Create the API client.

        Raises:
            TransportError: If no API key is available.
        """
        if self._client is None:
            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise TransportError("No API key configured for the OpenAI transport")
            logger.debug(
                "OpenAI client created: model=%s, api_key=%s, base_url=%s",
                self._model_name,
                mask_sensitive(api_key),
                self._base_url,
            )
            self._client = AsyncOpenAI(api_key=api_key, base_url=self._base_url)
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: Any,
    ) -> None:
        """Close the API client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None

    @staticmethod
    def _content_parts(
        prompt: str, attachments: Sequence[Attachment]
    ) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for attachment in attachments:
            if attachment.is_image and attachment.data is not None:
                encoded = base64.b64encode(attachment.data).decode("ascii")
                parts.append(
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:{attachment.mime_type};base64,{encoded}"
                        },
                    }
                )
            elif attachment.text is not None:
                parts.append({"type": "text", "text": attachment.text})
            else:
                raise TransportError(
                    f"Unsupported attachment type: {attachment.mime_type}"
                )
        return parts

    async def call(
        self,
        prompt: str,
        attachments: Sequence[Attachment],
        temperature: float,
    ) -> TransportResponse:
        if self._client is None:
            raise TransportError("Client not created. Use async with context manager.")

        messages = [
            {"role": "user", "content": self._content_parts(prompt, attachments)}
        ]

        logger.debug(
            "Generation call started: model=%s, prompt_chars=%d, attachments=%d, "
            "temperature=%.2f",
            self._model_name,
            len(prompt),
            len(attachments),
            temperature,
        )

        try:
            response = await self._client.chat.completions.create(
                model=self._model_name,
                messages=messages,
                temperature=temperature,
                max_tokens=self.max_output_tokens,
            )
        except openai.APITimeoutError as e:
            raise TransportError("Generation call timed out") from e
        except openai.APIStatusError as e:
            if e.status_code in TRANSIENT_STATUS_CODES or is_transient_message(str(e)):
                raise TransientTransportError(
                    f"Generation service unavailable ({e.status_code})",
                    status_code=e.status_code,
                ) from e
            raise TransportError(
                f"Generation call rejected ({e.status_code})"
            ) from e
        except openai.APIConnectionError as e:
            raise TransportError("Could not reach the generation service") from e

        if not response.choices:
            raise TransportError("Generation response contained no choices")

        choice = response.choices[0]
        text = choice.message.content or ""
        usage = (
            TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
            if response.usage is not None
            else None
        )
        finish_reason = (
            _FINISH_REASONS.get(choice.finish_reason, "error")
            if choice.finish_reason
            else None
        )

        logger.debug(
            "Generation call completed: output_chars=%d, finish_reason=%s",
            len(text),
            finish_reason,
        )

        return TransportResponse(text=text, usage=usage, finish_reason=finish_reason)


class LlamaCppTransport(BaseGenerationTransport):
    """Transport using llama-cpp-python for local GGUF models.

    The model is loaded on context entry in a single-worker thread pool,
    since llama.cpp is not thread-safe. Local models are text-only: text
    attachments are appended to the prompt and image attachments are refused.

    Attributes:
        model_path: Path to GGUF model file.
        max_output_tokens: Generation length limit per call.
    """

    def __init__(
        self,
        model_path: str | Path,
        n_ctx: int = 8192,
        n_gpu_layers: int = 0,
        n_threads: int | None = None,
        max_output_tokens: int = 2048,
        verbose: bool = False,
    ):
        """Initialize transport with model configuration.

        Args:
            model_path: Location of GGUF model file.
            n_ctx: Context window capacity.
            n_gpu_layers: Layers offloaded to GPU (0 = CPU only).
            n_threads: CPU thread count (defaults to available cores).
            max_output_tokens: Generation length limit per call.
            verbose: Enable llama.cpp debug logging.
        """
        self.model_path = Path(model_path)
        self.max_output_tokens = max_output_tokens
        self._n_ctx = n_ctx
        self._n_gpu_layers = n_gpu_layers
        self._n_threads = n_threads or os.cpu_count()
        self._verbose = verbose
        self._model: Any = None
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_config(
        cls, config: TransportConfig, max_output_tokens: int = 2048
    ) -> "LlamaCppTransport":
        """Create a transport from configuration.

        Args:
            config: Transport settings with ``model_path`` set.
            max_output_tokens: Generation length limit per call.

        Returns:
            Configured transport.

        Raises:
            TransportError: If no model path is configured.
        """
        if config.model_path is None:
            raise TransportError("model_path is required for the llama backend")
        return cls(
            model_path=config.model_path,
            n_ctx=config.context_window,
            n_gpu_layers=config.n_gpu_layers,
            max_output_tokens=max_output_tokens,
        )

    @property
    def model_name(self) -> str:
        return self.model_path.stem

    async def __aenter__(self) -> "LlamaCppTransport":
        """Load the model on context manager entry.

        Raises:
            TransportError: If model loading fails or llama-cpp-python is
                not installed.
        """
        logger.info("Model loading started: path=%s", self.model_path)

        loop = asyncio.get_running_loop()
        self._executor = ThreadPoolExecutor(max_workers=1)

        try:
            self._model = await loop.run_in_executor(self._executor, self._load_model)
            logger.info(
                "Model loading completed: path=%s, n_ctx=%d",
                self.model_path,
                self._n_ctx,
            )
        except Exception as e:
            logger.error("Model loading failed: path=%s", self.model_path)
            logger.debug("Loading failure details: %s", e, exc_info=True)
            self._executor.shutdown(wait=True)
            self._executor = None
            if isinstance(e, TransportError):
                raise
            raise TransportError(f"Failed to load model from {self.model_path}") from e

        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: Any,
    ) -> None:
        """Release the model and thread pool."""
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._model = None

    def _load_model(self) -> Any:
        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise TransportError(
                "llama-cpp-python not installed. "
                "Install with: pip install 'examforge[llama]'"
            ) from e

        if not self.model_path.exists():
            raise TransportError(f"Model file not found: {self.model_path}")

        return Llama(
            model_path=str(self.model_path),
            n_ctx=self._n_ctx,
            n_gpu_layers=self._n_gpu_layers,
            n_threads=self._n_threads,
            verbose=self._verbose,
        )

    async def call(
        self,
        prompt: str,
        attachments: Sequence[Attachment],
        temperature: float,
    ) -> TransportResponse:
        if self._model is None:
            raise TransportError("Model not loaded. Use async with context manager.")

        texts: list[str] = []
        for attachment in attachments:
            if attachment.text is None:
                raise TransportError(
                    f"Local model cannot read {attachment.mime_type} attachments"
                )
            texts.append(attachment.text)
        full_prompt = "\n\n".join([prompt, *texts])

        loop = asyncio.get_running_loop()
        try:
            output = await loop.run_in_executor(
                self._executor,
                lambda: self._model(
                    full_prompt,
                    max_tokens=self.max_output_tokens,
                    temperature=temperature,
                    echo=False,
                ),
            )
        except Exception as e:
            logger.error("Generation failed: prompt_chars=%d", len(full_prompt))
            logger.debug("Generation failure details: %s", e, exc_info=True)
            raise TransportError("Local text generation failed") from e

        choice = output["choices"][0]
        usage = output.get("usage")

        return TransportResponse(
            text=choice["text"],
            usage=(
                TokenUsage(
                    prompt_tokens=usage["prompt_tokens"],
                    completion_tokens=usage["completion_tokens"],
                    total_tokens=usage["total_tokens"],
                )
                if usage
                else None
            ),
            finish_reason=_FINISH_REASONS.get(choice.get("finish_reason") or "", None),
        )


def create_transport(
    config: TransportConfig, max_output_tokens: int = 8192
) -> BaseGenerationTransport:
    """Instantiate the transport selected by configuration.

    Args:
        config: Transport settings.
        max_output_tokens: Generation length limit per call.

    Returns:
        Unentered transport instance.
    """
    if config.backend == "llama":
        return LlamaCppTransport.from_config(config, max_output_tokens)
    return OpenAITransport.from_config(config, max_output_tokens)

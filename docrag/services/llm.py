"""OpenAI LLM service for grounded response generation."""

from typing import Optional

from openai import AsyncOpenAI

from docrag.core.config import settings
from docrag.core.exceptions import LLMError
from docrag.services.timeouts import with_timeout


class LLMService:
    """Service for generating LLM responses."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the LLM service."""
        self.client = client
        self.model = model or settings.llm_model
        self.temperature = (
            settings.llm_temperature if temperature is None else temperature
        )
        self.timeout = timeout or settings.llm_timeout_seconds

    async def connect(self) -> None:
        """Create the OpenAI client."""
        if self.client is None:
            self.client = AsyncOpenAI(
                api_key=settings.openai_api_key, timeout=self.timeout, max_retries=0
            )

    async def disconnect(self) -> None:
        """Close the OpenAI client."""
        if self.client:
            await self.client.close()
            self.client = None

    async def complete(self, system_prompt: str, user_message: str) -> str:
        """
        Generate a completion for a system instruction and a user message.

        Args:
            system_prompt: Instruction constraining the answer.
            user_message: The user's question.

        Returns:
            Generated response text.

        Raises:
            LLMError: If response generation fails or times out.
        """
        if not self.client:
            raise LLMError("LLM client not connected")
        try:
            response = await with_timeout(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_message},
                    ],
                    temperature=self.temperature,
                    max_tokens=settings.llm_max_tokens,
                ),
                self.timeout,
                LLMError,
                "LLM completion",
            )
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"Failed to generate response: {str(e)}") from e

        content = response.choices[0].message.content
        if not content:
            raise LLMError("Empty response from LLM")
        return content

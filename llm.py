"""
Generation client -- a thin wrapper over the OpenAI SDK.

Using the SDK directly rather than LangChain's ChatOpenAI wrapper, same as
before: raw calls are simpler to debug. The wrapper pins the model config,
turns SDK errors into GenerationFailure, and validates JSON responses
against a schema before anyone else touches them.

Timeouts and retry/backoff are handled by the SDK itself (timeout and
max_retries on the client); nothing above this layer retries.
"""

import logging

import openai
from openai import OpenAI

from config import GenerationConfig
from errors import GenerationFailure
from schemas import parse_json_response

logger = logging.getLogger(__name__)


class GenerationClient:
    def __init__(self, config=None, client=None):
        self.config = config or GenerationConfig()
        # pass a client in for tests; otherwise build one per pipeline run
        self.client = client or OpenAI(
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
        )

    def generate(self, messages, json_mode=False):
        """Sends the chat messages and returns the reply text.

        With json_mode=True the API is asked for a JSON object; the prompt
        has to mention JSON for the API to accept that.
        """
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                temperature=self.config.temperature,
                **kwargs,
            )
        except openai.OpenAIError as e:
            raise GenerationFailure(f"{self.config.model} call failed: {e}") from e

        content = response.choices[0].message.content
        if content is None:
            raise GenerationFailure(f"{self.config.model} returned no content")

        logger.debug("  %s replied with %d chars", self.config.model, len(content))
        return content

    def generate_json(self, messages, schema):
        """Like generate(), but returns an instance of the pydantic schema."""
        raw = self.generate(messages, json_mode=True)
        return parse_json_response(raw, schema)

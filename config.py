"""
Central config for the article pipeline. Everything pulls from here so I
only need to change settings in one place.

The module-level constants are the defaults; the two dataclasses are what
actually gets passed around, so nothing in the pipeline reads these globals
directly.
"""

import os
from dataclasses import dataclass
from pathlib import Path

# --- Paths ---
BASE_DIR = Path(__file__).parent
OUTPUT_DIR = BASE_DIR / "output"

# --- LLM ---
# temperature 0 so the critic gives the same verdict on an unchanged draft
LLM_MODEL = os.getenv("ARTICLE_LLM_MODEL", "gpt-4o-mini")
LLM_TEMPERATURE = 0
LLM_TIMEOUT = float(os.getenv("ARTICLE_LLM_TIMEOUT", "60"))
LLM_MAX_RETRIES = 2
EMBEDDING_MODEL = "text-embedding-3-small"

# --- Retrieval ---
# seconds; a search that takes longer fails the run
RETRIEVAL_TIMEOUT = int(os.getenv("ARTICLE_RETRIEVAL_TIMEOUT", "30"))

# --- Pipeline settings ---
SEARCH_K = 10
CURATE_COUNT = 5
# the search API rejects very short queries
MIN_TOPIC_LENGTH = 5
TOPIC_PREFIX = "topic: "
MAX_REVISIONS = int(os.getenv("ARTICLE_MAX_REVISIONS", "5"))


@dataclass(frozen=True)
class GenerationConfig:
    model: str = LLM_MODEL
    temperature: float = LLM_TEMPERATURE
    timeout: float = LLM_TIMEOUT
    max_retries: int = LLM_MAX_RETRIES

    @classmethod
    def from_env(cls):
        return cls(
            model=os.getenv("ARTICLE_LLM_MODEL", LLM_MODEL),
            timeout=float(os.getenv("ARTICLE_LLM_TIMEOUT", str(LLM_TIMEOUT))),
        )


@dataclass(frozen=True)
class PipelineSettings:
    search_k: int = SEARCH_K
    curate_count: int = CURATE_COUNT
    min_topic_length: int = MIN_TOPIC_LENGTH
    topic_prefix: str = TOPIC_PREFIX
    max_revisions: int = MAX_REVISIONS
    retrieval_timeout: int = RETRIEVAL_TIMEOUT

    @classmethod
    def from_env(cls):
        return cls(
            max_revisions=int(os.getenv("ARTICLE_MAX_REVISIONS", str(MAX_REVISIONS))),
            retrieval_timeout=int(
                os.getenv("ARTICLE_RETRIEVAL_TIMEOUT", str(RETRIEVAL_TIMEOUT))
            ),
        )

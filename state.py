"""
Shared state definition for the article pipeline.

Every node in the graph reads from this state dict and returns only the
keys it wants to update -- LangGraph merges those into a fresh state, so
no node ever mutates what it was handed.
"""

from typing import Optional, TypedDict


class Document(TypedDict):
    source: str   # URL, unique within one result set
    content: str


class ArticleState(TypedDict, total=False):
    topic: str                       # set once by run(), already trimmed
    search_results: list[Document]   # filled by search, narrowed by curate
    article: str                     # first draft from write, replaced by revise
    critique: Optional[str]          # None means the critic accepted the draft
    feedback: Optional[str]          # writer's note to the critic, never published
    revisions: int                   # how many times revise has run


def dedupe_by_source(docs):
    """Keeps the first document for each source, preserving order."""
    seen = set()
    unique = []
    for doc in docs:
        if doc["source"] in seen:
            continue
        seen.add(doc["source"])
        unique.append(doc)
    return unique

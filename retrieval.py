"""
Retrieval clients -- anything with a retrieve(query, k) method that returns
a ranked list of Documents.

Two backends:
  - TavilyRetriever: live web search through the Tavily API. This is the
    default for article runs.
  - ChromaRetriever: queries a ChromaDB collection someone already built.
    Handy for writing from a private corpus. It never adds to the index --
    building that is somebody else's job.

Both collapse duplicate sources (first hit wins) so a source URL is a
unique key within one result set. Errors from the backend become
RetrievalFailure; deciding that an empty result is fatal is up to the
search node.
"""

import logging

import openai
from openai import OpenAI
from tavily import TavilyClient

from config import EMBEDDING_MODEL, RETRIEVAL_TIMEOUT
from errors import RetrievalFailure
from state import dedupe_by_source

logger = logging.getLogger(__name__)


class TavilyRetriever:
    """Web search via Tavily. Needs TAVILY_API_KEY in the environment.

    Every search carries a timeout; a stalled request fails the run instead
    of hanging it.
    """

    def __init__(self, client=None, timeout=RETRIEVAL_TIMEOUT):
        self.client = client
        self.timeout = timeout

    def retrieve(self, query, k):
        try:
            # built lazily so a missing API key surfaces as a retrieval failure
            if self.client is None:
                self.client = TavilyClient()
            response = self.client.search(query, max_results=k, timeout=self.timeout)
        except Exception as e:
            raise RetrievalFailure(f"Tavily search failed: {e}") from e

        results = response.get("results") if isinstance(response, dict) else None
        if not isinstance(results, list):
            raise RetrievalFailure(f"unexpected Tavily response: {response!r}")

        docs = [
            {"source": r.get("url") or "", "content": r.get("content") or ""}
            for r in results
        ]
        docs = [d for d in docs if d["source"]]
        return dedupe_by_source(docs)[:k]


class ChromaRetriever:
    """Nearest-neighbour lookup against an existing ChromaDB collection.

    Embeds the query with the same model the collection was indexed with,
    then asks Chroma for the top-k chunks. The chunk's "source" metadata
    becomes the document source; chunks without one fall back to their id.
    """

    def __init__(self, collection, client=None, embedding_model=EMBEDDING_MODEL):
        self.collection = collection
        self.client = client or OpenAI()
        self.embedding_model = embedding_model

    def retrieve(self, query, k):
        try:
            response = self.client.embeddings.create(
                model=self.embedding_model,
                input=[query],
            )
        except openai.OpenAIError as e:
            raise RetrievalFailure(f"could not embed query: {e}") from e
        query_embedding = response.data[0].embedding

        try:
            results = self.collection.query(
                query_embeddings=[query_embedding],
                n_results=k,
                include=["documents", "metadatas"],
            )
        except Exception as e:
            raise RetrievalFailure(f"Chroma query failed: {e}") from e

        if not results.get("documents"):
            return []

        ids = results["ids"][0]
        texts = results["documents"][0]
        metadatas = (results.get("metadatas") or [[]])[0] or [None] * len(ids)

        docs = []
        for doc_id, text, metadata in zip(ids, texts, metadatas):
            source = (metadata or {}).get("source") or doc_id
            docs.append({"source": str(source), "content": text or ""})

        logger.debug("  Chroma returned %d chunk(s)", len(docs))
        return dedupe_by_source(docs)


def open_chroma_collection(path, name):
    """Opens a persisted collection for read-only use by ChromaRetriever."""
    import chromadb

    chroma_client = chromadb.PersistentClient(path=str(path))
    try:
        return chroma_client.get_collection(name=name)
    except Exception as e:
        raise RetrievalFailure(f"no Chroma collection {name!r} at {path}: {e}") from e

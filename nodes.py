"""
Node functions for the LangGraph article pipeline.

Each node takes the shared state, does one job (search, curate, write,
critique or revise), and returns only the keys it wants to update. Kept
these as plain functions instead of classes -- easier to test and reason
about. The clients and settings come in as keyword arguments; pipeline.py
binds them with functools.partial when it builds the graph, so nothing
here touches a global client.

Every node checks the cancel token first. The calls in between are slow
network round trips, so that's the natural place to bail out.
"""

import logging
from datetime import date

from errors import GenerationFailure, InvalidTopic, PipelineCancelled, RetrievalFailure
from schemas import CuratedSources, decode_revision
from state import dedupe_by_source

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def _check_cancelled(cancel, stage):
    if cancel is not None and cancel.is_set():
        raise PipelineCancelled(f"run cancelled before {stage}")


def _today():
    return date.today().strftime("%d/%m/%Y")


def _format_documents(docs):
    return "\n\n".join(f"=== {doc['source']} ===\n{doc['content']}" for doc in docs)


def normalize_topic(topic, min_length=5, prefix="topic: "):
    """Returns the query string to send to the search backend.

    The search API rejects very short queries, so anything under min_length
    gets a fixed prefix. The topic itself is left alone.
    """
    topic = (topic or "").strip()
    if not topic:
        raise InvalidTopic("topic is empty")
    if len(topic) < min_length:
        return prefix + topic
    return topic


def search_node(state, *, retriever, settings, cancel=None):
    """Pulls the top-k documents for the topic from the retriever."""
    _check_cancelled(cancel, "search")
    query = normalize_topic(
        state["topic"], settings.min_topic_length, settings.topic_prefix
    )
    logger.info("--- Search: %r (k=%d) ---", query, settings.search_k)

    docs = retriever.retrieve(query, settings.search_k)
    # source is the key curate filters on, so it has to be unique here
    docs = dedupe_by_source(docs)[: settings.search_k]
    if not docs:
        raise RetrievalFailure(f"no documents found for {query!r}")

    logger.info("  Retrieved %d document(s)", len(docs))
    return {"search_results": docs}


def curate_node(state, *, llm, settings, cancel=None):
    """Has the model pick the most relevant sources, then filters to them.

    The model only ever names URLs; the documents themselves always come
    from search_results, so curation can drop sources but never invent one.
    """
    _check_cancelled(cancel, "curate")
    logger.info("--- Curate: picking %d source(s) ---", settings.curate_count)

    results = state["search_results"]
    picked = llm.generate_json(
        [
            {
                "role": "system",
                "content": (
                    "You are a personal newspaper editor. Your sole task is to "
                    f"return a list of URLs of the {settings.curate_count} most "
                    "relevant articles for the provided topic or query as a "
                    "JSON object in this format: "
                    '{"urls": ["url1", "url2", "url3", "url4", "url5"]}'
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Today's date is {_today()}.\n"
                    f"Topic or Query: {state['topic']}\n\n"
                    "Here is a list of articles:\n\n"
                    f"{_format_documents(results)}"
                ),
            },
        ],
        CuratedSources,
    )

    wanted = set(picked.urls[: settings.curate_count])
    curated = [doc for doc in results if doc["source"] in wanted]

    # fewer matches than asked for is fine -- just write from what we have
    if len(curated) < len(wanted):
        logger.warning(
            "  %d of the picked URLs were not in the search results",
            len(wanted) - len(curated),
        )
    logger.info("  Kept %d of %d document(s)", len(curated), len(results))
    return {"search_results": curated}


def write_node(state, *, llm, cancel=None):
    """Writes the first draft from the curated documents.

    No critique yet -- the critique/revise loop starts after this.
    """
    _check_cancelled(cancel, "write")
    logger.info("--- Write: drafting article ---")

    article = llm.generate(
        [
            {
                "role": "system",
                "content": (
                    "You are a personal newspaper writer. Your sole purpose is "
                    "to write a well-written article about a topic using a list "
                    "of articles. Write 5 paragraphs in markdown."
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Today's date is {_today()}.\n"
                    "Your task is to write a critically acclaimed article for me "
                    "about the provided query or topic based on the sources.\n\n"
                    "Here is a list of articles:\n\n"
                    f"{_format_documents(state['search_results'])}\n\n"
                    f"This is the topic: {state['topic']}\n"
                    "Please return a well-written article based on the provided "
                    "information."
                ),
            },
        ]
    )
    if not article.strip():
        raise GenerationFailure("writer returned an empty article")

    logger.info("  Draft complete (%d chars)", len(article))
    return {"article": article}


def critique_node(state, *, llm, cancel=None):
    """Asks the critic for short feedback, or [DONE] if the draft is good.

    Only an explicit [DONE] counts as acceptance. Anything else, including
    a reply we can't make sense of, is kept as the critique so the loop
    carries on rather than stopping early.
    """
    _check_cancelled(cancel, "critique")
    logger.info("--- Critique: reviewing draft ---")

    context = ""
    if state.get("critique") is not None:
        context = (
            "The writer has revised the article based on your previous "
            f"critique: {state['critique']}\n"
        )
        if state.get("feedback"):
            context += (
                "The writer left this note for you (it will not appear in the "
                f"published article): {state['feedback']}\n"
            )

    response = llm.generate(
        [
            {
                "role": "system",
                "content": (
                    "You are a personal newspaper writing critique. Your sole "
                    "purpose is to provide short feedback on a written article "
                    "so the writer will know what to fix.\n"
                    f"Today's date is {_today()}.\n"
                    "Your task is to provide a really short feedback on the "
                    "article only if necessary. If you think the article is "
                    f"good, please return {DONE_SENTINEL}. "
                    f"Please return a string of your critique or {DONE_SENTINEL}."
                ),
            },
            {
                "role": "user",
                "content": f"{context}\nThis is the article: {state['article']}",
            },
        ]
    )
    logger.debug("  Critic said: %s", response)

    if DONE_SENTINEL in response:
        logger.info("  Critic accepted the draft")
        return {"critique": None}

    logger.info("  Critic requested changes: %s", response.strip()[:200])
    return {"critique": response}


def revise_node(state, *, llm, cancel=None):
    """Edits the article against the critique.

    The reviser answers in JSON with the article and an optional note for
    the critic. decode_revision splits those apart, so the article stored
    in state is always publishable as-is.
    """
    _check_cancelled(cancel, "revise")
    revisions = state.get("revisions", 0) + 1
    logger.info("--- Revise: pass %d ---", revisions)

    raw = llm.generate(
        [
            {
                "role": "system",
                "content": (
                    "You are a personal newspaper editor. Your sole purpose is "
                    "to edit a well-written article about a topic based on the "
                    "given critique."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Your task is to edit the article based on the critique given.\n"
                    f"This is the article: {state['article']}\n\n"
                    f"This is the critique: {state['critique']}\n\n"
                    "Respond with a JSON object in this format: "
                    '{"article": "<the full edited article in markdown>", '
                    '"feedback": "<optional note to the critic, or null>"}. '
                    "The feedback is only for the critic and will not be "
                    "published."
                ),
            },
        ],
        json_mode=True,
    )
    revision = decode_revision(raw)

    logger.info("  Revision complete (%d chars)", len(revision.article))
    return {
        "article": revision.article,
        "feedback": revision.feedback,
        "revisions": revisions,
    }

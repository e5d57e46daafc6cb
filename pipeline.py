"""
The LangGraph article pipeline:

    search -> curate -> write -> critique -> (revise -> critique)* -> END

After every critique, should_continue() decides whether to loop back
through revise. The loop stops when the critic accepts the draft
(critique is None) or when the revision ceiling is hit, so a critic that
never says [DONE] can't keep us going forever.

run() is the only thing callers need. It builds a fresh graph per call --
clients get bound into the nodes with functools.partial -- so separate
runs in separate threads don't share anything mutable.
"""

import logging
from functools import partial

from langgraph.graph import END, START, StateGraph

from config import GenerationConfig, PipelineSettings
from errors import InvalidTopic, RevisionLimitExceeded
from llm import GenerationClient
from nodes import critique_node, curate_node, revise_node, search_node, write_node
from retrieval import TavilyRetriever
from state import ArticleState

logger = logging.getLogger(__name__)


def should_continue(state, max_revisions):
    """Routes after critique: "revise" to loop again, "end" to stop."""
    if state.get("critique") is None:
        return "end"
    if state.get("revisions", 0) >= max_revisions:
        logger.warning("Revision limit (%d) reached, stopping", max_revisions)
        return "end"
    return "revise"


def build_graph(llm, retriever, settings=None, cancel=None):
    """Wires the five stage nodes into a compiled LangGraph app."""
    settings = settings or PipelineSettings()

    graph = StateGraph(ArticleState)

    graph.add_node(
        "search",
        partial(search_node, retriever=retriever, settings=settings, cancel=cancel),
    )
    graph.add_node(
        "curate", partial(curate_node, llm=llm, settings=settings, cancel=cancel)
    )
    graph.add_node("write", partial(write_node, llm=llm, cancel=cancel))
    graph.add_node("critique", partial(critique_node, llm=llm, cancel=cancel))
    graph.add_node("revise", partial(revise_node, llm=llm, cancel=cancel))

    graph.add_edge(START, "search")
    graph.add_edge("search", "curate")
    graph.add_edge("curate", "write")
    graph.add_edge("write", "critique")

    def after_critique(state):
        return should_continue(state, settings.max_revisions)

    graph.add_conditional_edges(
        "critique", after_critique, {"revise": "revise", "end": END}
    )
    graph.add_edge("revise", "critique")

    return graph.compile()


def run_state(topic, llm=None, retriever=None, settings=None, cancel=None):
    """Runs the pipeline and returns the final state dict."""
    topic = (topic or "").strip()
    if not topic:
        raise InvalidTopic("topic is empty")

    settings = settings or PipelineSettings.from_env()
    llm = llm or GenerationClient(GenerationConfig.from_env())
    retriever = retriever or TavilyRetriever(timeout=settings.retrieval_timeout)

    app = build_graph(llm, retriever, settings, cancel)

    # 4 straight-line steps plus 2 per revision; leave headroom so LangGraph's
    # own step cap never fires before our revision ceiling does
    recursion_limit = 2 * settings.max_revisions + 10

    logger.info("Running pipeline for %r", topic)
    return app.invoke(
        {"topic": topic, "critique": None, "feedback": None, "revisions": 0},
        {"recursion_limit": recursion_limit},
    )


def run(topic, llm=None, retriever=None, settings=None, cancel=None):
    """Turns a topic into a finished article.

    Raises one of the errors.PipelineError subclasses on failure. If the
    critic is still unhappy after the last allowed revision, raises
    RevisionLimitExceeded with the last draft attached.
    """
    result = run_state(topic, llm, retriever, settings, cancel)

    if result.get("critique") is not None:
        raise RevisionLimitExceeded(result["article"], result.get("revisions", 0))

    logger.info("Article accepted after %d revision(s)", result.get("revisions", 0))
    return result["article"]

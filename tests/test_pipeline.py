import json
import threading
from concurrent.futures import ThreadPoolExecutor

import openai
import pytest

from config import PipelineSettings
from errors import (
    GenerationFailure,
    InvalidTopic,
    PipelineCancelled,
    RetrievalFailure,
    RevisionLimitExceeded,
)
from pipeline import run, run_state, should_continue
from retrieval import TavilyRetriever
from tests.fakes import FakeRetriever, default_scripts, make_docs, revision_json


def test_should_continue_ends_on_acceptance():
    assert should_continue({"critique": None, "revisions": 0}, max_revisions=5) == "end"


def test_should_continue_loops_on_feedback():
    assert should_continue({"critique": "fix it", "revisions": 2}, max_revisions=5) == "revise"


def test_should_continue_stops_at_ceiling():
    assert should_continue({"critique": "fix it", "revisions": 5}, max_revisions=5) == "end"


def test_short_topic_accepted_first_time(make_llm, docs, settings):
    scripts = default_scripts(docs)
    llm, completions = make_llm(scripts)
    retriever = FakeRetriever(docs)

    article = run("AI", llm=llm, retriever=retriever, settings=settings)

    assert retriever.queries == [("topic: AI", 10)]
    assert article == scripts["write"][0]
    assert completions.stages() == ["curate", "write", "critique"]
    assert completions.count("revise") == 0


def test_final_state_after_acceptance(make_llm, docs, settings):
    llm, _ = make_llm(default_scripts(docs))

    state = run_state("AI", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    assert state["topic"] == "AI"
    assert state["critique"] is None
    assert state["revisions"] == 0
    assert 0 < len(state["search_results"]) <= 5
    sources = {d["source"] for d in docs}
    assert {d["source"] for d in state["search_results"]} <= sources


def test_two_critiques_then_done(make_llm, docs, settings):
    scripts = default_scripts(docs)
    scripts["critique"] = ["Add more detail.", "Tighten the intro.", "[DONE]"]
    scripts["revise"] = [
        revision_json("Second draft.", "Added detail to paragraph two."),
        revision_json("Third draft."),
    ]
    llm, completions = make_llm(scripts)

    article = run("quantum computing", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    assert article == "Third draft."
    assert completions.count("revise") == 2
    assert completions.stages() == [
        "curate", "write",
        "critique", "revise",
        "critique", "revise",
        "critique",
    ]
    # the second critique saw the writer's note from the first revision
    second_critique = [kw for stage, kw in completions.calls if stage == "critique"][1]
    assert "Added detail to paragraph two." in second_critique["messages"][1]["content"]


def test_published_article_has_no_feedback_note(make_llm, docs, settings):
    scripts = default_scripts(docs)
    scripts["critique"] = ["Cite a source.", "[DONE]"]
    scripts["revise"] = [revision_json("Cited now. <FEEDBACK>used source 3</FEEDBACK>")]
    llm, _ = make_llm(scripts)

    article = run("quantum computing", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    assert article == "Cited now."


def test_critic_that_never_accepts_stops_at_ceiling(make_llm, docs, settings):
    scripts = default_scripts(docs)
    scripts["critique"] = ["Still not good enough."]
    scripts["revise"] = [revision_json(f"Draft {i}.") for i in range(1, 6)]
    llm, completions = make_llm(scripts)

    with pytest.raises(RevisionLimitExceeded) as exc_info:
        run("quantum computing", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    assert exc_info.value.revisions == 5
    assert exc_info.value.article == "Draft 5."
    assert completions.count("revise") == 5
    assert completions.count("critique") == 6


@pytest.mark.parametrize("ceiling", [0, 1, 3, 12])
def test_ceiling_is_exact(make_llm, docs, ceiling):
    scripts = default_scripts(docs)
    scripts["critique"] = ["Nope."]
    llm, completions = make_llm(scripts)

    with pytest.raises(RevisionLimitExceeded) as exc_info:
        run(
            "quantum computing",
            llm=llm,
            retriever=FakeRetriever(docs),
            settings=PipelineSettings(max_revisions=ceiling),
        )

    assert exc_info.value.revisions == ceiling
    assert completions.count("revise") == ceiling


def test_empty_retrieval_stops_before_any_generation(make_llm, settings):
    llm, completions = make_llm(default_scripts(make_docs(10)))

    with pytest.raises(RetrievalFailure):
        run("quantum computing", llm=llm, retriever=FakeRetriever([]), settings=settings)

    assert completions.calls == []


def test_generation_failure_aborts_run(make_llm, docs, settings):
    scripts = default_scripts(docs)
    scripts["write"] = [openai.OpenAIError("timed out")]
    llm, completions = make_llm(scripts)

    with pytest.raises(GenerationFailure):
        run("quantum computing", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    assert completions.stages() == ["curate", "write"]


@pytest.mark.parametrize("topic", ["", "   ", None])
def test_invalid_topic(make_llm, docs, settings, topic):
    llm, completions = make_llm(default_scripts(docs))
    retriever = FakeRetriever(docs)

    with pytest.raises(InvalidTopic):
        run(topic, llm=llm, retriever=retriever, settings=settings)

    assert retriever.queries == []
    assert completions.calls == []


def test_topic_is_trimmed(make_llm, docs, settings):
    llm, _ = make_llm(default_scripts(docs))
    retriever = FakeRetriever(docs)

    run("  quantum computing  ", llm=llm, retriever=retriever, settings=settings)

    assert retriever.queries == [("quantum computing", 10)]


class CancellingRetriever(FakeRetriever):
    """Cancels the run while the search call is 'in flight'."""

    def __init__(self, docs, cancel):
        super().__init__(docs)
        self.cancel = cancel

    def retrieve(self, query, k):
        self.cancel.set()
        return super().retrieve(query, k)


def test_cancel_between_stages(make_llm, docs, settings):
    cancel = threading.Event()
    llm, completions = make_llm(default_scripts(docs))

    with pytest.raises(PipelineCancelled):
        run(
            "quantum computing",
            llm=llm,
            retriever=CancellingRetriever(docs, cancel),
            settings=settings,
            cancel=cancel,
        )

    assert completions.calls == []


def test_concurrent_runs_do_not_share_state(make_llm, settings):
    def one_run(name):
        docs = make_docs(10, prefix=f"https://{name}.example/")
        scripts = default_scripts(docs)
        scripts["write"] = [f"Article about {name}."]
        llm, _ = make_llm(scripts)
        return run(f"{name} topic", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    names = ["alpha", "beta", "gamma", "delta"]
    with ThreadPoolExecutor(max_workers=4) as pool:
        articles = list(pool.map(one_run, names))

    assert articles == [f"Article about {name}." for name in names]


def test_curated_documents_reach_the_writer(make_llm, docs, settings):
    scripts = default_scripts(docs)
    scripts["curate"] = [json.dumps({"urls": [docs[8]["source"]]})]
    llm, completions = make_llm(scripts)

    run("quantum computing", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    write_prompt = [kw for stage, kw in completions.calls if stage == "write"][0]
    content = write_prompt["messages"][1]["content"]
    assert docs[8]["source"] in content
    assert docs[0]["source"] not in content


def test_duplicate_sources_cannot_push_curation_past_five(make_llm, settings):
    docs = make_docs(5) + make_docs(5)
    scripts = default_scripts(docs)
    scripts["curate"] = [json.dumps({"urls": [d["source"] for d in docs]})]
    llm, _ = make_llm(scripts)

    state = run_state("quantum", llm=llm, retriever=FakeRetriever(docs), settings=settings)

    sources = [d["source"] for d in state["search_results"]]
    assert len(sources) <= 5
    assert len(sources) == len(set(sources))


class TimingOutTavily:
    def search(self, query, **kwargs):
        raise TimeoutError(f"search timed out after {kwargs['timeout']}s")


def test_search_timeout_fails_the_run(make_llm, docs):
    llm, completions = make_llm(default_scripts(docs))
    settings = PipelineSettings(retrieval_timeout=5)
    retriever = TavilyRetriever(client=TimingOutTavily(), timeout=settings.retrieval_timeout)

    with pytest.raises(RetrievalFailure) as exc_info:
        run("quantum computing", llm=llm, retriever=retriever, settings=settings)

    assert "5s" in str(exc_info.value)
    assert completions.calls == []

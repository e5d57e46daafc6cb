"""
Main entry point for the LangGraph article pipeline.

Takes a topic, runs it through search -> curate -> write -> critique/revise,
and saves the finished article as markdown.

Usage:
  python run.py "quantum computing"
  python run.py AI --max-revisions 3
  python run.py "llm evals" --chroma-path data/chroma --collection articles
"""

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from config import OUTPUT_DIR, GenerationConfig, PipelineSettings
from errors import PipelineError, RevisionLimitExceeded
from llm import GenerationClient
from pipeline import run
from retrieval import ChromaRetriever, TavilyRetriever, open_chroma_collection


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Research and write an article about a topic")
    parser.add_argument("topic", help="what the article should be about")
    parser.add_argument("--max-revisions", type=int, default=None,
                        help="cap on critique/revise rounds")
    parser.add_argument("--output", type=Path, default=OUTPUT_DIR / "article.md")
    parser.add_argument("--chroma-path", type=Path, default=None,
                        help="search a local ChromaDB collection instead of the web")
    parser.add_argument("--collection", default="articles")
    parser.add_argument("--log-level", default="INFO", type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def build_retriever(args, settings):
    if args.chroma_path is None:
        return TavilyRetriever(timeout=settings.retrieval_timeout)
    collection = open_chroma_collection(args.chroma_path, args.collection)
    return ChromaRetriever(collection)


def save_article(article, path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(article)
    print(f"\nArticle saved to {path}")


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = PipelineSettings.from_env()
    if args.max_revisions is not None:
        settings = replace(settings, max_revisions=args.max_revisions)

    try:
        retriever = build_retriever(args, settings)
        article = run(
            args.topic,
            llm=GenerationClient(GenerationConfig.from_env()),
            retriever=retriever,
            settings=settings,
        )
    except RevisionLimitExceeded as e:
        # still worth keeping -- it's just not signed off by the critic
        print(f"Warning: {e}. Saving the last draft anyway.")
        save_article(e.article, args.output)
        raise SystemExit(1)
    except PipelineError as e:
        print(f"Error: {e}")
        raise SystemExit(1)

    save_article(article, args.output)
    print("\n" + "=" * 60)
    print("FINAL ARTICLE")
    print("=" * 60)
    print(article)


if __name__ == "__main__":
    main()

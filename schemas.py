"""
Schemas for the JSON responses the model sends back.

Anything that comes back in JSON mode gets validated here the moment it
arrives, so the nodes only ever see typed objects. Bad JSON or missing
keys turn into MalformedResponse instead of a KeyError three steps later.
"""

import json
import re
from typing import Optional

from pydantic import BaseModel, ValidationError

from errors import MalformedResponse

# models sometimes ignore the JSON field and inline the note anyway
_FEEDBACK_RE = re.compile(r"<FEEDBACK>(.*?)</FEEDBACK>", re.DOTALL | re.IGNORECASE)


class CuratedSources(BaseModel):
    urls: list[str]


class Revision(BaseModel):
    article: str
    feedback: Optional[str] = None


def parse_json_response(raw, schema):
    """Parses raw model output into the given pydantic model."""
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedResponse(f"response is not valid JSON: {e}") from e

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(
            f"response does not match {schema.__name__}: {e}"
        ) from e


def extract_feedback(text):
    """Splits <FEEDBACK> blocks out of text.

    Returns (clean_text, feedback) where feedback is None if there were no
    tags. Multiple blocks get joined with blank lines.
    """
    blocks = [b.strip() for b in _FEEDBACK_RE.findall(text)]
    clean = _FEEDBACK_RE.sub("", text).strip()
    feedback = "\n\n".join(b for b in blocks if b) or None
    return clean, feedback


def decode_revision(raw):
    """Turns the reviser's JSON into a Revision with a clean article.

    This is the only place the feedback note gets separated from the
    article; everything downstream just reads the two fields.
    """
    revision = parse_json_response(raw, Revision)
    article, inline_note = extract_feedback(revision.article)
    if not article:
        raise MalformedResponse("revision came back with an empty article")

    notes = [n for n in (revision.feedback, inline_note) if n and n.strip()]
    feedback = "\n\n".join(n.strip() for n in notes) or None
    return Revision(article=article, feedback=feedback)

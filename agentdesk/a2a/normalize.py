"""Normalization of agent responses into ``{content, state, artifacts}``.

There is no single response schema across agent implementations, so each
field is extracted by an ordered list of rules. A rule is a predicate plus a
projector; the first rule that applies and projects a non-empty value wins.
Support for another response shape is added by appending a rule.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from agentdesk.a2a.schemas import NO_CONTENT, Artifact, NormalizedResponse, TaskState
from agentdesk.utils.log import log_debug, log_warning
from agentdesk.utils.string import truncate

RESULT_ARTIFACT_NAME = "result"


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    applies: Callable[[Dict[str, Any]], bool]
    project: Callable[[Dict[str, Any]], Any]

    def extract(self, value: Dict[str, Any]) -> Any:
        if not self.applies(value):
            return None
        return self.project(value)


def _get(value: Any, *path: str) -> Any:
    """Follow a key path through nested dicts, returning None at the first miss."""
    current = value
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _has(*path: str) -> Callable[[Dict[str, Any]], bool]:
    return lambda value: _get(value, *path) is not None


def _is_text_part(part: Any) -> bool:
    if not isinstance(part, dict):
        return False
    # "kind" is current, "type" is what older agents send
    return part.get("kind") == "text" or part.get("type") == "text"


def first_text_part(parts: Any) -> Optional[str]:
    if not isinstance(parts, list):
        return None
    for part in parts:
        if _is_text_part(part) and isinstance(part.get("text"), str) and part["text"]:
            return part["text"]
    return None


def _as_text(raw: Any) -> Optional[str]:
    if isinstance(raw, str):
        return raw or None
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        return str(raw)
    return None


def _result_artifact_text(value: Dict[str, Any]) -> Optional[str]:
    for artifact in _get(value, "result", "artifacts") or []:
        if isinstance(artifact, dict) and artifact.get("name") == RESULT_ARTIFACT_NAME:
            text = first_text_part(artifact.get("parts"))
            if text:
                return text
    return None


def _top_level_text(value: Dict[str, Any]) -> Optional[str]:
    for field_name in ("text", "message"):
        text = _as_text(value.get(field_name))
        if text:
            return text
    return None


def _error_content(value: Dict[str, Any]) -> Optional[str]:
    message = _as_text(_get(value, "error", "message"))
    return f"Error: {message}" if message else None


STATE_RULES: List[ExtractionRule] = [
    ExtractionRule(
        "result.status.state",
        _has("result", "status", "state"),
        lambda v: TaskState.parse(_get(v, "result", "status", "state")),
    ),
    ExtractionRule("jsonrpc.error", lambda v: isinstance(v.get("error"), dict), lambda v: TaskState.ERROR),
]

ARTIFACT_RULES: List[ExtractionRule] = [
    ExtractionRule(
        "result.artifacts",
        lambda v: isinstance(_get(v, "result", "artifacts"), list),
        lambda v: [Artifact.from_dict(a) for a in _get(v, "result", "artifacts") if isinstance(a, dict)],
    ),
]

CONTENT_RULES: List[ExtractionRule] = [
    ExtractionRule("result.artifacts[result].parts", _has("result", "artifacts"), _result_artifact_text),
    ExtractionRule(
        "result.status.message.parts",
        _has("result", "status", "message", "parts"),
        lambda v: first_text_part(_get(v, "result", "status", "message", "parts")),
    ),
    ExtractionRule("result.content", _has("result", "content"), lambda v: _as_text(_get(v, "result", "content"))),
    ExtractionRule(
        "result.message.parts",
        _has("result", "message", "parts"),
        lambda v: first_text_part(_get(v, "result", "message", "parts")),
    ),
    ExtractionRule(
        "result.agent_response.content",
        _has("result", "agent_response"),
        lambda v: _as_text(_get(v, "result", "agent_response", "content")),
    ),
    ExtractionRule("content", _has("content"), lambda v: _as_text(v.get("content"))),
    ExtractionRule("text|message", lambda v: True, _top_level_text),
    ExtractionRule("error.message", _has("error", "message"), _error_content),
]


def _is_empty(projected: Any) -> bool:
    return projected is None or projected == ""


class ResponseNormalizer:
    """Maps any known response shape to a NormalizedResponse. Never raises."""

    def __init__(
        self,
        content_rules: Optional[Sequence[ExtractionRule]] = None,
        state_rules: Optional[Sequence[ExtractionRule]] = None,
        artifact_rules: Optional[Sequence[ExtractionRule]] = None,
    ):
        self.content_rules: List[ExtractionRule] = list(content_rules if content_rules is not None else CONTENT_RULES)
        self.state_rules: List[ExtractionRule] = list(state_rules if state_rules is not None else STATE_RULES)
        self.artifact_rules: List[ExtractionRule] = list(
            artifact_rules if artifact_rules is not None else ARTIFACT_RULES
        )

    def add_content_rule(self, rule: ExtractionRule) -> None:
        self.content_rules.append(rule)

    def add_state_rule(self, rule: ExtractionRule) -> None:
        self.state_rules.append(rule)

    def add_artifact_rule(self, rule: ExtractionRule) -> None:
        self.artifact_rules.append(rule)

    def normalize(self, value: Any) -> NormalizedResponse:
        if not isinstance(value, dict):
            log_warning(f"No content found in non-object response: {truncate(value)}")
            return NormalizedResponse()

        content = self._first_match(self.content_rules, value, "content")
        state = self._first_match(self.state_rules, value, "state")
        artifacts = self._first_match(self.artifact_rules, value, "artifacts")

        if content is None:
            log_warning(f"No content found in response: {truncate(value)}")
            content = NO_CONTENT
        return NormalizedResponse(content=content, state=state, artifacts=artifacts)

    @staticmethod
    def _first_match(rules: Sequence[ExtractionRule], value: Dict[str, Any], label: str) -> Any:
        for rule in rules:
            try:
                projected = rule.extract(value)
            except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
                log_debug(f"Extraction rule {rule.name} failed: {e}")
                continue
            if not _is_empty(projected):
                log_debug(f"Found {label} via {rule.name}: {truncate(projected)}")
                return projected
        return None


default_normalizer = ResponseNormalizer()


def normalize_response(value: Any) -> NormalizedResponse:
    return default_normalizer.normalize(value)

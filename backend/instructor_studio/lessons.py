from __future__ import annotations

import json
import logging
import re
import unicodedata
import xml.etree.ElementTree as etree
from dataclasses import dataclass, field, asdict
from typing import Any, Awaitable, Callable, Dict, List, Optional

import markdown
from markdown.extensions import Extension
from markdown.extensions.toc import TocExtension
from markdown.treeprocessors import Treeprocessor
from pydantic import ValidationError

from .schemas import GlossaryEntry, LessonContent, VerificationQuestion

logger = logging.getLogger(__name__)


DEFAULT_FEEDBACK = "Revisa el concepto y vuelve a intentarlo."
EVALUATION_EMPTY = "No se pudo evaluar automáticamente. Intenta de nuevo."
EVALUATION_FAILED = "No se pudo evaluar en este momento. Intenta más tarde."
VERIFICATION_RENDER_ERROR = "No se pudo renderizar esta pregunta de verificación."
EXAMPLE_RENDER_ERROR = "No se pudo interpretar este ejemplo práctico."

QUESTION_STATUSES = ("idle", "checking", "correcto", "incorrecto", "parcialmente_correcto")
RESULT_STATUSES = ("correcto", "incorrecto", "parcialmente_correcto")


def slugify(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()
    stripped = re.sub(r"[^a-z0-9\s-]", "", stripped).strip()
    return re.sub(r"\s+", "-", stripped)


@dataclass
class LessonSection:
    id: str
    title: str
    content: str
    index: int


def extract_sections(text: Optional[str]) -> List[LessonSection]:
    """Split lesson markdown on ``## `` headings.

    Anything before the first level-2 heading does not belong to a section.
    """
    sections: List[LessonSection] = []
    current: Optional[LessonSection] = None
    for line in (text if isinstance(text, str) else "").split("\n"):
        heading = re.match(r"^##\s+(.*)", line)
        if heading:
            if current is not None:
                current.content = current.content.strip()
                sections.append(current)
            title = heading.group(1).strip()
            current = LessonSection(id=slugify(title), title=title, content="", index=len(sections))
        elif current is not None:
            current.content += f"{line}\n"
    if current is not None:
        current.content = current.content.strip()
        sections.append(current)
    return sections


_LOOSE_EXAMPLE = "example {"


def normalize_loose_example_blocks(text: Optional[str]) -> str:
    """Wrap ``example { ... }`` written outside a fence into an ``example`` fence.

    Generated lessons sometimes emit the JSON of an example card inline, or
    inside a blockquote. Braces are matched outside string literals and quote
    markers are stripped from each line of the captured block.
    """
    text = text if isinstance(text, str) else ""
    lower = text.lower()
    if _LOOSE_EXAMPLE not in lower:
        return text

    result = ""
    cursor = 0
    while cursor < len(text):
        next_idx = lower.find(_LOOSE_EXAMPLE, cursor)
        if next_idx == -1:
            result += text[cursor:]
            break

        # Inside a fenced block already
        if text[:next_idx].count("```") % 2 == 1:
            end = next_idx + len(_LOOSE_EXAMPLE)
            result += text[cursor:end]
            cursor = end
            continue

        brace_start = text.find("{", next_idx)
        depth = 0
        in_string = False
        end_idx = -1
        for i in range(brace_start, len(text)):
            char = text[i]
            if char == '"' and text[i - 1] != "\\":
                in_string = not in_string
            if not in_string:
                if char == "{":
                    depth += 1
                elif char == "}":
                    depth -= 1
                if depth == 0:
                    end_idx = i
                    break

        if end_idx == -1:
            result += text[cursor:]
            break

        raw_block = text[brace_start : end_idx + 1]
        cleaned = "\n".join(re.sub(r"^\s*>\s?", "", line).rstrip() for line in raw_block.split("\n")).strip()
        json_block = cleaned if cleaned.startswith("{") else "{" + cleaned
        result += f"{text[cursor:next_idx]}\n\n```example\n{json_block}\n```\n\n"
        cursor = end_idx + 1

    return result


def parse_json_with_fallback(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        pass
    # Double-escaped payloads from the generator
    normalized = raw.replace("\\r", "").replace("\\n", "\n").replace("\\t", "\t").replace('\\"', '"')
    try:
        return json.loads(normalized)
    except ValueError:
        return None


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return None


def _to_string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [s for s in (str(v).strip() for v in value) if s]
    if isinstance(value, str):
        return [s.strip() for s in re.split(r"\n|•", value) if s.strip()]
    return []


def _to_metrics(value: Any) -> List[Dict[str, str]]:
    if not value:
        return []
    if isinstance(value, list):
        metrics = []
        for entry in value:
            if isinstance(entry, dict):
                label = _first(entry, "label", "etiqueta", "nombre", "title")
                metric = _first(entry, "value", "valor", "descripcion", "detalle", "metrica")
                if label and metric:
                    metrics.append({"label": str(label), "value": str(metric)})
        return metrics
    if isinstance(value, dict):
        return [
            {"label": label, "value": v if isinstance(v, str) else json.dumps(v, ensure_ascii=False)}
            for label, v in value.items()
        ]
    return []


def _normalize_case(value: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(value, dict):
        return None
    title = _first(value, "titulo", "title", "nombre", "heading", "label")
    if not title:
        return None
    description = _first(value, "descripcion", "description", "detalle", "contexto", "summary")
    return {
        "title": str(title),
        "description": str(description) if description else None,
        "details": _to_metrics(_first(value, "detalles", "datos", "metrics", "puntos")),
    }


def _to_cases(value: Any) -> List[Dict[str, Any]]:
    if not value:
        return []
    if isinstance(value, list):
        return [c for c in (_normalize_case(v) for v in value) if c]
    single = _normalize_case(value)
    return [single] if single else []


def normalize_example_data(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    subtitle = _first(raw, "subtitulo", "summary", "descripcion", "subtitle")
    context = _first(raw, "contexto", "context", "escenario", "scenario", "descripcion")
    result = _first(raw, "resultado", "result", "insight", "conclusion")
    action = _first(raw, "accion", "callToAction", "siguientePaso", "nextStep")
    return {
        "id": raw.get("id"),
        "title": str(_first(raw, "titulo", "title", "heading") or "Ejemplo aplicado"),
        "subtitle": str(subtitle) if subtitle else None,
        "context": str(context) if context else None,
        "bullets": _to_string_list(_first(raw, "pasos", "steps", "bullets", "hallazgos", "claves", "highlights")),
        "cases": _to_cases(_first(raw, "casos", "examples", "ejemplos", "case", "variantes")),
        "metrics": _to_metrics(_first(raw, "metricas", "metrics", "datos", "tabla", "datosComparativos")),
        "result": str(result) if result else None,
        "action": str(action) if action else None,
    }


def parse_example_block(raw: str) -> Optional[Dict[str, Any]]:
    parsed = parse_json_with_fallback(raw)
    if not parsed:
        return None
    return normalize_example_data(parsed)


# Glossary highlighting

_SKIP_TAGS = {"a", "code", "pre"}


class GlossaryTreeprocessor(Treeprocessor):
    def __init__(self, md, entries: List[GlossaryEntry]):
        super().__init__(md)
        self.patterns = [
            (re.compile(r"\b(" + re.escape(e.termino) + r")\b", re.IGNORECASE), e)
            for e in entries
            if e.termino
        ]

    def run(self, root):
        if self.patterns:
            self._walk(root)

    def _walk(self, el):
        if el.tag in _SKIP_TAGS:
            return
        children = list(el)
        if el.text:
            el.text, spans = self._split(el.text)
            for i, span in enumerate(spans):
                el.insert(i, span)
        for child in children:
            self._walk(child)
            if child.tail:
                child.tail, spans = self._split(child.tail)
                pos = list(el).index(child)
                for offset, span in enumerate(spans, start=1):
                    el.insert(pos + offset, span)

    def _split(self, text: str):
        matches = []
        for pattern, entry in self.patterns:
            for m in pattern.finditer(text):
                matches.append((m.start(), m.end(), entry, m.group(0)))
        if not matches:
            return text, []
        matches.sort(key=lambda m: m[0])
        lead = None
        spans = []
        cursor = 0
        for start, end, entry, matched in matches:
            if start < cursor:
                continue
            before = text[cursor:start]
            if spans:
                spans[-1].tail = (spans[-1].tail or "") + before
            else:
                lead = before
            span = etree.Element("span", {
                "class": "lesson-glossary-term",
                "data-term": entry.termino,
                "data-definition": entry.definicion,
            })
            span.text = matched
            spans.append(span)
            cursor = end
        spans[-1].tail = text[cursor:] or None
        return lead or None, spans


class GlossaryExtension(Extension):
    def __init__(self, entries: List[GlossaryEntry], **kwargs):
        self.entries = entries
        super().__init__(**kwargs)

    def extendMarkdown(self, md):
        # After inline patterns (20) so text nodes are final
        md.treeprocessors.register(GlossaryTreeprocessor(md, self.entries), "lesson_glossary", 15)


def _markdown_renderer(glossary: List[GlossaryEntry]) -> markdown.Markdown:
    return markdown.Markdown(extensions=[
        "fenced_code",
        "tables",
        "md_in_html",
        TocExtension(slugify=lambda value, separator: slugify(value)),
        GlossaryExtension(glossary),
    ])


_FENCE_OPEN = re.compile(r"^\s*(`{3,}|~{3,})\s*([\w-]*)")


def _callouts(lines: List[str]) -> List[str]:
    out = []
    for line in lines:
        stripped = line.strip()
        if stripped == ":::callout":
            out.extend(["", '<div class="lesson-callout" markdown="1">', ""])
        elif stripped == ":::":
            out.extend(["", "</div>", ""])
        else:
            out.append(line)
    return out


def split_blocks(text: str) -> List[Dict[str, Any]]:
    """Cut markdown into plain segments and ``verification``/``example`` fences.

    Each block carries the id of the ``##`` section it falls in, or ``None``
    for content before the first heading.
    """
    blocks: List[Dict[str, Any]] = []
    buffer: List[str] = []
    section_id: Optional[str] = None
    lines = text.split("\n")
    i = 0

    def flush():
        if "".join(buffer).strip():
            blocks.append({"type": "markdown", "section_id": section_id, "source": "\n".join(buffer)})
        buffer.clear()

    while i < len(lines):
        line = lines[i]
        fence = _FENCE_OPEN.match(line)
        if fence:
            marker, lang = fence.group(1), fence.group(2).lower()
            body = []
            i += 1
            while i < len(lines) and not lines[i].strip().startswith(marker):
                body.append(lines[i])
                i += 1
            closing = lines[i] if i < len(lines) else None
            i += 1
            if lang in ("verification", "example"):
                flush()
                blocks.append({"type": lang, "section_id": section_id, "source": "\n".join(body).strip()})
            else:
                buffer.append(line)
                buffer.extend(body)
                if closing is not None:
                    buffer.append(closing)
            continue
        heading = re.match(r"^##\s+(.*)", line)
        if heading:
            flush()
            section_id = slugify(heading.group(1).strip())
        buffer.append(line)
        i += 1
    flush()
    return blocks


def parse_verification_block(source: str, questions: Dict[str, VerificationQuestion]) -> Optional[VerificationQuestion]:
    try:
        parsed = json.loads(source)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    if parsed.get("id") in questions:
        return questions[parsed["id"]]
    try:
        return VerificationQuestion.model_validate(parsed)
    except ValidationError:
        return None


def collect_questions(content: LessonContent) -> Dict[str, VerificationQuestion]:
    """Questions declared by the lesson plus inline ones from ``verification`` fences."""
    questions = {q.id: q for q in content.preguntasVerificacion}
    for block in split_blocks(normalize_loose_example_blocks(content.markdown)):
        if block["type"] != "verification":
            continue
        question = parse_verification_block(block["source"], questions)
        if question is not None and question.id not in questions:
            questions[question.id] = question
    return questions


def public_question(question: VerificationQuestion) -> Dict[str, Any]:
    return question.model_dump(exclude={"respuestaCorrecta", "feedback"})


def render_lesson(content: LessonContent) -> Dict[str, Any]:
    text = normalize_loose_example_blocks(content.markdown)
    questions = {q.id: q for q in content.preguntasVerificacion}
    md = _markdown_renderer(content.glosario)
    rendered = []
    for block in split_blocks(text):
        kind = block["type"]
        if kind == "markdown":
            md.reset()
            rendered.append({
                "type": "html",
                "section_id": block["section_id"],
                "html": md.convert("\n".join(_callouts(block["source"].split("\n")))),
            })
        elif kind == "verification":
            question = parse_verification_block(block["source"], questions)
            if question is None:
                logger.info("Unparseable verification block in section %s", block["section_id"])
                rendered.append({"type": "error", "section_id": block["section_id"], "message": VERIFICATION_RENDER_ERROR})
            else:
                rendered.append({"type": "verification", "section_id": block["section_id"], "question": public_question(question)})
        else:
            data = parse_example_block(block["source"])
            if data is None:
                rendered.append({"type": "error", "section_id": block["section_id"], "message": EXAMPLE_RENDER_ERROR})
            else:
                rendered.append({"type": "example", "section_id": block["section_id"], "example": data})
    return {
        "sections": [asdict(s) for s in extract_sections(text)],
        "blocks": rendered,
        "glosario": [g.model_dump() for g in content.glosario],
    }


# Verification question state

@dataclass
class QuestionState:
    selectedOptionIds: List[str] = field(default_factory=list)
    answerText: Optional[str] = None
    status: str = "idle"
    feedback: Optional[str] = None
    suggestions: Optional[List[str]] = None


@dataclass
class QuestionResult:
    questionId: str
    status: str
    attempts: int


ShortAnswerEvaluator = Callable[[VerificationQuestion, str, Optional[LessonSection]], Awaitable[Optional[Dict[str, Any]]]]


class LessonSession:
    """Per-viewer state for the verification questions of one lesson."""

    def __init__(
        self,
        content: LessonContent,
        *,
        question_state: Optional[Dict[str, Dict[str, Any]]] = None,
        attempts: Optional[Dict[str, int]] = None,
        current_section_id: Optional[str] = None,
    ):
        self.content = content
        self.questions = collect_questions(content)
        self.sections = extract_sections(normalize_loose_example_blocks(content.markdown))
        self.question_state: Dict[str, QuestionState] = {
            qid: QuestionState(**{k: v for k, v in raw.items() if k in QuestionState.__dataclass_fields__})
            for qid, raw in (question_state or {}).items()
        }
        self.attempts: Dict[str, int] = dict(attempts or {})
        self.current_section_id = current_section_id

    def question(self, question_id: str) -> VerificationQuestion:
        try:
            return self.questions[question_id]
        except KeyError:
            raise KeyError(f"Unknown verification question: {question_id}") from None

    def state_for(self, question_id: str) -> QuestionState:
        return self.question_state.setdefault(question_id, QuestionState())

    def section(self, section_id: Optional[str]) -> Optional[LessonSection]:
        return next((s for s in self.sections if s.id == section_id), None)

    def set_current_section(self, section_id: Optional[str]) -> None:
        if section_id is not None and self.section(section_id) is None:
            raise KeyError(f"Unknown section: {section_id}")
        self.current_section_id = section_id

    def select_option(self, question_id: str, option_id: str, multi: Optional[bool] = None) -> QuestionState:
        question = self.question(question_id)
        if multi is None:
            multi = len(question.expected_answers()) > 1
        state = self.state_for(question_id)
        if multi:
            if option_id in state.selectedOptionIds:
                state.selectedOptionIds = [o for o in state.selectedOptionIds if o != option_id]
            else:
                state.selectedOptionIds = state.selectedOptionIds + [option_id]
        else:
            state.selectedOptionIds = [option_id]
        state.status = "idle"
        state.feedback = None
        state.suggestions = None
        return state

    def set_answer_text(self, question_id: str, text: str) -> QuestionState:
        self.question(question_id)
        state = self.state_for(question_id)
        state.answerText = text
        state.status = "idle"
        return state

    def _bump_attempts(self, question_id: str) -> int:
        self.attempts[question_id] = self.attempts.get(question_id, 0) + 1
        return self.attempts[question_id]

    def check_answer(self, question_id: str) -> Optional[QuestionResult]:
        """Grade the current selection; no-op without one."""
        question = self.question(question_id)
        state = self.state_for(question_id)
        selected = state.selectedOptionIds
        if not selected:
            return None
        attempts = self._bump_attempts(question_id)

        expected = question.expected_answers()
        if len(expected) > 1:
            correct = sorted(selected) == sorted(expected)
        else:
            correct = selected[0] in expected

        if correct:
            feedback = question.feedback.correcto
        else:
            per_option = next(
                (f.feedback for f in question.feedback.porOpcion if f.optionId and f.optionId in selected),
                None,
            )
            feedback = per_option or question.feedback.incorrecto or DEFAULT_FEEDBACK

        state.status = "correcto" if correct else "incorrecto"
        state.feedback = feedback
        state.suggestions = None
        return QuestionResult(question_id, state.status, attempts)

    async def submit_short_answer(self, question_id: str, evaluator: ShortAnswerEvaluator) -> Optional[QuestionResult]:
        question = self.question(question_id)
        state = self.state_for(question_id)
        answer = (state.answerText or "").strip()
        if not answer:
            return None
        attempts = self._bump_attempts(question_id)
        state.status = "checking"
        state.feedback = None
        state.suggestions = None

        try:
            result = await evaluator(question, answer, self.section(question.seccionId))
        except Exception:
            logger.exception("Short answer evaluation failed for question %s", question_id)
            state.status = "incorrecto"
            state.feedback = EVALUATION_FAILED
            return None

        if not result or result.get("score") not in RESULT_STATUSES:
            state.status = "incorrecto"
            state.feedback = EVALUATION_EMPTY
            return None

        state.status = result["score"]
        state.feedback = result.get("feedback") or ""
        state.suggestions = list(result.get("sugerencias") or [])
        return QuestionResult(question_id, state.status, attempts)

    def to_state(self) -> Dict[str, Any]:
        return {
            "questionState": {qid: asdict(s) for qid, s in self.question_state.items()},
            "attempts": dict(self.attempts),
            "currentSectionId": self.current_section_id,
        }

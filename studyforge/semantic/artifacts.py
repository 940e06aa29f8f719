"""Artifact types and their tolerant parsers.

Model output and stored artifact content are both loosely shaped JSON. Everything
that enters the package goes through the per-type parsers below, which default
missing fields and drop unusable items instead of raising.
"""
import math
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from studyforge.storage.models import ArtifactInsert

Section = Literal['FIEL', 'COMPLEMENTO']
ArtifactType = Literal['summary', 'content_map', 'flashcard', 'question']
StudyMode = Literal['faithful', 'deepened', 'exam']

ARTIFACT_TYPES = ('summary', 'content_map', 'flashcard', 'question')
STUDY_MODES = ('faithful', 'deepened', 'exam')
DEFAULT_MAP_TITLE = 'Mapa de Conteudo'
DEFAULT_DIFFICULTY_TAG = 'definition'


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _Grounded(_CamelModel):
    source_chunk_ids: List[int] = []
    is_complement: Optional[bool] = None
    section: Optional[Section] = None


class _Flaggable(_Grounded):
    not_found_in_material: Optional[bool] = None


class SummaryItem(_Flaggable):
    text: str


class MapTopic(_Grounded):
    title: str
    subtopics: List[str] = []


class ContentMap(_CamelModel):
    title: str = DEFAULT_MAP_TITLE
    topics: List[MapTopic] = []


class FlashcardItem(_Flaggable):
    front: str
    back: str
    difficulty_tag: str = DEFAULT_DIFFICULTY_TAG


class QuestionItem(_Flaggable):
    type: Literal['multiple_choice', 'open'] = 'multiple_choice'
    prompt: str
    options: List[str] = []
    answer_key: str = ''
    rationale_short: str = ''


class ArtifactBundle(_CamelModel):
    summary: List[SummaryItem] = []
    map: ContentMap = ContentMap()
    flashcards: List[FlashcardItem] = []
    questions: List[QuestionItem] = []

    def to_prompt_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# Stored content variants, one per artifact type

class SummaryContent(BaseModel):
    text: str
    section: Optional[Section] = None
    isComplement: bool = False
    notFoundInMaterial: bool = False


class ContentMapTopic(BaseModel):
    title: str
    subtopics: List[str] = []
    sourceChunkIds: List[int] = []
    section: Optional[Section] = None
    isComplement: bool = False


class ContentMapContent(BaseModel):
    title: str = DEFAULT_MAP_TITLE
    topics: List[ContentMapTopic] = []
    notFoundInMaterial: bool = False


class FlashcardContent(BaseModel):
    front: str
    back: str
    level: Optional[str] = None
    difficultyTag: Optional[str] = None
    section: Optional[Section] = None
    isComplement: bool = False
    notFoundInMaterial: bool = False


class QuestionContent(BaseModel):
    type: Literal['multiple_choice', 'open'] = 'multiple_choice'
    prompt: str
    question: str
    options: List[str] = []
    answerKey: str = ''
    correctAnswer: str = ''
    rationaleShort: str = ''
    justification: str = ''
    section: Optional[Section] = None
    isComplement: bool = False
    notFoundInMaterial: bool = False


ArtifactContent = Union[SummaryContent, ContentMapContent, FlashcardContent, QuestionContent]


# Coercion helpers

def as_object(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_string(value: Any, fallback: str = '') -> str:
    return value.strip() if isinstance(value, str) else fallback


def as_string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [s for s in (as_string(v) for v in value) if s]


def as_source_chunk_ids(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    seen = []
    for item in value:
        if isinstance(item, bool):
            continue
        try:
            num = float(item)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(num) or num <= 0:
            continue
        num = int(num)
        if num > 0 and num not in seen:
            seen.append(num)
    return seen


def as_section(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper()
    return normalized if normalized in ('FIEL', 'COMPLEMENTO') else None


def as_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _first_string(entry: Dict[str, Any], *keys: str, fallback: str = '') -> str:
    for key in keys:
        s = as_string(entry.get(key))
        if s:
            return s
    return fallback


def _grounding_fields(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'source_chunk_ids': as_source_chunk_ids(entry.get('sourceChunkIds')),
        'is_complement': as_bool(entry.get('isComplement')),
        'section': as_section(entry.get('section')),
    }


def parse_artifact_bundle(raw: Any) -> ArtifactBundle:
    parsed = as_object(raw)

    summary = []
    for item in parsed.get('summary') if isinstance(parsed.get('summary'), list) else []:
        entry = as_object(item)
        text = as_string(entry.get('text'))
        if not text:
            continue
        summary.append(SummaryItem(text=text, not_found_in_material=as_bool(entry.get('notFoundInMaterial')), **_grounding_fields(entry)))

    raw_map = as_object(parsed.get('map') if parsed.get('map') is not None else parsed.get('contentMap'))
    topics = []
    for topic in raw_map.get('topics') if isinstance(raw_map.get('topics'), list) else []:
        entry = as_object(topic)
        title = as_string(entry.get('title'))
        if not title:
            continue
        topics.append(MapTopic(title=title, subtopics=as_string_list(entry.get('subtopics')), **_grounding_fields(entry)))
    content_map = ContentMap(title=as_string(raw_map.get('title')) or DEFAULT_MAP_TITLE, topics=topics)

    flashcards = []
    for card in parsed.get('flashcards') if isinstance(parsed.get('flashcards'), list) else []:
        entry = as_object(card)
        front = as_string(entry.get('front'))
        back = as_string(entry.get('back'))
        if not front or not back:
            continue
        flashcards.append(FlashcardItem(
            front=front,
            back=back,
            difficulty_tag=_first_string(entry, 'difficultyTag', 'level', fallback=DEFAULT_DIFFICULTY_TAG),
            not_found_in_material=as_bool(entry.get('notFoundInMaterial')),
            **_grounding_fields(entry),
        ))

    questions = []
    for question in parsed.get('questions') if isinstance(parsed.get('questions'), list) else []:
        entry = as_object(question)
        prompt = _first_string(entry, 'prompt', 'question')
        if not prompt:
            continue
        questions.append(QuestionItem(
            type='open' if as_string(entry.get('type')) == 'open' else 'multiple_choice',
            prompt=prompt,
            options=as_string_list(entry.get('options')),
            answer_key=_first_string(entry, 'answerKey', 'correctAnswer'),
            rationale_short=_first_string(entry, 'rationaleShort', 'justification'),
            not_found_in_material=as_bool(entry.get('notFoundInMaterial')),
            **_grounding_fields(entry),
        ))

    return ArtifactBundle(summary=summary, map=content_map, flashcards=flashcards, questions=questions)


def to_db_artifacts(bundle: ArtifactBundle, document_id: int, mode: str, source_hash: str) -> List[ArtifactInsert]:
    """Map a grounded bundle to artifact rows. Expects ``validate_bundle_sources`` to have run."""
    rows: List[ArtifactInsert] = []

    def row(artifact_type: str, content: Dict[str, Any], source_ids: List[int]) -> ArtifactInsert:
        return ArtifactInsert(document_id=document_id, type=artifact_type, mode=mode, content=content,
                              source_chunk_ids=list(source_ids), source_hash=source_hash)

    for item in bundle.summary:
        rows.append(row('summary', {
            'text': item.text,
            'section': item.section,
            'isComplement': bool(item.is_complement),
            'notFoundInMaterial': bool(item.not_found_in_material),
        }, item.source_chunk_ids))

    if bundle.map.topics:
        map_source_ids = []
        for topic in bundle.map.topics:
            for cid in topic.source_chunk_ids:
                if cid not in map_source_ids:
                    map_source_ids.append(cid)
        rows.append(row('content_map', {
            'title': bundle.map.title,
            'topics': [t.model_dump(by_alias=True) for t in bundle.map.topics],
            'notFoundInMaterial': mode in ('faithful', 'exam') and not map_source_ids,
        }, map_source_ids))

    for card in bundle.flashcards:
        rows.append(row('flashcard', {
            'front': card.front,
            'back': card.back,
            'level': card.difficulty_tag,
            'difficultyTag': card.difficulty_tag,
            'section': card.section,
            'isComplement': bool(card.is_complement),
            'notFoundInMaterial': bool(card.not_found_in_material),
        }, card.source_chunk_ids))

    for q in bundle.questions:
        rows.append(row('question', {
            'type': q.type,
            'prompt': q.prompt,
            'question': q.prompt,
            'options': list(q.options),
            'answerKey': q.answer_key,
            'correctAnswer': q.answer_key,
            'rationaleShort': q.rationale_short,
            'justification': q.rationale_short,
            'section': q.section,
            'isComplement': bool(q.is_complement),
            'notFoundInMaterial': bool(q.not_found_in_material),
        }, q.source_chunk_ids))

    return rows


def _decode_summary(c: Dict[str, Any]) -> Optional[SummaryContent]:
    text = c.get('text') if isinstance(c.get('text'), str) else ''
    if not text.strip():
        return None
    return SummaryContent(text=text, section=as_section(c.get('section')),
                          isComplement=bool(c.get('isComplement')), notFoundInMaterial=bool(c.get('notFoundInMaterial')))


def _decode_content_map(c: Dict[str, Any]) -> Optional[ContentMapContent]:
    topics = []
    for raw in c.get('topics') if isinstance(c.get('topics'), list) else []:
        t = as_object(raw)
        title = t.get('title')
        if not isinstance(title, str) or not title.strip():
            continue
        topics.append(ContentMapTopic(
            title=title,
            subtopics=[s for s in t.get('subtopics', []) if isinstance(s, str)] if isinstance(t.get('subtopics'), list) else [],
            sourceChunkIds=as_source_chunk_ids(t.get('sourceChunkIds')),
            section=as_section(t.get('section')),
            isComplement=bool(t.get('isComplement')),
        ))
    title = c.get('title') if isinstance(c.get('title'), str) else DEFAULT_MAP_TITLE
    return ContentMapContent(title=title, topics=topics, notFoundInMaterial=bool(c.get('notFoundInMaterial')))


def _decode_flashcard(c: Dict[str, Any]) -> Optional[FlashcardContent]:
    front = c.get('front') if isinstance(c.get('front'), str) else ''
    back = c.get('back') if isinstance(c.get('back'), str) else ''
    if not front.strip() or not back.strip():
        return None
    return FlashcardContent(
        front=front,
        back=back,
        level=c.get('level') if isinstance(c.get('level'), str) else None,
        difficultyTag=c.get('difficultyTag') if isinstance(c.get('difficultyTag'), str) else None,
        section=as_section(c.get('section')),
        isComplement=bool(c.get('isComplement')),
        notFoundInMaterial=bool(c.get('notFoundInMaterial')),
    )


def _decode_question(c: Dict[str, Any]) -> Optional[QuestionContent]:
    question = c.get('question') if isinstance(c.get('question'), str) else c.get('prompt')
    if not isinstance(question, str) or not question.strip():
        return None
    prompt = c.get('prompt') if isinstance(c.get('prompt'), str) else question
    answer = c.get('correctAnswer') if isinstance(c.get('correctAnswer'), str) else as_string(c.get('answerKey'))
    rationale = c.get('justification') if isinstance(c.get('justification'), str) else as_string(c.get('rationaleShort'))
    return QuestionContent(
        type='open' if c.get('type') == 'open' else 'multiple_choice',
        prompt=prompt,
        question=question,
        options=[o for o in c.get('options', []) if isinstance(o, str)] if isinstance(c.get('options'), list) else [],
        answerKey=as_string(c.get('answerKey'), answer) or answer,
        correctAnswer=answer,
        rationaleShort=as_string(c.get('rationaleShort'), rationale) or rationale,
        justification=rationale,
        section=as_section(c.get('section')),
        isComplement=bool(c.get('isComplement')),
        notFoundInMaterial=bool(c.get('notFoundInMaterial')),
    )


_DECODERS = {
    'summary': _decode_summary,
    'content_map': _decode_content_map,
    'flashcard': _decode_flashcard,
    'question': _decode_question,
}


def decode_artifact_content(artifact_type: str, content: Any) -> Optional[ArtifactContent]:
    decoder = _DECODERS.get(artifact_type)
    if decoder is None or not isinstance(content, dict):
        return None
    return decoder(content)

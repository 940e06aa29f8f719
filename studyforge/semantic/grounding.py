"""Source grounding policy for generated artifacts.

Every item ends up with a section (FIEL or COMPLEMENTO), only cites chunk ids
that really exist, and is flagged ``not_found_in_material`` when it needed a
citation and has none. Ungrounded content is labelled, never rejected.
"""
from typing import Iterable, List, Set

from studyforge.semantic.artifacts import ArtifactBundle, ContentMap

FIEL = 'FIEL'
COMPLEMENTO = 'COMPLEMENTO'


def normalize_item_section(is_complement, section) -> str:
    if section:
        return section
    return COMPLEMENTO if is_complement else FIEL


def normalize_source_ids(source_ids: Iterable[int], valid_chunk_ids: Set[int]) -> List[int]:
    return [i for i in source_ids if i in valid_chunk_ids]


def require_source_for_item(mode: str, section: str) -> bool:
    return not (mode == 'deepened' and section == COMPLEMENTO)


def _ground(item, valid_chunk_ids: Set[int], mode: str):
    section = normalize_item_section(item.is_complement, item.section)
    source_ids = normalize_source_ids(item.source_chunk_ids, valid_chunk_ids)
    return item.model_copy(update={
        'section': section,
        'is_complement': section == COMPLEMENTO,
        'source_chunk_ids': source_ids,
        'not_found_in_material': require_source_for_item(mode, section) and not source_ids,
    })


def validate_bundle_sources(bundle: ArtifactBundle, valid_chunk_ids: Iterable[int], mode: str) -> ArtifactBundle:
    valid = set(valid_chunk_ids)
    topics = []
    for topic in bundle.map.topics:
        section = normalize_item_section(topic.is_complement, topic.section)
        topics.append(topic.model_copy(update={
            'section': section,
            'is_complement': section == COMPLEMENTO,
            'source_chunk_ids': normalize_source_ids(topic.source_chunk_ids, valid),
        }))
    return ArtifactBundle(
        summary=[_ground(i, valid, mode) for i in bundle.summary],
        map=ContentMap(title=bundle.map.title, topics=topics),
        flashcards=[_ground(i, valid, mode) for i in bundle.flashcards],
        questions=[_ground(i, valid, mode) for i in bundle.questions],
    )

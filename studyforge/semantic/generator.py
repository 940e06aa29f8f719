"""Two pass artifact generation.

A fast model drafts the whole bundle from the labelled chunks; a strict model
then re-checks the draft against the same material. If the strict pass fails
for any reason the draft is kept.
"""
import json
import time
from typing import List, Optional, Sequence

from pydantic import BaseModel

from studyforge.config import get_settings
from studyforge.semantic.artifacts import ArtifactBundle, STUDY_MODES, parse_artifact_bundle
from studyforge.semantic.llm_client import LLMClient
from studyforge.semantic.response_parser import first_message_content, safe_json_parse
from studyforge.storage.models import Chunk
from studyforge.utils import get_logger

LOG = get_logger()

OUTPUT_SCHEMA = """{
  "summary": [
    { "text": "string", "sourceChunkIds": [1], "section": "FIEL|COMPLEMENTO", "isComplement": false, "notFoundInMaterial": false }
  ],
  "map": {
    "title": "string",
    "topics": [
      { "title": "string", "subtopics": ["string"], "sourceChunkIds": [1], "section": "FIEL|COMPLEMENTO", "isComplement": false }
    ]
  },
  "flashcards": [
    { "front": "string", "back": "string", "difficultyTag": "definition|cause_effect|comparison|example|trick", "sourceChunkIds": [1], "section": "FIEL|COMPLEMENTO", "isComplement": false, "notFoundInMaterial": false }
  ],
  "questions": [
    { "type": "multiple_choice|open", "prompt": "string", "options": ["A","B","C","D"], "answerKey": "string", "rationaleShort": "string", "sourceChunkIds": [1], "section": "FIEL|COMPLEMENTO", "isComplement": false, "notFoundInMaterial": false }
  ]
}"""

MIN_SUMMARY_ITEMS = 5
MIN_MAP_TOPICS = 3
MIN_FLASHCARDS = 10
MIN_QUESTIONS = 10


class GenerationError(Exception):
    pass


class GenerationResult(BaseModel):
    bundle: ArtifactBundle
    validated: bool


def mode_instruction(mode: str) -> str:
    if mode == 'faithful':
        return '\n'.join([
            'Use only the material in the chunks.',
            'Every item must carry valid sourceChunkIds.',
            'When the material does not support an item, set notFoundInMaterial=true and sourceChunkIds=[].',
            'Do not invent facts.',
        ])
    if mode == 'exam':
        return '\n'.join([
            'Use only the material in the chunks, focusing on how it is asked in exams.',
            'Every item must carry valid sourceChunkIds.',
            'Multiple choice questions must have 4 plausible options.',
            'When the material does not support an item, set notFoundInMaterial=true and sourceChunkIds=[].',
        ])
    return '\n'.join([
        "Explicitly separate FIEL and COMPLEMENTO items using section: 'FIEL'|'COMPLEMENTO'.",
        'FIEL items must carry valid sourceChunkIds.',
        'COMPLEMENTO items may have empty sourceChunkIds.',
        'Never mix complementary claims into items marked FIEL.',
    ])


def build_chunk_material(chunks: Sequence[Chunk]) -> str:
    return '\n\n'.join(f'[CHUNK_{c.id}]\n{c.text_content}' for c in chunks)


class ArtifactGenerator:
    def __init__(self, llm=None, output_language: Optional[str] = None):
        self._llm = llm
        self.output_language = output_language or get_settings().STUDY_OUTPUT_LANGUAGE

    @property
    def llm(self):
        if self._llm is None:
            self._llm = LLMClient.get_instance()
        return self._llm

    def _draft_messages(self, mode: str, chunks: Sequence[Chunk]) -> List[dict]:
        prompt = (
            f'MODE: {mode}\n\n'
            f'INSTRUCTIONS:\n{mode_instruction(mode)}\n\n'
            f'MATERIAL:\n{build_chunk_material(chunks)}\n\n'
            f'Return ONLY valid JSON in this format:\n{OUTPUT_SCHEMA}\n\n'
            'Minimum quantities:\n'
            f'- {MIN_SUMMARY_ITEMS} items in summary\n'
            f'- {MIN_MAP_TOPICS} topics in map\n'
            f'- {MIN_FLASHCARDS} flashcards\n'
            f'- {MIN_QUESTIONS} questions\n'
        )
        return [
            {'role': 'system', 'content': (
                f'You are an expert educator. Always answer in {self.output_language} and only with valid JSON.'
            )},
            {'role': 'user', 'content': prompt},
        ]

    def _validation_messages(self, mode: str, chunks: Sequence[Chunk], draft: ArtifactBundle) -> List[dict]:
        prompt = (
            'Validate and correct the artifacts against the material.\n\n'
            'RULES:\n'
            '- Every sourceChunkIds entry must exist in the material.\n'
            '- Items with section=FIEL must be supported only by the chunks they cite.\n'
            '- Without evidence in the material, set notFoundInMaterial=true and sourceChunkIds=[].\n'
            '- In deepened mode, section=COMPLEMENTO may have sourceChunkIds=[].\n'
            f'- Keep the structure and keep the language ({self.output_language}).\n\n'
            f'MODE: {mode}\n\n'
            f'MATERIAL:\n{build_chunk_material(chunks)}\n\n'
            f'DRAFT_ARTIFACTS:\n{json.dumps(draft.to_prompt_json(), ensure_ascii=False)}\n\n'
            'Return ONLY valid JSON in the same format as the input.'
        )
        return [
            {'role': 'system', 'content': 'You are a rigorous factual fidelity reviewer. Answer only with valid JSON.'},
            {'role': 'user', 'content': prompt},
        ]

    def draft(self, mode: str, chunks: Sequence[Chunk], request_id: Optional[str] = None) -> ArtifactBundle:
        resp = self.llm.invoke(
            self._draft_messages(mode, chunks),
            profile='fast',
            mode=mode,
            response_format={'type': 'json_object'},
            request_id=request_id,
        )
        return parse_artifact_bundle(safe_json_parse(first_message_content(resp)))

    def validate(self, mode: str, chunks: Sequence[Chunk], draft: ArtifactBundle, request_id: Optional[str] = None) -> ArtifactBundle:
        resp = self.llm.invoke(
            self._validation_messages(mode, chunks, draft),
            profile='strict',
            mode=mode,
            response_format={'type': 'json_object'},
            request_id=request_id,
        )
        return parse_artifact_bundle(safe_json_parse(first_message_content(resp)))

    def generate(self, chunks: Sequence[Chunk], mode: str, request_id: Optional[str] = None) -> GenerationResult:
        if mode not in STUDY_MODES:
            raise GenerationError(f'Unknown mode: {mode}')
        if not chunks:
            raise GenerationError('No chunks to generate from')

        start = time.time()
        draft = self.draft(mode, chunks, request_id=request_id)
        LOG.info('artifact_draft_ready', extra={
            'mode': mode,
            'summary': len(draft.summary),
            'flashcards': len(draft.flashcards),
            'questions': len(draft.questions),
            'duration_ms': int((time.time() - start) * 1000),
        })

        try:
            validated = self.validate(mode, chunks, draft, request_id=request_id)
        except Exception as e:
            LOG.warning('artifact_validation_fallback', extra={'mode': mode, 'error': str(e)})
            return GenerationResult(bundle=draft, validated=False)
        return GenerationResult(bundle=validated, validated=True)

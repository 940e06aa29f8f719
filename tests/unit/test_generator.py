import pytest

from studyforge.semantic.generator import ArtifactGenerator, GenerationError, build_chunk_material, mode_instruction
from studyforge.semantic.llm_client import LLMAPIError
from studyforge.semantic.response_parser import ResponseParseError
from studyforge.storage.models import Chunk
from tests.fixtures.mock_llm import FakeLLM
from tests.fixtures.sample_data import bundle_payload

pytestmark = pytest.mark.unit

CHUNKS = [
    Chunk(id=7, document_id=1, chunk_order=0, text_content='Chlorophyll absorbs light.', start_offset=0, end_offset=26),
    Chunk(id=8, document_id=1, chunk_order=1, text_content='RuBisCO fixes carbon.', start_offset=20, end_offset=41),
]


def test_build_chunk_material_labels_chunks():
    material = build_chunk_material(CHUNKS)
    assert material == '[CHUNK_7]\nChlorophyll absorbs light.\n\n[CHUNK_8]\nRuBisCO fixes carbon.'


def test_mode_instructions_differ():
    assert 'COMPLEMENTO' in mode_instruction('deepened')
    assert 'exam' in mode_instruction('exam')
    assert mode_instruction('faithful') != mode_instruction('exam')


def test_generate_drafts_then_validates():
    draft = bundle_payload([7], flashcards=2)
    validated = bundle_payload([8], flashcards=3)
    llm = FakeLLM([draft, validated])
    gen = ArtifactGenerator(llm=llm, output_language='English')

    result = gen.generate(CHUNKS, 'faithful')

    assert result.validated is True
    assert len(result.bundle.flashcards) == 3
    assert result.bundle.flashcards[0].source_chunk_ids == [8]
    assert llm.profiles() == ['fast', 'strict']
    assert all(c['response_format'] == {'type': 'json_object'} for c in llm.calls)
    assert all(c['mode'] == 'faithful' for c in llm.calls)

    draft_prompt = llm.calls[0]['messages'][1]['content']
    assert '[CHUNK_7]' in draft_prompt and '[CHUNK_8]' in draft_prompt
    assert 'English' in llm.calls[0]['messages'][0]['content']
    assert 'DRAFT_ARTIFACTS' in llm.calls[1]['messages'][1]['content']
    assert 'Question 1?' in llm.calls[1]['messages'][1]['content']


def test_fenced_draft_is_accepted():
    fenced = '```json\n{"summary": [{"text": "fenced", "sourceChunkIds": [7]}]}\n```'
    llm = FakeLLM([fenced, fenced])
    result = ArtifactGenerator(llm=llm, output_language='English').generate(CHUNKS, 'exam')
    assert [s.text for s in result.bundle.summary] == ['fenced']


@pytest.mark.parametrize('failure', ['this is not json', LLMAPIError('strict model down')])
def test_validation_failure_keeps_draft(failure):
    draft = bundle_payload([7], flashcards=4)
    llm = FakeLLM([draft, failure])
    result = ArtifactGenerator(llm=llm, output_language='English').generate(CHUNKS, 'deepened')

    assert result.validated is False
    assert len(result.bundle.flashcards) == 4
    assert len(llm.calls) == 2


def test_draft_failure_propagates():
    llm = FakeLLM(['garbage'])
    with pytest.raises(ResponseParseError):
        ArtifactGenerator(llm=llm, output_language='English').generate(CHUNKS, 'faithful')
    assert len(llm.calls) == 1


def test_generate_rejects_bad_input():
    gen = ArtifactGenerator(llm=FakeLLM(), output_language='English')
    with pytest.raises(GenerationError):
        gen.generate(CHUNKS, 'cram')
    with pytest.raises(GenerationError):
        gen.generate([], 'faithful')

import pytest

from geo_core.config_manager import ConfigManager
from geo_core.retrieval.ingest import (
    GuidelineIngestor,
    chunk_text,
    detect_language,
    detect_section,
    preprocess_markdown,
    split_by_headings,
)

PLAYBOOK_MD = """# Samsung Marketing Playbook

Intro paragraph about how to use this playbook for every campaign and channel.

## Tone of Voice

Confident, approachable and clear. **Never** arrogant. See [the guide](https://example.com).

### Do and don't

Use plain words and short sentences.

## AI Content Guide

Structure answers as Q&A so AI search engines can quote them.
"""


def test_preprocess_markdown():
    text = preprocess_markdown("# Title\n\n**Bold** and *italic* with `code` and [link](http://x)\n\n---\n")

    assert "Title" in text
    assert "Bold and italic with code and link" in text
    assert "**" not in text
    assert "http://x" not in text
    assert "---" not in text


def test_short_text_is_one_chunk():
    assert chunk_text("short guideline") == ["short guideline"]
    assert chunk_text("   ") == []


def test_long_text_is_split_with_overlap():
    paragraph = "Sentence about brand voice and tone. " * 10
    text = "\n\n".join([paragraph.strip()] * 8)

    chunks = chunk_text(text, max_chunk_size=1000, overlap=200, min_chunk_size=100)

    assert len(chunks) > 1
    assert all(len(chunk) <= 1000 for chunk in chunks)
    # consecutive chunks share text
    assert chunks[0][-50:] in chunks[1] or chunks[1][:50] in chunks[0]
    assert chunks[-1].endswith(paragraph.strip()[-40:])


def test_chunking_always_terminates():
    text = "x" * 5000
    chunks = chunk_text(text, max_chunk_size=1000, overlap=200, min_chunk_size=100)

    assert chunks
    assert "".join(chunks).count("x") >= 5000


def test_detect_language():
    assert detect_language("Samsung brand guidelines") == "en"
    assert detect_language("삼성 브랜드 가이드라인입니다") == "ko"
    assert detect_language("") == "en"


def test_detect_section():
    assert detect_section("Tone of Voice") == "tone_voice"
    assert detect_section("12. 톤앤매너 가이드") == "tone_voice"
    assert detect_section("AI Content Guide") == "ai_content_guide"
    assert detect_section("Instagram tips") == "channel_playbook"
    assert detect_section("Miscellaneous", "nothing relevant here") == "other"


def test_split_by_headings():
    parts = split_by_headings(PLAYBOOK_MD)
    headings = [heading for heading, _ in parts]

    assert headings == ["Samsung Marketing Playbook", "Tone of Voice", "Do and don't", "AI Content Guide"]


@pytest.fixture
def config_manager():
    return ConfigManager.from_defaults()


def test_build_chunks_assigns_sections(config_manager, mocker):
    ingestor = GuidelineIngestor(config_manager, mocker.Mock())
    chunks = ingestor.build_chunks(PLAYBOOK_MD, "playbook", product_category="smartphone")

    sections = [chunk.metadata["section"] for chunk in chunks]
    assert "tone_voice" in sections
    assert "ai_content_guide" in sections

    do_dont = next(chunk for chunk in chunks if chunk.content.startswith("Use plain words"))
    # an unknown sub-heading inherits the enclosing section
    assert do_dont.metadata["section"] == "tone_voice"
    assert do_dont.metadata["section_title"] == "Do and don't"
    assert all(chunk.metadata["product_category"] == "smartphone" for chunk in chunks)
    assert [chunk.metadata["chunk_index"] for chunk in chunks] == list(range(len(chunks)))


def test_chunk_ids_are_stable(config_manager, mocker):
    ingestor = GuidelineIngestor(config_manager, mocker.Mock())

    first = [chunk.id for chunk in ingestor.build_chunks(PLAYBOOK_MD, "playbook")]
    second = [chunk.id for chunk in ingestor.build_chunks(PLAYBOOK_MD, "playbook")]

    assert first == second
    assert len(set(first)) == len(first)


def test_ingest_file(config_manager, mocker, tmp_path):
    index = mocker.Mock()
    index.add_chunks.side_effect = lambda chunks: len(chunks)
    path = tmp_path / "playbook.md"
    path.write_text(PLAYBOOK_MD, encoding="utf-8")

    added = GuidelineIngestor(config_manager, index).ingest_file(str(path))

    assert added == len(index.add_chunks.call_args.args[0])
    assert added > 0


def test_ingest_missing_file(config_manager, mocker):
    with pytest.raises(FileNotFoundError):
        GuidelineIngestor(config_manager, mocker.Mock()).ingest_file("missing.md")

import hashlib
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from geo_core.config_manager import ConfigManager
from geo_core.grounding.sections import SECTION_TITLES

_HANGUL = re.compile(r"[가-힯ᄀ-ᇿ㄰-㆏]")
_HEADING = re.compile(r"^(#{1,3})\s+(.+?)\s*#*\s*$", re.MULTILINE)
_SENTENCE_ENDINGS = (". ", "! ", "? ", ".\n", "!\n", "?\n", "。", "！", "？")

SECTION_KEYWORDS: Dict[str, List[str]] = {
    "tone_voice": ["tone", "voice", "writing style", "톤앤매너", "문체"],
    "ai_content_guide": ["geo", "generative", "ai search", "aeo", "chatgpt", "perplexity"],
    "brand_core": ["brand", "logo", "identity", "브랜드"],
    "target_audience": ["target", "audience", "persona", "타겟", "오디언스"],
    "messaging_framework": ["messaging", "key message", "메시지"],
    "channel_playbook": ["instagram", "youtube", "tiktok", "channel", "채널"],
    "creative_guidelines": ["visual", "image", "photo", "비주얼", "이미지"],
    "failure_patterns": ["no-go", "avoid", "mistake", "실패"],
    "content_strategy": ["strategy", "campaign", "전략", "캠페인"],
    "content_type_playbook": ["content type", "format", "review", "unboxing", "콘텐츠 유형"],
    "pre_publish_checklist": ["checklist", "체크리스트"],
}


class GuidelineChunk(BaseModel):
    """A piece of guideline text ready for the index."""

    id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


def preprocess_markdown(markdown: str) -> str:
    """Reduces Markdown to plain text while keeping paragraph breaks."""
    text = re.sub(r"```[\s\S]*?```", "[code block]", markdown)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"^#{1,6}\s+(.+)$", r"\n\1\n", text, flags=re.MULTILINE)
    text = re.sub(r"^[-*_]{3,}$", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    text = re.sub(r"__([^_]+)__", r"\1", text)
    text = re.sub(r"!\[([^\]]*)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _sentence_break(text: str, start: int, end: int) -> int:
    best = -1
    for ending in _SENTENCE_ENDINGS:
        position = text.rfind(ending, 0, end)
        if position > start and position + len(ending) > best:
            best = position + len(ending)
    return best


def chunk_text(
    text: str,
    max_chunk_size: int = 1000,
    overlap: int = 200,
    min_chunk_size: int = 100,
) -> List[str]:
    """
    Splits text into overlapping chunks, preferring paragraph breaks and
    then sentence breaks as cut points.
    """
    normalized = text.replace("\r\n", "\n").strip()
    if not normalized:
        return []
    if len(normalized) <= max_chunk_size:
        return [normalized]

    chunks: List[str] = []
    position = 0
    while position < len(normalized):
        end = min(position + max_chunk_size, len(normalized))

        if end < len(normalized):
            paragraph = normalized.rfind("\n\n", 0, end)
            if paragraph > position + min_chunk_size:
                end = paragraph + 2
            else:
                sentence = _sentence_break(normalized, position, end)
                if sentence > position + min_chunk_size:
                    end = sentence

        content = normalized[position:end].strip()
        if len(content) >= min_chunk_size or end >= len(normalized):
            if content:
                chunks.append(content)

        if end >= len(normalized):
            break

        next_position = end - overlap
        # Always move forward
        position = next_position if next_position > position else end

    return chunks


def detect_language(text: str) -> str:
    letters = re.sub(r"\s", "", text)
    if not letters:
        return "en"
    return "ko" if len(_HANGUL.findall(letters)) / len(letters) > 0.2 else "en"


def detect_section(heading: str, content: str = "") -> str:
    title = re.sub(r"^\d+[.)]\s*", "", heading.strip()).lower()
    if title in SECTION_TITLES:
        return SECTION_TITLES[title]

    haystack = f"{title} {content[:500].lower()}"
    for section, keywords in SECTION_KEYWORDS.items():
        if any(keyword in haystack for keyword in keywords):
            return section
    return "other"


def split_by_headings(markdown: str) -> List[Tuple[str, str]]:
    """Returns (heading, body) pairs. Text before the first heading gets an empty heading."""
    matches = list(_HEADING.finditer(markdown))
    if not matches:
        return [("", markdown)]

    parts = []
    if markdown[: matches[0].start()].strip():
        parts.append(("", markdown[: matches[0].start()]))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(markdown)
        parts.append((match.group(2).strip(), markdown[match.end():end]))
    return parts


class GuidelineIngestor:
    """Turns guideline Markdown files into indexed chunks."""

    def __init__(self, config_manager: ConfigManager, index: Any):
        self.cfg = config_manager.retrieval
        self.index = index

    def build_chunks(self, text: str, document_id: str, product_category: str = "all") -> List[GuidelineChunk]:
        chunks: List[GuidelineChunk] = []
        current_section: Optional[str] = None

        for heading, body in split_by_headings(text):
            plain = preprocess_markdown(body)
            if not plain:
                continue

            section = detect_section(heading, plain) if heading else (current_section or "playbook_overview")
            # Sub-headings without a known title stay in the enclosing section
            if heading and section == "other" and current_section:
                section = current_section
            current_section = section

            for piece in chunk_text(plain, self.cfg.chunk_size, self.cfg.chunk_overlap, self.cfg.min_chunk_size):
                index = len(chunks)
                digest = hashlib.sha256(f"{document_id}:{index}:{piece}".encode("utf-8")).hexdigest()[:24]
                chunks.append(
                    GuidelineChunk(
                        id=f"{document_id}-{digest}",
                        content=piece,
                        metadata={
                            "section": section,
                            "section_title": heading or section,
                            "product_category": product_category,
                            "language": detect_language(piece),
                            "document_id": document_id,
                            "chunk_index": index,
                        },
                    )
                )
        return chunks

    def ingest_file(self, path: str, product_category: str = "all") -> int:
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Guideline file not found: {file_path}")

        text = file_path.read_text(encoding="utf-8")
        document_id = file_path.stem
        chunks = self.build_chunks(text, document_id, product_category)
        if not chunks:
            logger.warning(f"No content extracted from {file_path}")
            return 0

        added = self.index.add_chunks(chunks)
        logger.success(f"Ingested {added} chunks from {file_path.name}")
        return added

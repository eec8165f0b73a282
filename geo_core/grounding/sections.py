from typing import Dict, Iterable, List, Optional

from geo_core.generation.models import GroundingSignal

# Chapters of the brand playbook, in document order
PLAYBOOK_SECTIONS = (
    "playbook_overview",
    "brand_core",
    "target_audience",
    "messaging_framework",
    "tone_voice",
    "content_strategy",
    "content_type_playbook",
    "channel_playbook",
    "creative_guidelines",
    "production_process",
    "measurement_optimization",
    "failure_patterns",
    "ai_content_guide",
    "partner_guidelines",
    "pre_publish_checklist",
    "other",
)

AI_CONTENT_GUIDE = "ai_content_guide"

# Heading text (English or Korean) -> section id
SECTION_TITLES: Dict[str, str] = {
    "playbook overview": "playbook_overview",
    "플레이북 개요": "playbook_overview",
    "brand core": "brand_core",
    "브랜드 핵심 정의": "brand_core",
    "target audience": "target_audience",
    "타겟 오디언스 & 인사이트": "target_audience",
    "messaging framework": "messaging_framework",
    "브랜드 메시지 구조": "messaging_framework",
    "tone of voice": "tone_voice",
    "톤앤매너 가이드": "tone_voice",
    "content strategy": "content_strategy",
    "콘텐츠 전략 프레임": "content_strategy",
    "content types": "content_type_playbook",
    "콘텐츠 유형별 가이드": "content_type_playbook",
    "channels": "channel_playbook",
    "채널별 운영 가이드": "channel_playbook",
    "creative guidelines": "creative_guidelines",
    "크리에이티브 가이드": "creative_guidelines",
    "production process": "production_process",
    "콘텐츠 제작 프로세스": "production_process",
    "measurement": "measurement_optimization",
    "성과 측정 & 개선": "measurement_optimization",
    "failure patterns": "failure_patterns",
    "실패 사례 & no-go": "failure_patterns",
    "ai content guide": "ai_content_guide",
    "ai 콘텐츠 가이드": "ai_content_guide",
    "partner guidelines": "partner_guidelines",
    "외부 파트너 가이드": "partner_guidelines",
    "pre-publish checklist": "pre_publish_checklist",
    "발행 전 체크리스트": "pre_publish_checklist",
}

# Intent term -> playbook sections that address it
INTENT_TO_SECTIONS: Dict[str, List[str]] = {
    # features
    "camera": ["content_type_playbook", "channel_playbook", "creative_guidelines"],
    "battery": ["brand_core", "content_type_playbook", "tone_voice"],
    "display": ["creative_guidelines", "content_type_playbook", "brand_core"],
    "screen": ["creative_guidelines", "content_type_playbook", "brand_core"],
    "performance": ["brand_core", "content_type_playbook", "ai_content_guide"],
    "ai": ["ai_content_guide", "content_type_playbook", "brand_core"],
    "galaxy ai": ["ai_content_guide", "content_type_playbook", "brand_core"],
    "design": ["creative_guidelines", "brand_core", "tone_voice"],
    "charging": ["content_type_playbook", "brand_core", "channel_playbook"],
    "storage": ["content_type_playbook", "brand_core"],
    # sentiment and comparison
    "price": ["brand_core", "messaging_framework", "tone_voice"],
    "comparison": ["brand_core", "messaging_framework", "tone_voice"],
    "vs": ["brand_core", "messaging_framework", "tone_voice"],
    "problem": ["failure_patterns", "messaging_framework", "tone_voice"],
    "worth it": ["messaging_framework", "brand_core", "tone_voice"],
    # content formats
    "review": ["content_type_playbook", "channel_playbook", "content_strategy"],
    "unboxing": ["content_type_playbook", "channel_playbook", "creative_guidelines"],
    "test": ["content_type_playbook", "content_strategy", "channel_playbook"],
    # Korean
    "카메라": ["content_type_playbook", "channel_playbook", "creative_guidelines"],
    "배터리": ["brand_core", "content_type_playbook", "tone_voice"],
    "디스플레이": ["creative_guidelines", "content_type_playbook", "brand_core"],
    "성능": ["brand_core", "content_type_playbook", "ai_content_guide"],
    "가격": ["brand_core", "messaging_framework", "tone_voice"],
    "디자인": ["creative_guidelines", "brand_core", "tone_voice"],
    "충전": ["content_type_playbook", "brand_core", "channel_playbook"],
    "비교": ["brand_core", "messaging_framework", "tone_voice"],
    "리뷰": ["content_type_playbook", "channel_playbook", "content_strategy"],
}


class SectionRelevanceMapper:
    """Ranks playbook sections by the grounding signals that point at them."""

    def __init__(self, table: Optional[Dict[str, List[str]]] = None, top_n: int = 5):
        self.table = table if table is not None else INTENT_TO_SECTIONS
        self.top_n = top_n

    def sections_for(self, term: str) -> List[str]:
        return self.table.get(term) or self.table.get(term.strip().lower()) or []

    def map_sections(self, signals: Iterable[GroundingSignal], top_n: Optional[int] = None) -> List[str]:
        """
        Sums signal scores per section and returns the best sections first.

        An empty result means grounding gives no section bias.
        """
        limit = self.top_n if top_n is None else top_n
        totals: Dict[str, int] = {}
        for signal in signals:
            for section in self.sections_for(signal.term):
                totals[section] = totals.get(section, 0) + signal.score

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [section for section, _ in ranked[:limit]]


def map_sections(signals: Iterable[GroundingSignal], top_n: int = 5) -> List[str]:
    return SectionRelevanceMapper(top_n=top_n).map_sections(signals)

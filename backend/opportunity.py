"""
Opportunity detection
Reads the signals attached to a completed block and recommends where to lean in
"""

from dataclasses import dataclass, field, asdict
from typing import List, Optional

from backend.models import OpportunityContext

HIGH_ENGAGEMENT = 8

NATURAL_TALENT = "natural_talent_indicator"
SERENDIPITY = "serendipitous_discovery"
EXTERNAL_VALIDATION = "external_validation"
VIRAL_POTENTIAL = "viral_potential"

PATH_RECOMMENDATIONS = {
    "accelerated_professional_path": "Focus on professional networking and content creation",
    "exploration_amplification_path": "Deep dive into discovered talents and interests",
    "networking_focus_path": "Prioritize building professional connections",
    "breakthrough_deepening_path": "Deepen mastery in breakthrough areas",
    "continue_planned_path": "Continue with planned learning sequence",
}


@dataclass
class Opportunity:
    type: str
    message: str
    action: str


@dataclass
class OpportunityAnalysis:
    detected: bool
    opportunities: List[Opportunity] = field(default_factory=list)
    recommended_path: str = "continue_planned_path"

    def to_dict(self):
        return asdict(self)


def detect_opportunities(context: Optional[OpportunityContext]) -> Optional[OpportunityAnalysis]:
    """None when the block carried no opportunity context"""
    if context is None:
        return None

    opportunities = []

    if context.engagement_level >= HIGH_ENGAGEMENT:
        opportunities.append(Opportunity(
            type=NATURAL_TALENT,
            message=f"🌟 High engagement detected ({context.engagement_level}/10)! This suggests natural aptitude.",
            action="Consider doubling down on this area and exploring advanced techniques.",
        ))

    if context.unexpected_results:
        opportunities.append(Opportunity(
            type=SERENDIPITY,
            message=f"🔍 Unexpected discoveries: {', '.join(context.unexpected_results)}",
            action="These discoveries could open new pathways - explore them further.",
        ))

    positive = context.positive_feedback
    if positive:
        opportunities.append(Opportunity(
            type=EXTERNAL_VALIDATION,
            message=f"👥 Received {len(positive)} positive feedback responses",
            action="This external validation suggests market potential - consider networking.",
        ))

    if context.viral_potential:
        opportunities.append(Opportunity(
            type=VIRAL_POTENTIAL,
            message="🚀 Content has viral potential detected",
            action="Create more content in this style and engage with the audience.",
        ))

    return OpportunityAnalysis(
        detected=bool(opportunities),
        opportunities=opportunities,
        recommended_path=recommend_opportunity_path([o.type for o in opportunities]),
    )


def recommend_opportunity_path(types: List[str]) -> str:
    if not types:
        return "continue_planned_path"
    if VIRAL_POTENTIAL in types and EXTERNAL_VALIDATION in types:
        return "accelerated_professional_path"
    if NATURAL_TALENT in types and SERENDIPITY in types:
        return "exploration_amplification_path"
    if EXTERNAL_VALIDATION in types:
        return "networking_focus_path"
    return "breakthrough_deepening_path"


def get_path_recommendation_text(path_type: str) -> str:
    return PATH_RECOMMENDATIONS.get(path_type, "Continue planned learning")

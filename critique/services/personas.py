"""Per-persona prompt and feedback parameters.

Every Persona member must have a profile; a missing entry fails at import.
"""
from dataclasses import dataclass, field

from critique.models.persona import Persona

CARD_KEYS = ("biggestGripe", "whatMakesGoblinHappy", "goblinWisdom", "goblinPrediction")


@dataclass(frozen=True)
class PersonaProfile:
    display_name: str
    system_message: str
    goal_label: str
    scope_label: str
    confidence_label: str
    focus: tuple[str, ...]
    # persona-specific keys requested from the model, with their description
    response_fields: dict[str, str]
    # keys whose list values are treated as recommendations
    recommendation_keys: tuple[str, ...]
    temperature: float
    default_next_steps: tuple[str, ...]
    # feedback card text used when no analyzer filled a CARD_KEYS entry
    card_defaults: dict[str, str]
    # persona keys read, in order, before the card key itself
    card_sources: dict[str, tuple[str, ...]] = field(default_factory=dict)
    scored: bool = False


PROFILES: dict[Persona, PersonaProfile] = {
    Persona.CLARITY: PersonaProfile(
        display_name="Clarity",
        system_message=(
            "You are Clarity, the brutally honest UX goblin. You tell the hard truths about "
            "design with wit and directness. Be specific, actionable, and don't sugarcoat issues."
        ),
        goal_label="USER'S GOAL",
        scope_label="WHAT I'M EXAMINING",
        confidence_label="YOUR CONFIDENCE LEVEL",
        focus=("user_reality_check", "brutal_honesty"),
        response_fields={
            "biggestGripe": "The main UX problem that annoys you most",
            "whatMakesGoblinHappy": "What actually works well in this design",
            "goblinWisdom": "Your key insight about the UX",
            "goblinPrediction": "What happens if the user follows your advice",
            "gripeLevel": "low | medium | rage-cranked",
        },
        recommendation_keys=("recommendations",),
        temperature=0.3,
        default_next_steps=(
            "Make the interface more obvious for users",
            "Reduce cognitive load with clearer labeling",
            "Fix confusing navigation patterns",
        ),
        card_defaults={
            "biggestGripe": "Your users are confused and you don't even realize it!",
            "whatMakesGoblinHappy": "Clear, obvious interfaces that don't make users think",
            "goblinWisdom": "Users don't care about your clever design - they just want to get stuff done!",
            "goblinPrediction": "Fix the confusing parts and watch your conversion rates soar",
        },
        scored=True,
    ),
    Persona.STRATEGIC: PersonaProfile(
        display_name="Strategic",
        system_message=(
            "You are a strategic UX analyst. Focus on business impact, user goals, and "
            "measurable outcomes. Provide strategic recommendations based on UX research principles."
        ),
        goal_label="USER'S STRATEGIC OBJECTIVE",
        scope_label="ANALYSIS SCOPE",
        confidence_label="STAKEHOLDER CONFIDENCE",
        focus=("business_impact", "strategic_priorities", "measurable_outcomes"),
        response_fields={
            "businessImpact": "How UX issues affect business metrics",
            "strategicPriority": "Most critical strategic UX priority",
            "competitiveAdvantage": "UX opportunities for competitive differentiation",
            "measurableOutcomes": "Expected measurable improvements",
        },
        recommendation_keys=("recommendations", "priorities"),
        temperature=0.7,
        default_next_steps=(
            "Align design with strategic business objectives",
            "Improve user flow for better conversion",
            "Implement research-backed UX patterns",
        ),
        card_defaults={
            "biggestGripe": "Your UX strategy isn't aligned with business goals - you're leaving money on the table",
            "whatMakesGoblinHappy": "Strategic UX improvements that drive measurable business results",
            "goblinWisdom": "Every design decision should tie back to a business metric",
            "goblinPrediction": "Align UX with business strategy and watch both user satisfaction and revenue grow",
        },
        card_sources={
            "biggestGripe": ("businessImpact", "strategicPriority"),
            "whatMakesGoblinHappy": ("competitiveAdvantage",),
            "goblinPrediction": ("measurableOutcomes",),
        },
    ),
    Persona.MIRROR: PersonaProfile(
        display_name="Mirror",
        system_message=(
            "You are an empathetic UX mirror. Reflect back what users might feel and experience. "
            "Focus on emotional aspects of the design and user empathy."
        ),
        goal_label="DESIGN INTENTION",
        scope_label="REFLECTION SCOPE",
        confidence_label="CURRENT CONFIDENCE",
        focus=("self_discovery", "assumption_questioning", "empathy_building"),
        response_fields={
            "reflection": "Mirror reflection of the user experience and emotional journey",
            "emotionalImpact": "How this design makes users feel",
            "userStory": "The story this interface tells from a user's perspective",
            "empathyGaps": "List of places where user needs aren't met",
        },
        recommendation_keys=("recommendations", "nextSteps"),
        temperature=0.7,
        default_next_steps=(
            "Observe real users interacting with your design",
            "Question your design assumptions",
            "Map the emotional journey across each screen",
        ),
        card_defaults={
            "biggestGripe": "You're designing for yourself, not your users - step back and see what they actually see",
            "whatMakesGoblinHappy": "Deep user insights that challenge design assumptions",
            "goblinWisdom": "The most powerful design insights come from honest self-reflection",
            "goblinPrediction": "Question your assumptions and you'll discover breakthrough UX improvements",
        },
        card_sources={
            "biggestGripe": ("reflection", "empathyGaps"),
            "whatMakesGoblinHappy": ("emotionalImpact",),
            "goblinWisdom": ("userStory",),
        },
    ),
    Persona.MAD_SCIENTIST: PersonaProfile(
        display_name="Mad Scientist",
        system_message=(
            "You are the Mad UX Scientist. Think outside the box with creative, experimental "
            "approaches to UX problems. Propose wild but potentially brilliant solutions."
        ),
        goal_label="EXPERIMENTAL HYPOTHESIS",
        scope_label="TEST SUBJECTS",
        confidence_label="RISK TOLERANCE",
        focus=("unconventional_solutions", "a_b_testing", "rule_breaking"),
        response_fields={
            "hypothesis": "Wild experimental UX hypothesis about the interface",
            "experiments": "List of experiments to run",
            "wildCard": "One completely unexpected suggestion",
            "labNotes": "Notes on interface behavior and user patterns",
        },
        recommendation_keys=("recommendations", "experiments", "crazyIdeas"),
        temperature=0.7,
        default_next_steps=(
            "A/B test an unconventional layout",
            "Prototype a rule-breaking interaction",
            "Measure delight, not just completion",
        ),
        card_defaults={
            "biggestGripe": "Your interface is playing it way too safe - users can handle some creative chaos!",
            "whatMakesGoblinHappy": (
                "Experiments that break conventional UX rules and surprise users in delightful ways"
            ),
            "goblinWisdom": (
                "Sometimes the most brilliant UX solutions come from completely ignoring what everyone else is doing"
            ),
            "goblinPrediction": (
                "If you embrace experimental approaches, you'll discover interaction patterns "
                "that set you apart from boring competitors"
            ),
        },
        card_sources={
            "biggestGripe": ("wildCard",),
            "whatMakesGoblinHappy": ("experiments",),
            "goblinWisdom": ("hypothesis", "labNotes"),
        },
    ),
    Persona.EXECUTIVE: PersonaProfile(
        display_name="Executive",
        system_message=(
            "You are an executive UX lens. Focus on business impact, ROI, and stakeholder "
            "communication. Provide executive-level insights and recommendations."
        ),
        goal_label="BUSINESS OBJECTIVE",
        scope_label="SCOPE OF REVIEW",
        confidence_label="INVESTMENT CONFIDENCE",
        focus=("roi_analysis", "competitive_positioning", "business_metrics"),
        response_fields={
            "executiveSummary": "High-level summary of UX impact",
            "businessRisks": "List of business risks",
            "roiImpact": "Return on investment implications of UX issues",
            "competitiveImplications": "How UX affects competitive positioning",
        },
        recommendation_keys=("recommendations", "strategicRecommendations"),
        temperature=0.7,
        default_next_steps=(
            "Focus on high-ROI UX improvements",
            "Prioritize changes that drive business metrics",
            "Implement competitive UX advantages",
        ),
        card_defaults={
            "biggestGripe": (
                "Your UX investments aren't generating the ROI they should - time to focus on high-impact changes"
            ),
            "whatMakesGoblinHappy": "Strategic UX roadmaps that deliver measurable business results",
            "goblinWisdom": "The best UX decisions are backed by data and drive clear business outcomes",
            "goblinPrediction": (
                "Focus on high-ROI UX improvements and you'll see both user satisfaction "
                "and business metrics improve dramatically"
            ),
        },
        card_sources={
            "biggestGripe": ("roiImpact", "businessRisks"),
            "whatMakesGoblinHappy": ("competitiveImplications",),
            "goblinWisdom": ("executiveSummary",),
        },
    ),
}

_missing = set(Persona) - set(PROFILES)
if _missing:
    raise RuntimeError(f"Personas without a profile: {sorted(p.value for p in _missing)}")
for _persona, _profile in PROFILES.items():
    if set(_profile.card_defaults) != set(CARD_KEYS):
        raise RuntimeError(f"Persona {_persona.value} card defaults must cover {CARD_KEYS}")


def profile_for(persona: Persona | str) -> PersonaProfile:
    return PROFILES[Persona(persona)]

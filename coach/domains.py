"""
Cognitive domain definitions.

Seven research-backed domains (DSM-5 / NIH Toolbox groupings) plus two
session-flow pseudo-domains used for the opening and closing activities.
"""

from enum import Enum


class CognitiveDomain(str, Enum):
    """Domain an activity targets."""
    COMPLEX_ATTENTION = "complex_attention"
    PROCESSING_SPEED = "processing_speed"
    EXECUTIVE_FUNCTION = "executive_function"
    WORKING_MEMORY = "working_memory"
    EPISODIC_MEMORY = "episodic_memory"
    LANGUAGE = "language"
    SOCIAL_COGNITION = "social_cognition"
    # Session flow
    ORIENTATION = "orientation"
    CLOSING = "closing"

    @property
    def is_trainable(self) -> bool:
        return self not in SESSION_FLOW_DOMAINS


SESSION_FLOW_DOMAINS = frozenset({CognitiveDomain.ORIENTATION, CognitiveDomain.CLOSING})

TRAINABLE_DOMAINS: list[CognitiveDomain] = [
    CognitiveDomain.COMPLEX_ATTENTION,
    CognitiveDomain.PROCESSING_SPEED,
    CognitiveDomain.EXECUTIVE_FUNCTION,
    CognitiveDomain.WORKING_MEMORY,
    CognitiveDomain.EPISODIC_MEMORY,
    CognitiveDomain.LANGUAGE,
    CognitiveDomain.SOCIAL_COGNITION,
]

DOMAIN_INFO: dict[CognitiveDomain, dict[str, str]] = {
    CognitiveDomain.COMPLEX_ATTENTION: {
        "label": "Attention",
        "description": "Sustained focus, divided attention, interference handling",
    },
    CognitiveDomain.PROCESSING_SPEED: {
        "label": "Processing Speed",
        "description": "Quick responses, rapid perception and categorization",
    },
    CognitiveDomain.EXECUTIVE_FUNCTION: {
        "label": "Executive Function",
        "description": "Planning, inhibition, task switching, problem solving",
    },
    CognitiveDomain.WORKING_MEMORY: {
        "label": "Working Memory",
        "description": "Holding and manipulating information over seconds",
    },
    CognitiveDomain.EPISODIC_MEMORY: {
        "label": "Episodic Memory",
        "description": "Encoding new information and recalling it later",
    },
    CognitiveDomain.LANGUAGE: {
        "label": "Language",
        "description": "Vocabulary, naming, fluency, comprehension",
    },
    CognitiveDomain.SOCIAL_COGNITION: {
        "label": "Social Cognition",
        "description": "Interpreting emotions, intentions, social rules",
    },
    CognitiveDomain.ORIENTATION: {
        "label": "Orientation",
        "description": "Session opening and grounding",
    },
    CognitiveDomain.CLOSING: {
        "label": "Closing",
        "description": "Session closing and personalized farewell",
    },
}

# Pre-v2 profile/category names
LEGACY_DOMAIN_MAP: dict[str, CognitiveDomain] = {
    "orientation": CognitiveDomain.ORIENTATION,
    "language": CognitiveDomain.LANGUAGE,
    "memory": CognitiveDomain.EPISODIC_MEMORY,
    "attention": CognitiveDomain.COMPLEX_ATTENTION,
    "reminiscence": CognitiveDomain.SOCIAL_COGNITION,
    "social": CognitiveDomain.SOCIAL_COGNITION,
    "mindfulness": CognitiveDomain.COMPLEX_ATTENTION,
    "executive": CognitiveDomain.EXECUTIVE_FUNCTION,
    "errorless_learning": CognitiveDomain.EPISODIC_MEMORY,
    "CR/goal support": CognitiveDomain.EXECUTIVE_FUNCTION,
    "music": CognitiveDomain.EPISODIC_MEMORY,
    "reality_orientation": CognitiveDomain.ORIENTATION,
    "spaced_retrieval": CognitiveDomain.EPISODIC_MEMORY,
    "goal_support": CognitiveDomain.EXECUTIVE_FUNCTION,
    "mood": CognitiveDomain.SOCIAL_COGNITION,
    "closing": CognitiveDomain.CLOSING,
}


def map_legacy_domain(name: str) -> CognitiveDomain:
    """Map a domain name (current or legacy) to a CognitiveDomain."""
    try:
        return CognitiveDomain(name)
    except ValueError:
        return LEGACY_DOMAIN_MAP.get(name, CognitiveDomain.COMPLEX_ATTENTION)

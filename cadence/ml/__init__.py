from .aggregator import FederatedAggregator
from .recommender import RecommendationEngine
from .switching import IntelligentSwitcher, SwitchDecisionPolicy

__all__ = [
    "FederatedAggregator", "IntelligentSwitcher", "RecommendationEngine",
    "SwitchDecisionPolicy",
]

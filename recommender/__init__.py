"""
Short Video Recommendation Engine

An in-memory ranking engine that turns user behavior into weighted topical
preferences and returns diversified, explained recommendations.
"""

__version__ = "0.1.0"

from .catalog import Catalog
from .config import EngineConfig, DEFAULT_CONFIG
from .database import InMemorySnapshotRepository, SnapshotRepository, SqlSnapshotRepository
from .event_store import EventStore
from .exclusions import ExclusionTracker
from .preferences import PreferenceModel
from .ranker import Ranker
from .schemas import BehaviorAction, BehaviorEvent, ContentItem, ContentStats, \
    ContentUpdate, UserPreference, RecommendationResult, PublishRequest, EngineSnapshot
from .scoring import Scorer
from .service import RecommendationService

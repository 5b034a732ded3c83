"""Post-processing of finished conversations and training sources."""

from .analyzer import AnalysisError, AnalysisPayload, ConversationAnalyzer, OpenAIConversationAnalyzer
from .post_processor import ConversationPostProcessor
from .training import DatabaseChunkSink, process_training_scrape, process_training_upload

__all__ = [
    "AnalysisError",
    "AnalysisPayload",
    "ConversationAnalyzer",
    "ConversationPostProcessor",
    "DatabaseChunkSink",
    "OpenAIConversationAnalyzer",
    "process_training_scrape",
    "process_training_upload",
]

"""Translation pipeline."""

from sol2promela.pipeline.orchestrator import TranslationOrchestrator, TranslationResult, translate

__all__ = ["TranslationOrchestrator", "TranslationResult", "translate"]

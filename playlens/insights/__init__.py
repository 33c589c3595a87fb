from .insight_synthesizer import InsightSynthesizer

__all__ = ["InsightSynthesizer"]

"""ctxbudget - keeps LLM conversations inside a token budget."""

__version__ = "0.1.0"
__logo__ = "🧮"

"""
mailmind package

Request orchestration and prioritization core for an LLM-backed email
assistant.
"""

__all__ = [
    "config",
    "logging_config",
    "errors",
    "models",
    "storage",
    "cache",
    "rules",
    "llm_client",
    "prompts",
    "model_service",
    "planner",
    "executor",
    "aggregator",
    "conversation",
    "orchestrator",
    "formatting",
    "cli",
]

"""
LLM agents
Decides whether a PR comment is an automatable fix.
"""

from .fix_decision_service import FixDecisionService, parse_verdict, extract_json_object

__all__ = [
    "FixDecisionService",
    "parse_verdict",
    "extract_json_object",
]

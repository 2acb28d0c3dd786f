# agents/fix_decision_service.py
"""
Fix-decision agent - asks the LLM whether a PR comment describes a clear,
safe code fix and, if so, what the fixed files look like.
"""

import json
from typing import Any, Dict, List, Mapping, Optional
from langchain_groq import ChatGroq
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.messages import SystemMessage, HumanMessage
from comment_fixer.core.config import settings
from comment_fixer.core.exceptions import AIServiceError
from comment_fixer.models.github import Comment, PullRequest, FileDiffEntry
from comment_fixer.models.verdict import ProposedChange, Verdict, ParseFailure, ParseResult
from comment_fixer.utils.logger import logger


DEFAULT_SUMMARY = "Applied suggested changes"
MISSING_CONTENT = "File content not available"

FIX_DECISION_SYSTEM_PROMPT = """You are an AI code reviewer and fixer. Your job is to read a GitHub pull request comment and decide whether it should be applied to the code automatically.

IMPORTANT RULES:
1. Only apply changes that are CLEAR and UNAMBIGUOUS technical fixes
2. Do NOT apply subjective style changes or opinion-based suggestions
3. Do NOT apply changes that require business logic decisions
4. Focus on: bug fixes, syntax errors, typos, obvious improvements, security issues
5. If unsure, set shouldApply to false
6. Always give clear reasoning for your decision
7. When shouldApply is true, "content" must be the COMPLETE file after the fix, not a diff

RESPONSE FORMAT (JSON only):
{
  "shouldApply": boolean,
  "confidence": number between 0 and 1,
  "reasoning": "why you decided this",
  "changes": [
    {
      "filename": "path/relative/to/repo/root",
      "content": "complete file content after changes",
      "description": "what was changed and why",
      "lineNumber": optional integer
    }
  ]
}

When shouldApply is false, "changes" must be an empty list."""


class FixDecisionService:
    """Service that turns a PR comment plus file context into a Verdict."""

    def __init__(self, llm=None, summary_llm=None, provider: str = None):
        """Initialize with configurable LLM provider.

        Args:
            llm: Chat model used for the verdict (built from settings when omitted)
            summary_llm: Chat model used for change summaries (defaults likewise)
            provider: "groq" or "gemini" (defaults to settings.LLM_PROVIDER)
        """
        self.provider = provider or settings.LLM_PROVIDER
        self.llm = llm or self._build_llm(settings.LLM_TEMPERATURE, settings.LLM_MAX_TOKENS)
        self.summary_llm = summary_llm or (
            self.llm if llm is not None
            else self._build_llm(settings.LLM_SUMMARY_TEMPERATURE, settings.LLM_SUMMARY_MAX_TOKENS)
        )

    def _build_llm(self, temperature: float, max_tokens: int):
        if self.provider == "gemini":
            return ChatGoogleGenerativeAI(
                model=settings.GEMINI_MODEL,
                temperature=temperature,
                max_output_tokens=max_tokens,
                google_api_key=settings.GOOGLE_API_KEY,
                max_retries=settings.LLM_MAX_RETRIES,
                timeout=settings.LLM_TIMEOUT,
            )
        return ChatGroq(
            groq_api_key=settings.GROQ_API_KEY,
            model_name=settings.LLM_MODEL,
            temperature=temperature,
            max_tokens=max_tokens,
            max_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
        )

    @property
    def model_name(self) -> str:
        return settings.GEMINI_MODEL if self.provider == "gemini" else settings.LLM_MODEL

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        comment: Comment,
        pr: PullRequest,
        files: List[FileDiffEntry],
        file_contents: Mapping[str, str],
    ) -> Verdict:
        """Ask the LLM for a verdict. Never raises: every failure is a rejection."""
        messages = [
            SystemMessage(content=FIX_DECISION_SYSTEM_PROMPT),
            HumanMessage(content=self._build_prompt(comment, pr, files, file_contents)),
        ]

        try:
            raw = await self._complete(self.llm, messages)
        except Exception as e:
            logger.error(f"[FixDecision] LLM call failed for PR #{pr.number}: {e}")
            return Verdict.rejected(f"Error analyzing comment: {e}")

        result = parse_verdict(raw)
        if isinstance(result, ParseFailure):
            logger.error(f"[FixDecision] Failed to parse AI response: {result.message}")
            logger.debug(f"[FixDecision] Raw response: {result.raw}")
            return Verdict.rejected(f"Failed to parse AI response: {result.message}")

        logger.info(
            f"[FixDecision] PR #{pr.number}: should_apply={result.should_apply} "
            f"confidence={result.confidence} changes={len(result.changes)}"
        )
        return result

    async def summarize(self, changes: List[ProposedChange]) -> str:
        """Best-effort one or two sentence summary for the success comment."""
        change_descriptions = "\n".join(f"- {c.filename}: {c.description}" for c in changes)
        prompt = (
            "Generate a brief, professional summary of the following code changes "
            "for a GitHub PR comment:\n\n"
            f"{change_descriptions}\n\n"
            "The summary should be concise (1-2 sentences), professional, focused on "
            "the improvements made, and suitable for a PR comment.\n\nSummary:"
        )

        try:
            summary = await self._complete(self.summary_llm, [HumanMessage(content=prompt)])
        except Exception as e:
            logger.warning(f"[FixDecision] Could not generate change summary: {e}")
            return DEFAULT_SUMMARY
        return summary or DEFAULT_SUMMARY

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _complete(llm, messages) -> str:
        response = await llm.ainvoke(messages)
        content = response.content if hasattr(response, "content") else response
        if isinstance(content, list):
            # Some providers return content blocks
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block) for block in content
            )
        content = (content or "").strip()
        if not content:
            raise AIServiceError("No response from LLM")
        return content

    @staticmethod
    def _build_prompt(
        comment: Comment,
        pr: PullRequest,
        files: List[FileDiffEntry],
        file_contents: Mapping[str, str],
    ) -> str:
        """Assemble the user prompt sent to the decision LLM."""
        file_sections = "\n".join(
            f"\n--- {f.filename} ({f.status}) ---\n{file_contents.get(f.filename, MISSING_CONTENT)}\n---"
            for f in files
        )

        return f"""PR TITLE: {pr.title}
PR DESCRIPTION: {pr.body or ""}

COMMENT: {comment.body}
COMMENT AUTHOR: {comment.user.login}

FILES IN PR:
{file_sections or "(no files)"}

Analyze this comment and decide if it should be applied automatically. Consider:
1. Is the comment clear and actionable?
2. Is it a technical fix that can be automated?
3. Does it require subjective decisions or business logic?
4. Is it safe to apply without human review?

Respond with the JSON format specified in the system prompt."""


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """Return the first top-level JSON object embedded in raw, or None."""
    decoder = json.JSONDecoder()
    start = raw.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(raw, start)
        except json.JSONDecodeError:
            start = raw.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = raw.find("{", start + 1)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_verdict(raw: str) -> ParseResult:
    """
    Strictly validate an LLM reply.

    Returns a Verdict only when every field is well typed; otherwise a
    ParseFailure naming the first offending field. A rejected verdict
    never carries changes.
    """
    data = extract_json_object(raw or "")
    if data is None:
        return ParseFailure(field="", reason="No JSON found in response", raw=raw or "")

    should_apply = data.get("shouldApply")
    if not isinstance(should_apply, bool):
        return ParseFailure(field="shouldApply", reason="must be a boolean", raw=raw)

    confidence = data.get("confidence")
    if not _is_number(confidence) or not 0 <= confidence <= 1:
        return ParseFailure(field="confidence", reason="must be a number between 0 and 1", raw=raw)

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str):
        return ParseFailure(field="reasoning", reason="must be a string", raw=raw)

    raw_changes = data.get("changes")
    if not isinstance(raw_changes, list):
        return ParseFailure(field="changes", reason="must be a list", raw=raw)

    if not should_apply:
        return Verdict(should_apply=False, changes=[], reasoning=reasoning, confidence=float(confidence))

    if not raw_changes:
        return ParseFailure(field="changes", reason="must not be empty when shouldApply is true", raw=raw)

    changes: List[ProposedChange] = []
    for index, change in enumerate(raw_changes):
        if not isinstance(change, dict):
            return ParseFailure(field=f"changes[{index}]", reason="must be an object", raw=raw)
        for key in ("filename", "content", "description"):
            if not isinstance(change.get(key), str):
                return ParseFailure(field=f"changes[{index}].{key}", reason="must be a string", raw=raw)
        if not change["filename"].strip():
            return ParseFailure(field=f"changes[{index}].filename", reason="must not be empty", raw=raw)
        line_number = change.get("lineNumber")
        if line_number is not None and (not isinstance(line_number, int) or isinstance(line_number, bool)):
            return ParseFailure(field=f"changes[{index}].lineNumber", reason="must be an integer", raw=raw)

        changes.append(ProposedChange(
            filename=change["filename"],
            content=change["content"],
            description=change["description"],
            line_number=line_number,
        ))

    return Verdict(should_apply=True, changes=changes, reasoning=reasoning, confidence=float(confidence))


# Global instance
fix_decision_service = FixDecisionService()

"""
Format pipeline outcomes as GitHub Markdown comments
"""
from typing import List
from comment_fixer.models.verdict import ProposedChange, Verdict


class CommentFormatter:
    """
    Renders the three comments the bot can leave on a PR.
    """

    BOT_NAME = "AI Comment Fixer Bot"

    @staticmethod
    def format_change_list(changes: List[ProposedChange]) -> str:
        return "\n".join(f"- `{c.filename}`: {c.description}" for c in changes)

    @classmethod
    def format_analysis(cls, verdict: Verdict) -> str:
        """Comment for a verdict that will not be applied"""
        decision = "✅ Will apply" if verdict.should_apply else "❌ Will not apply"
        return "\n".join([
            "🤖 **AI Analysis**",
            "",
            f"**Decision:** {decision}",
            "",
            f"**Reasoning:** {verdict.reasoning}",
            "",
            f"**Confidence:** {verdict.confidence_percent}%",
            "",
            "---",
            f"*This analysis was performed by the {cls.BOT_NAME}*",
        ])

    @classmethod
    def format_success(cls, verdict: Verdict, summary: str, fix_branch: str, base_branch: str) -> str:
        """Comment after the fix branch was pushed"""
        return "\n".join([
            "✅ **Changes Applied Successfully**",
            "",
            summary,
            "",
            f"**Branch:** `{fix_branch}`",
            f"**Confidence:** {verdict.confidence_percent}%",
            "",
            "**Changes Made:**",
            cls.format_change_list(verdict.changes),
            "",
            "**Next Steps:**",
            "1. Review the changes in the new branch",
            f"2. Create a new PR from `{fix_branch}` to `{base_branch}`",
            "3. Or merge the changes directly if approved",
            "",
            "---",
            f"*Applied by {cls.BOT_NAME}*",
        ])

    @classmethod
    def format_error(cls, error: BaseException) -> str:
        """Comment when applying the fix failed"""
        return "\n".join([
            "❌ **Error Processing Comment**",
            "",
            "An error occurred while processing this comment:",
            "",
            "```",
            str(error) or "Unknown error",
            "```",
            "",
            f"**Error Type:** {error.__class__.__name__}",
            "",
            "Please check the bot logs for more details or try again later.",
            "",
            "---",
            f"*{cls.BOT_NAME}*",
        ])

"""
Fix-decision models
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Union


class ProposedChange(BaseModel):
    filename: str
    content: str  # full replacement file content, not a diff
    description: str
    line_number: Optional[int] = None

    model_config = {"frozen": True}


class Verdict(BaseModel):
    should_apply: bool
    changes: List[ProposedChange] = Field(default_factory=list)
    reasoning: str
    confidence: float = Field(ge=0.0, le=1.0)

    model_config = {"frozen": True}

    @classmethod
    def rejected(cls, reasoning: str) -> "Verdict":
        """Safe default: never apply, nothing proposed, zero confidence"""
        return cls(should_apply=False, changes=[], reasoning=reasoning, confidence=0.0)

    @property
    def confidence_percent(self) -> int:
        return round(self.confidence * 100)


class ParseFailure(BaseModel):
    """Why an LLM reply could not be turned into a Verdict"""
    field: str
    reason: str
    raw: str = ""

    @property
    def message(self) -> str:
        if self.field:
            return f"Invalid {self.field} field: {self.reason}"
        return self.reason


ParseResult = Union[Verdict, ParseFailure]

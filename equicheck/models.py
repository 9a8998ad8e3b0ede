import time
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


# Ordered from least to most severe.
SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]

CATEGORIES = [
    "Financial Projections",
    "Market Sizing",
    "Risk Disclosures",
    "Operational",
    "Legal",
]


def severity_rank(severity: str) -> int:
    """Position on the severity scale (Low=0 .. Critical=3), -1 if unrecognised."""
    for i, level in enumerate(SEVERITY_ORDER):
        if severity == level.value:
            return i
    return -1


def now_ms() -> int:
    return time.time_ns() // 1_000_000


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Discrepancy(_CamelModel):
    # category and severity are requested from the model as closed sets but
    # kept as plain strings here; see AnalysisResult.contract_warnings().
    category: str
    topic: str
    buy_side_claim: str
    sell_side_claim: str
    severity: str
    reasoning: str


class AnalysisFindings(_CamelModel):
    """The part of an analysis produced by the model."""

    executive_summary: str
    risk_score: int
    agreement_score: int
    strategic_alignment: str
    key_risks: list[str]
    discrepancies: list[Discrepancy]

    @field_validator("risk_score", "agreement_score", mode="before")
    @classmethod
    def _round_score(cls, v):
        if isinstance(v, float):
            return round(v)
        return v


class AnalysisResult(AnalysisFindings):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = Field(default_factory=now_ms)
    buy_side_file_name: str
    sell_side_file_name: str

    def contract_warnings(self) -> list[str]:
        """Values the model returned outside the documented contract.

        Nothing here is enforced: scores and labels are stored exactly as
        received, these notes only make the deviations visible.
        """
        warnings = []
        for name, score in (("riskScore", self.risk_score), ("agreementScore", self.agreement_score)):
            if not 0 <= score <= 100:
                warnings.append(f"{name} {score} is outside 0-100")
        for i, d in enumerate(self.discrepancies):
            if d.category not in CATEGORIES:
                warnings.append(f"discrepancies[{i}].category '{d.category}' is not a known category")
            if severity_rank(d.severity) < 0:
                warnings.append(f"discrepancies[{i}].severity '{d.severity}' is not a known severity")
        return warnings

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class ClearResult(BaseModel):
    local_cleared: bool = True
    remote_unaffected: bool
    message: str

from __future__ import annotations

import copy

import pytest

from equicheck.local_store import LocalStore
from equicheck.models import AnalysisResult

FINDINGS = {
    "executiveSummary": "Kill. The sell side overstates EBITDA by excluding recurring costs.",
    "riskScore": 85,
    "agreementScore": 30,
    "strategicAlignment": "Both documents target EU expansion, but timelines differ by two years.",
    "keyRisks": [
        "Artificial EBITDA inflation",
        "Undisclosed Legal Action",
        "Single source dependency",
    ],
    "discrepancies": [
        {
            "category": "Legal",
            "topic": "Pending litigation",
            "buySideClaim": "Two open IP suits with combined exposure of EUR 14m.",
            "sellSideClaim": "No material litigation.",
            "severity": "Critical",
            "reasoning": "Undisclosed liability directly reduces enterprise value.",
        },
        {
            "category": "Financial Projections",
            "topic": "EBITDA FY25",
            "buySideClaim": "Normalised EBITDA of EUR 8.1m.",
            "sellSideClaim": "Adjusted EBITDA of EUR 11.4m.",
            "severity": "High",
            "reasoning": "Add-backs include recurring restructuring costs.",
        },
    ],
}


class FakeRemote:
    """In-memory stand-in for RemoteBackend."""

    def __init__(self):
        self.records: list[AnalysisResult] = []
        self.is_open = True
        self.fail_insert = False
        self.fail_fetch = False
        self.insert_calls = 0
        self.fetch_calls = 0

    async def insert(self, record: AnalysisResult) -> None:
        self.insert_calls += 1
        if self.fail_insert:
            raise OSError("server closed the connection unexpectedly")
        self.records.append(record)

    async def fetch_all(self) -> list[AnalysisResult]:
        self.fetch_calls += 1
        if self.fail_fetch:
            raise OSError("server closed the connection unexpectedly")
        return sorted(self.records, key=lambda r: r.timestamp, reverse=True)


@pytest.fixture()
def make_record():
    def _make(record_id: str = "r1", timestamp: int = 1000, **overrides) -> AnalysisResult:
        data = {
            **FINDINGS,
            "id": record_id,
            "timestamp": timestamp,
            "buySideFileName": "buy_side_dd.pdf",
            "sellSideFileName": "sell_side_cim.pdf",
        }
        data.update(overrides)
        return AnalysisResult.model_validate(data)

    return _make


@pytest.fixture()
def local_store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "history.json")


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def findings() -> dict:
    return copy.deepcopy(FINDINGS)

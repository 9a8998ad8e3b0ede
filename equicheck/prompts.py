import base64

PDF_MIME_TYPE = "application/pdf"

SYSTEM_INSTRUCTION = """\
You are an expert Senior Investment Analyst working for a Private Equity firm.
Your task is to rigorously compare a 'Buy Side' due diligence report against a 'Sell Side' information memorandum.

## Core objective
Identify material discrepancies between what the Seller is promising (Sell Side) and what the internal diligence team has found (Buy Side).

## Required extraction logic

1. FINANCIAL PROJECTIONS (the "numbers"):
   - Extract Revenue and EBITDA claims from both documents.
   - Compare growth rates (CAGR) and profit margins.
   - CRITICAL: Identify "Adjusted EBITDA" add-backs or "one-time" gains that the Sell Side uses to inflate numbers (e.g., "Fair Value Adjustments").

2. MARKET SIZING (the "story"):
   - Compare the Total Addressable Market (TAM) definitions.
   - Look for contradictions in market growth rates or geographic scope (e.g., "Global" vs "Regional").

3. RISK DISCLOSURES (the "gotchas"):
   - Extract specific risks (Supply Chain, Legal, Regulatory) found in the Buy Side report.
   - Verify if these are disclosed, downplayed, or omitted in the Sell Side memo.
   - Example: if Buy Side mentions "Single Source Dependency", does Sell Side claim "Global Diversification"?

## Output format
Return the analysis in strict JSON format matching the schema provided.
Classify every discrepancy with a severity level (Low, Medium, High, Critical).
"""

CLOSING_INSTRUCTION = "Compare these two documents and generate the analysis."


def _file_part(data: bytes, filename: str) -> dict:
    encoded = base64.b64encode(data).decode("ascii")
    return {
        "type": "file",
        "file": {
            "filename": filename,
            "file_data": f"data:{PDF_MIME_TYPE};base64,{encoded}",
        },
    }


def build_user_content(buy_doc: bytes, sell_doc: bytes, buy_name: str, sell_name: str) -> list[dict]:
    """Content parts for the user message: each document tagged with its file name."""
    return [
        {"type": "text", "text": f"Document 1: Buy Side Report ({buy_name})"},
        _file_part(buy_doc, buy_name),
        {"type": "text", "text": f"Document 2: Sell Side Report ({sell_name})"},
        _file_part(sell_doc, sell_name),
        {"type": "text", "text": CLOSING_INSTRUCTION},
    ]

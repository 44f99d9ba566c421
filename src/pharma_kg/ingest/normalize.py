"""
Type-specific normalization of live API payloads.

Upstream APIs wrap records in envelopes and use their own field names; this
maps them onto the record shapes the extraction agents read:

- patents: patentNumber, title, abstract, filingDate, grantDate, expiryDate,
  status, assignee {name, type}, inventors [{name}], drugInfo {drugName, therapeuticArea}
- clinical_trials: nctId, title, phase, status, startDate, completionDate,
  enrollment, sponsor, sponsorType, interventionName, interventionType
- financial: companyName, symbol, marketCap, revenue, profitMargin
- competitive_intelligence: companyInfo {name, ticker}, threatScore, overallThreat

Fields already in the target shape pass through unchanged.
"""

from collections.abc import Callable
from typing import Any

from pharma_kg.ingest.records import is_blank, lookup
from pharma_kg.models import Record

ENVELOPE_KEYS = ("results", "data", "studies", "patents", "items", "records", "docs")


def unwrap(payload: Any) -> list[Record]:
    """Extract the record list from a JSON body."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if not isinstance(payload, dict):
        return []
    for key in ENVELOPE_KEYS:
        value = payload.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        if isinstance(value, dict):
            nested = unwrap(value)
            if nested:
                return nested
    return [payload]


def _first(record: Record, *paths: str) -> Any:
    for path in paths:
        value = lookup(record, path)
        if not is_blank(value):
            return value
    return None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        # Yahoo-style {"raw": 123, "fmt": "123"}
        value = value.get("raw")
    try:
        return float(str(value).replace(",", ""))
    except (TypeError, ValueError):
        return None


def _names(value: Any) -> list[str]:
    """Normalize a person/org list given as str, list[str] or list[dict]."""
    if is_blank(value):
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.replace(";", ",").split(",") if part.strip()]
    if isinstance(value, dict):
        value = [value]
    names = []
    for item in value:
        if isinstance(item, dict):
            name = _first(item, "name", "fullName", "inventor_name")
            if name is None and (item.get("first_name") or item.get("last_name")):
                name = f"{item.get('first_name', '')} {item.get('last_name', '')}".strip()
        else:
            name = item
        if not is_blank(name):
            names.append(str(name).strip())
    return names


def normalize_patent(record: Record) -> Record:
    out = dict(record)
    number = _first(record, "patentNumber", "patent_number", "patentId", "patent_id", "id")
    if number is not None:
        out["patentNumber"] = str(number)
    title = _first(record, "title", "patent_title", "inventionTitle")
    if title is not None:
        out["title"] = title
    abstract = _first(record, "abstract", "patent_abstract")
    if abstract is not None:
        out["abstract"] = abstract
    for target, *aliases in (
        ("filingDate", "filing_date", "applicationDate"),
        ("grantDate", "grant_date", "patent_date"),
        ("expiryDate", "expiry_date", "expirationDate"),
    ):
        value = _first(record, target, *aliases)
        if value is not None:
            out[target] = value

    assignee = record.get("assignee", record.get("assignees", record.get("owner")))
    if isinstance(assignee, list):
        assignee = assignee[0] if assignee else None
    if isinstance(assignee, str) and assignee.strip():
        out["assignee"] = {"name": assignee.strip()}
    elif isinstance(assignee, dict):
        name = _first(assignee, "name", "assignee_organization", "organization")
        if name is not None:
            out["assignee"] = {**assignee, "name": name}
    elif not is_blank(record.get("assignee_name")):
        out["assignee"] = {"name": record["assignee_name"]}

    inventors = _names(record.get("inventors", record.get("inventor")))
    if inventors:
        out["inventors"] = [{"name": n} for n in inventors]

    drug = _first(record, "drugInfo.drugName", "drugName", "drug_name")
    if drug is not None:
        info = record.get("drugInfo") if isinstance(record.get("drugInfo"), dict) else {}
        out["drugInfo"] = {**info, "drugName": drug}
    return out


def normalize_clinical_trial(record: Record) -> Record:
    # ClinicalTrials.gov v2 nests everything under protocolSection
    proto = record.get("protocolSection")
    if not isinstance(proto, dict):
        out = dict(record)
        for target, *aliases in (
            ("nctId", "NCTId", "nct_id"),
            ("title", "briefTitle", "BriefTitle"),
            ("status", "overallStatus", "OverallStatus"),
            ("sponsor", "leadSponsorName", "LeadSponsorName"),
            ("sponsorType", "leadSponsorClass", "LeadSponsorClass"),
        ):
            value = _first(record, target, *aliases)
            if value is not None:
                out[target] = value
        return out

    ident = proto.get("identificationModule", {})
    status = proto.get("statusModule", {})
    sponsor = proto.get("sponsorCollaboratorsModule", {}).get("leadSponsor", {})
    design = proto.get("designModule", {})
    interventions = proto.get("armsInterventionsModule", {}).get("interventions", [])

    phases = design.get("phases") or []
    out: Record = {
        "nctId": ident.get("nctId"),
        "title": ident.get("briefTitle") or ident.get("officialTitle"),
        "phase": ", ".join(phases) if phases else None,
        "status": status.get("overallStatus"),
        "startDate": status.get("startDateStruct", {}).get("date"),
        "completionDate": status.get("completionDateStruct", {}).get("date"),
        "enrollment": design.get("enrollmentInfo", {}).get("count"),
        "sponsor": sponsor.get("name"),
        "sponsorType": sponsor.get("class"),
    }
    if interventions:
        out["interventionName"] = interventions[0].get("name")
        out["interventionType"] = interventions[0].get("type")
    return {k: v for k, v in out.items() if v is not None}


def normalize_financial(record: Record) -> Record:
    out = dict(record)
    name = _first(record, "companyName", "Name", "longName", "shortName", "price.longName")
    if name is not None:
        out["companyName"] = name
    symbol = _first(record, "symbol", "Symbol", "ticker")
    if symbol is not None:
        out["symbol"] = symbol
    for target, *aliases in (
        ("marketCap", "MarketCapitalization", "summaryDetail.marketCap", "market_cap"),
        ("revenue", "RevenueTTM", "financialData.totalRevenue", "totalRevenue"),
        ("profitMargin", "ProfitMargin", "financialData.profitMargins", "profitMargins"),
    ):
        value = _to_float(_first(record, target, *aliases))
        if value is not None:
            out[target] = value
    return out


def normalize_competitive(record: Record) -> Record:
    out = dict(record)
    name = _first(record, "companyInfo.name", "companyName", "company", "name")
    if name is not None:
        info = record.get("companyInfo") if isinstance(record.get("companyInfo"), dict) else {}
        ticker = _first(record, "companyInfo.ticker", "ticker", "symbol")
        out["companyInfo"] = {**info, "name": name, **({"ticker": ticker} if ticker else {})}
    score = _to_float(_first(record, "threatScore", "threat_score"))
    if score is not None:
        out["threatScore"] = score
    threat = _first(record, "overallThreat", "threatLevel", "threat_level")
    if threat is not None:
        out["overallThreat"] = threat
    return out


NORMALIZERS: dict[str, Callable[[Record], Record]] = {
    "patents": normalize_patent,
    "clinical_trials": normalize_clinical_trial,
    "regulatory": normalize_clinical_trial,
    "financial": normalize_financial,
    "market_data": normalize_financial,
    "competitive_intelligence": normalize_competitive,
}


def normalize_payload(data_type: str, payload: Any) -> list[Record]:
    """
    Turn an API response body into records for a data type.

    Args:
        data_type: Source data type (unknown types are only unwrapped)
        payload: Decoded JSON body

    Returns:
        List of records
    """
    records = unwrap(payload)
    normalizer = NORMALIZERS.get(data_type)
    if normalizer is None:
        return records
    return [normalizer(r) for r in records]

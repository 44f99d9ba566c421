"""
Entity resolver.

Runs on every source. Collects organisation and drug name mentions, then
links spelling variants that normalize to different ids but are
fuzzy-similar (rapidfuzz ``token_sort_ratio``), e.g. "Bristol-Myers Squibb"
and "Bristol Myers Squibb Co". The most-mentioned variant of each cluster is
canonical; every other variant gets a ``SAME_AS`` edge to it.
"""

from collections import Counter

from rapidfuzz import fuzz

from pharma_kg.agents.base import Agent, AgentResult, normalize_name
from pharma_kg.config import Settings, settings
from pharma_kg.ingest.records import is_blank, lookup
from pharma_kg.models import DataSource, Record

MENTION_FIELDS = {
    "company": (
        "assignee.name",
        "assignee",
        "assignee_name",
        "sponsor",
        "leadSponsorName",
        "companyName",
        "companyInfo.name",
    ),
    "drug": ("drugInfo.drugName", "drugName", "drug_name"),
}


def collect_mentions(records: list[Record]) -> dict[str, Counter[str]]:
    """Entity type → Counter of raw names mentioned in the records."""
    mentions: dict[str, Counter[str]] = {t: Counter() for t in MENTION_FIELDS}
    for record in records:
        for entity_type, paths in MENTION_FIELDS.items():
            for path in paths:
                value = lookup(record, path)
                if isinstance(value, str) and not is_blank(value):
                    mentions[entity_type][value.strip()] += 1
                    break
    return mentions


def similarity(a: str, b: str) -> float:
    return fuzz.token_sort_ratio(normalize_name(a).replace("_", " "), normalize_name(b).replace("_", " "))


def cluster(names: Counter[str], threshold: float) -> list[list[tuple[str, float]]]:
    """
    Group names whose normalized ids differ but which are fuzzy-similar.

    Names sharing a normalized id are collapsed first (they are already the
    same entity). Each returned cluster starts with the canonical name
    (score 100) followed by its variants and their similarity scores.
    Singletons are omitted.
    """
    by_key: dict[str, Counter[str]] = {}
    for name, count in names.items():
        key = normalize_name(name)
        if key:
            by_key.setdefault(key, Counter())[name] += count

    # Representative spelling and mention count per normalized id
    reps = {key: (spellings.most_common(1)[0][0], sum(spellings.values())) for key, spellings in by_key.items()}
    ordered = sorted(reps, key=lambda k: (-reps[k][1], len(k), k))

    clusters = []
    assigned: set[str] = set()
    for key in ordered:
        if key in assigned:
            continue
        canonical = reps[key][0]
        members = [(canonical, 100.0)]
        assigned.add(key)
        for other in ordered:
            if other in assigned:
                continue
            score = similarity(canonical, reps[other][0])
            if score >= threshold:
                members.append((reps[other][0], round(score, 1)))
                assigned.add(other)
        if len(members) > 1:
            clusters.append(members)
    return clusters


class EntityResolverAgent(Agent):
    agent_id = "entity_resolver"
    name = "Entity Resolver"
    description = "Links spelling variants of organisations and drugs"
    capabilities = ("entity_resolution", "deduplication")
    data_types = ("all",)

    def __init__(self, config: Settings | None = None, threshold: float | None = None):
        config = config or settings
        self.threshold = config.resolver_threshold if threshold is None else threshold

    def run(self, records: list[Record], source: DataSource) -> AgentResult:
        result = AgentResult()
        sid = source.id
        mentions = collect_mentions(records)
        total_mentions = sum(sum(c.values()) for c in mentions.values())
        cluster_count = 0
        resolved = 0

        for entity_type, names in mentions.items():
            for members in cluster(names, self.threshold):
                cluster_count += 1
                (canonical_name, _), *variants = members
                canonical = result.add_entity(
                    entity_type,
                    canonical_name,
                    sid,
                    name=canonical_name,
                    aliases=[name for name, _ in variants],
                )
                for variant_name, score in variants:
                    variant = result.add_entity(entity_type, variant_name, sid, name=variant_name)
                    if canonical and variant:
                        result.link(variant, canonical, "SAME_AS", sid, method="token_sort_ratio", score=score)
                        resolved += 1

        result.insights.append(
            self.insight(
                "entity_resolution",
                f"Resolved {resolved} name variants in {source.name}",
                source,
                mentions=total_mentions,
                clusters=cluster_count,
                aliases_resolved=resolved,
            )
        )
        return result

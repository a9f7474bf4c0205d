from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any

from .db import Database, now_utc
from .errors import PersistenceError, ValidationError
from .llm import TextGenerator, parse_json_response, safe_text
from .schemas import InsightPayload, validate_generated
from .store import fetch_insight, insert_insight_if_absent, list_insight_industries, upsert_insight

logger = logging.getLogger("careercoach.insights")

INSIGHT_REFRESH_INTERVAL = timedelta(days=7)
FRESH_DAYS = 7
AGING_DAYS = 30
SKILL_GAP_LIMIT = 8
DEMAND_SCORES = {"High": 90, "Medium": 55, "Low": 25}
INDUSTRY_KEY_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)+$")
INDUSTRY_KEY_MAX_LENGTH = 80

INSIGHTS_SYSTEM_PROMPT = "You are an industry analyst. You answer with a single JSON object and nothing else."

INSIGHTS_PROMPT_TEMPLATE = """
Analyze the current state of the {industry} industry and provide insights in ONLY the following JSON format without any additional notes or explanations:
{{
  "salaryRanges": [
    {{ "role": "string", "min": number, "max": number, "median": number, "location": "string" }}
  ],
  "growthRate": number,
  "demandLevel": "High" | "Medium" | "Low",
  "topSkills": ["skill1", "skill2"],
  "marketOutlook": "Positive" | "Neutral" | "Negative",
  "keyTrends": ["trend1", "trend2"],
  "recommendedSkills": ["skill1", "skill2"],
  "learningResources": [
    {{ "name": "string", "type": "Course" | "Certification" | "Book" | "Platform", "url": "string (real working URL)", "description": "string (1 sentence)" }}
  ],
  "topCompanies": [
    {{ "name": "string", "industry": "string (specific sector)", "description": "string (1 sentence about why they're notable)" }}
  ],
  "jobMarket": {{
    "openPositions": "string (estimated range like '50,000-100,000')",
    "remotePercentage": number,
    "topLocations": ["city1", "city2", "city3", "city4", "city5"],
    "averageExperience": "string (e.g. '3-5 years')"
  }}
}}

IMPORTANT: Return ONLY the JSON. No additional text, notes, or markdown formatting.
Include at least 5 common roles for salary ranges.
Growth rate should be a percentage.
Include at least 5 skills and trends.
Include at least 5 recommended skills.
Include at least 5 learning resources with real URLs.
Include at least 5 top companies.
Include at least 5 top locations for job market.
"""


def normalize_industry_key(industry: str | None) -> str:
    """Return the lowercase `<parent>-<sub>` key, e.g. ``tech-software-development``."""
    key = safe_text(industry).lower()
    if not key:
        raise ValidationError("Industry is required.")
    if len(key) > INDUSTRY_KEY_MAX_LENGTH or not INDUSTRY_KEY_PATTERN.match(key):
        raise ValidationError(f"Unknown industry: {key}")
    return key


def build_insights_prompt(industry: str) -> str:
    return INSIGHTS_PROMPT_TEMPLATE.format(industry=industry)


def generate_insights(generator: TextGenerator, industry: str) -> dict[str, Any]:
    text = generator.complete(build_insights_prompt(industry), system_prompt=INSIGHTS_SYSTEM_PROMPT)
    data = parse_json_response(text)
    payload = validate_generated(InsightPayload, data, "industry insights")
    return payload.to_payload()


def resolve_insights(
    db: Database,
    generator: TextGenerator,
    industry: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    existing = fetch_insight(db, industry)
    if existing:
        return existing

    logger.info("No cached insights for %s. Generating.", industry)
    payload = generate_insights(generator, industry)
    last_updated = now or now_utc()
    created = insert_insight_if_absent(db, industry, payload, last_updated, last_updated + INSIGHT_REFRESH_INTERVAL)
    if not created:
        logger.info("Insights for %s were stored by a concurrent request. Using the stored row.", industry)

    stored = fetch_insight(db, industry)
    if not stored:
        raise PersistenceError(f"Insights for {industry} vanished after insert.")
    return stored


def refresh_insights(
    db: Database,
    generator: TextGenerator,
    industry: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    payload = generate_insights(generator, industry)
    last_updated = now or now_utc()
    upsert_insight(db, industry, payload, last_updated, last_updated + INSIGHT_REFRESH_INTERVAL)
    stored = fetch_insight(db, industry)
    if not stored:
        raise PersistenceError(f"Insights for {industry} vanished after refresh.")
    logger.info("Refreshed insights for %s.", industry)
    return stored


def refresh_all_insights(db: Database, generator: TextGenerator) -> list[str]:
    """Regenerate every stored industry, one at a time.

    Staleness is ignored. The first failure propagates and the remaining
    industries are left untouched.
    """
    industries = list_insight_industries(db)
    logger.info("Weekly refresh starting for %s industries.", len(industries))
    refreshed: list[str] = []
    for industry in industries:
        refresh_insights(db, generator, industry)
        refreshed.append(industry)
    logger.info("Weekly refresh finished. %s industries updated.", len(refreshed))
    return refreshed


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def classify_staleness(last_updated: str, now: datetime | None = None) -> str:
    age = (now or now_utc()) - parse_timestamp(last_updated)
    if age.days < FRESH_DAYS:
        return "Fresh"
    if age.days < AGING_DAYS:
        return "Aging"
    return "Stale"


def industry_display_name(industry: str | None) -> str:
    if not industry:
        return "Your Industry"
    parts = industry.split("-")
    return " ".join(parts[1:]) if len(parts) > 1 else industry


def insight_view(insight: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    return {
        "insight": insight,
        "industryName": industry_display_name(insight.get("industry")),
        "staleness": classify_staleness(insight["lastUpdated"], now),
    }


def build_skill_gap(insight: dict[str, Any], user_skills: list[str]) -> dict[str, Any]:
    owned = {skill.strip().lower() for skill in user_skills if skill and skill.strip()}
    recommended = list(insight.get("recommendedSkills") or [])[:SKILL_GAP_LIMIT]
    skills = [{"skill": skill, "hasSkill": skill.lower() in owned} for skill in recommended]
    matched = sum(1 for item in skills if item["hasSkill"])
    return {
        "industry": insight.get("industry"),
        "skills": skills,
        "matched": matched,
        "total": len(skills),
        "coveragePercent": round(matched * 100 / len(skills), 1) if skills else 0.0,
        "missing": [item["skill"] for item in skills if not item["hasSkill"]],
    }


def compare_insights(current: dict[str, Any], other: dict[str, Any]) -> dict[str, Any]:
    def summary(insight: dict[str, Any]) -> dict[str, Any]:
        job_market = insight.get("jobMarket") or {}
        salaries = [float(item["median"]) for item in insight.get("salaryRanges") or []]
        return {
            "industry": insight.get("industry"),
            "industryName": industry_display_name(insight.get("industry")),
            "growthRate": float(insight.get("growthRate") or 0),
            "demandLevel": insight.get("demandLevel"),
            "marketOutlook": insight.get("marketOutlook"),
            "remotePercentage": float(job_market.get("remotePercentage") or 0),
            "averageMedianSalary": round(sum(salaries) / len(salaries), 2) if salaries else None,
            "topSkills": list(insight.get("topSkills") or []),
        }

    left = summary(current)
    right = summary(other)
    current_skills = {skill.lower() for skill in left["topSkills"]}
    shared = [skill for skill in right["topSkills"] if skill.lower() in current_skills]
    median_delta = None
    if left["averageMedianSalary"] is not None and right["averageMedianSalary"] is not None:
        median_delta = round(right["averageMedianSalary"] - left["averageMedianSalary"], 2)
    return {
        "current": left,
        "comparison": right,
        "deltas": {
            "growthRate": round(right["growthRate"] - left["growthRate"], 2),
            "remotePercentage": round(right["remotePercentage"] - left["remotePercentage"], 2),
            "averageMedianSalary": median_delta,
            "demandScore": DEMAND_SCORES.get(right["demandLevel"], 50) - DEMAND_SCORES.get(left["demandLevel"], 50),
        },
        "sharedSkills": shared,
    }

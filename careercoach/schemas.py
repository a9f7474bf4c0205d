from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import GenerationError

DemandLevel = Literal["High", "Medium", "Low"]
MarketOutlook = Literal["Positive", "Neutral", "Negative"]
ResourceType = Literal["Course", "Certification", "Book", "Platform"]
QuizCategory = Literal["Technical", "Behavioral", "Situational"]
QuizDifficulty = Literal["easy", "medium", "hard"]

MIN_INSIGHT_ITEMS = 5
QUIZ_QUESTION_COUNT = 10
QUIZ_OPTION_COUNT = 4


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class SalaryRange(CamelModel):
    role: str
    min: float
    max: float
    median: float
    location: str


class LearningResource(CamelModel):
    name: str
    type: ResourceType
    url: str
    description: str


class TopCompany(CamelModel):
    name: str
    industry: str
    description: str


class JobMarket(CamelModel):
    open_positions: str
    remote_percentage: float
    top_locations: list[str] = Field(min_length=MIN_INSIGHT_ITEMS)
    average_experience: str


class InsightPayload(CamelModel):
    salary_ranges: list[SalaryRange] = Field(min_length=MIN_INSIGHT_ITEMS)
    growth_rate: float
    demand_level: DemandLevel
    top_skills: list[str] = Field(min_length=MIN_INSIGHT_ITEMS)
    market_outlook: MarketOutlook
    key_trends: list[str] = Field(min_length=MIN_INSIGHT_ITEMS)
    recommended_skills: list[str] = Field(min_length=MIN_INSIGHT_ITEMS)
    learning_resources: list[LearningResource] = Field(min_length=MIN_INSIGHT_ITEMS)
    top_companies: list[TopCompany] = Field(min_length=MIN_INSIGHT_ITEMS)
    job_market: JobMarket


class QuizQuestion(CamelModel):
    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=QUIZ_OPTION_COUNT, max_length=QUIZ_OPTION_COUNT)
    correct_answer: str
    hint: str = ""
    explanation: str = ""

    @model_validator(mode="after")
    def correct_answer_is_an_option(self) -> "QuizQuestion":
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must match one of the options exactly")
        return self


class QuizPayload(CamelModel):
    questions: list[QuizQuestion] = Field(min_length=QUIZ_QUESTION_COUNT, max_length=QUIZ_QUESTION_COUNT)


class BookmarkIn(CamelModel):
    question: str = Field(min_length=1)
    answer: str = ""
    explanation: str = ""
    category: QuizCategory = "Technical"


def validate_generated(model: type[BaseModel], data: Any, what: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise GenerationError(f"AI returned {what} in an unexpected shape: {exc.error_count()} problem(s).") from exc

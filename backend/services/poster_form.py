"""
Input form contract.

Validates raw poster inputs (strings from a form or the CLI) and turns them
into the PosterState variant that matches the chosen template.
"""
import datetime
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from domain.models import (
    NAME_MAX_LENGTH,
    BackgroundMode,
    CampaignContent,
    PledgeStoryContent,
    PosterSize,
    PosterState,
    TemplateName,
)
from services.text_layout import format_date_tag

DESCRIPTION_MAX = 180

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class PosterForm(BaseModel):
    template: TemplateName = TemplateName.ONETREE
    size: PosterSize = PosterSize.STORY
    name: str = Field(default="", max_length=NAME_MAX_LENGTH)
    pledge_checked: bool = True
    background: BackgroundMode = BackgroundMode.GRADIENT
    title: str = Field(default="", max_length=80)
    subtitle: str = Field(default="", max_length=120)
    description: str = Field(default="", max_length=DESCRIPTION_MAX)
    cta_text: str = Field(default="", max_length=40)
    cta_link: str = Field(default="", max_length=300)
    city: str = Field(default="", max_length=80)
    date: str = ""

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        value = value.strip()
        if not value:
            return ""
        if not _ISO_DATE.match(value):
            raise ValueError("date must be YYYY-MM-DD")
        # fromisoformat rejects impossible days like 2025-02-30
        datetime.date.fromisoformat(value)
        return value

    @property
    def parsed_date(self) -> Optional[datetime.date]:
        return datetime.date.fromisoformat(self.date) if self.date else None

    def formatted_date(self) -> str:
        return format_date_tag(self.parsed_date)

    def description_counter(self) -> str:
        return f"{len(self.description)}/{DESCRIPTION_MAX}"

    def to_state(self) -> PosterState:
        if self.template == TemplateName.ONETREE:
            content = PledgeStoryContent(name=self.name, pledge_checked=self.pledge_checked)
        else:
            content = CampaignContent(
                title=self.title,
                subtitle=self.subtitle,
                description=self.description,
                cta_text=self.cta_text,
                cta_link=self.cta_link,
                city=self.city,
                date=self.parsed_date,
                background=self.background,
            )
        return PosterState(size=self.size, template=self.template, content=content)

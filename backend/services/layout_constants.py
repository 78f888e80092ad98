"""
Layout constants table.

Static description of the canonical output sizes, template styles and the
reference-1080 metrics every draw call is scaled from. Nothing here is
mutated at runtime; the compositor receives a LayoutConfig instance instead
of reading module globals.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from domain.models import BackgroundMode, PosterSize, SizeSpec, TemplateName, TemplateStyle, TextBlock


REFERENCE_WIDTH = 1080

STORY_KIND = "story"
CAMPAIGN_KIND = "campaign"


@dataclass(frozen=True)
class TextBlockSpec:
    """Typography and clamp count for one wrapped text block."""
    font_size: int
    line_gap: int
    max_lines: int
    weight: str = "regular"

    @property
    def line_height(self) -> int:
        return self.font_size + self.line_gap


@dataclass(frozen=True)
class SizeMetrics:
    """Per-size metrics that do not follow the plain width scale."""
    name_font: int
    sdg_label_font: int
    footer_font: int
    icon_size: int


@dataclass(frozen=True)
class Metrics:
    """Reference-1080 metrics. Multiply by scale before use."""
    padding: int = 72
    logo_badge: int = 132
    logo_badge_radius: int = 32
    logo_inner_pad: int = 18
    chip_height: int = 48
    chip_radius: int = 24
    chip_font: int = 22
    chip_pad_x: int = 22
    chip_gap: int = 12
    block_gap: int = 18
    cta_height: int = 68
    cta_radius: int = 34
    cta_font: int = 26
    cta_pad_x: int = 32
    cta_link_font: int = 22
    footer_gap: int = 28
    leaf_size: int = 16
    leaf_gap: int = 10
    icon_gap: int = 12
    un_badge: int = 36
    sdg_row_gap: int = 24
    sdg_label_gap: int = 10
    name_chip_pad_x: int = 36
    name_chip_pad_y: int = 18
    name_chip_radius: int = 40
    name_min_font: int = 40
    name_caption_font: int = 22
    glow_radius: int = 460
    glow_alpha: float = 0.38
    glow_center: Tuple[float, float] = (0.82, 0.16)
    text_shadow_blur: int = 16
    text_shadow_offset: int = 4
    text_shadow_alpha: int = 115


@dataclass(frozen=True)
class LayoutConfig:
    """
    Immutable bundle of every table the compositor needs.

    Lookups for unknown keys raise KeyError: a missing entry is a
    programming error, not a user-facing one.
    """
    reference_width: int
    sizes: Mapping[PosterSize, SizeSpec]
    templates: Mapping[TemplateName, TemplateStyle]
    text_blocks: Mapping[Tuple[str, PosterSize, TextBlock], TextBlockSpec]
    size_metrics: Mapping[PosterSize, SizeMetrics]
    metrics: Metrics
    locked_copy: Mapping[TextBlock, str]
    background_options: Tuple[Tuple[BackgroundMode, str], ...]
    site_url: str
    brand_name: str
    sdg_goals: Tuple[str, ...]
    sdg_icon_paths: Tuple[str, ...]
    logo_candidates: Tuple[str, ...]
    un_logo_candidates: Tuple[str, ...]

    def size_spec(self, size: PosterSize) -> SizeSpec:
        return self.sizes[_coerce(PosterSize, size)]

    def template_style(self, template: TemplateName) -> TemplateStyle:
        return self.templates[_coerce(TemplateName, template)]

    def text_block(self, template: TemplateName, size: PosterSize, block: TextBlock) -> TextBlockSpec:
        key = (template_kind(template), _coerce(PosterSize, size), _coerce(TextBlock, block))
        return self.text_blocks[key]

    def metrics_for(self, size: PosterSize) -> SizeMetrics:
        return self.size_metrics[_coerce(PosterSize, size)]

    def scale_for(self, width: int) -> float:
        return width / self.reference_width


def _coerce(enum_type, value):
    try:
        return enum_type(value)
    except ValueError:
        raise KeyError(value) from None


def template_kind(template: TemplateName) -> str:
    return STORY_KIND if _coerce(TemplateName, template) == TemplateName.ONETREE else CAMPAIGN_KIND


SIZE_OPTIONS: Tuple[SizeSpec, ...] = (
    SizeSpec(PosterSize.SQUARE, "Square 1080 x 1080", 1080, 1080),
    SizeSpec(PosterSize.PORTRAIT, "Poster 1080 x 1350", 1080, 1350),
    SizeSpec(PosterSize.STORY, "Story 1080 x 1920", 1080, 1920),
)

TEMPLATE_STYLES = MappingProxyType({
    TemplateName.IMPACT: TemplateStyle(
        label="Impact Card",
        description="Share planting results and verified numbers.",
        accent=(0, 208, 132),
        gradient=((15, 42, 29), (11, 21, 16)),
        glow=(52, 211, 153),
    ),
    TemplateName.VOLUNTEER: TemplateStyle(
        label="Volunteer Call",
        description="Recruit students and volunteers for the next drive.",
        accent=(56, 189, 248),
        gradient=((11, 34, 51), (7, 19, 29)),
        glow=(56, 189, 248),
    ),
    TemplateName.DRIVE: TemplateStyle(
        label="Planting Drive",
        description="Announce a drive with location and date.",
        accent=(250, 204, 21),
        gradient=((42, 35, 11), (20, 16, 5)),
        glow=(253, 224, 71),
    ),
    TemplateName.THANKYOU: TemplateStyle(
        label="Thank You",
        description="Celebrate partners, schools and volunteers.",
        accent=(244, 114, 182),
        gradient=((42, 15, 31), (20, 7, 15)),
        glow=(249, 168, 212),
    ),
    TemplateName.ONETREE: TemplateStyle(
        label="OneTeenOneTree Story",
        description="Take the pledge with your name and photo.",
        accent=(0, 208, 132),
        gradient=((15, 42, 29), (11, 21, 16)),
        glow=(52, 211, 153),
        photo_driven=True,
    ),
})

BACKGROUND_OPTIONS: Tuple[Tuple[BackgroundMode, str], ...] = (
    (BackgroundMode.GRADIENT, "Gradient"),
    (BackgroundMode.PHOTO, "Photo"),
    (BackgroundMode.SOLID, "Solid"),
)

LOCKED_COPY = MappingProxyType({
    TextBlock.TITLE: "OneTeenOneTree = One Tree",
    TextBlock.SUBTITLE: "Take the pledge. Plant a tree. Inspire your friends.",
    TextBlock.DESCRIPTION: "Share this to your story and tag @OneTeenOneTree to grow the movement.",
})

SDG_GOALS: Tuple[str, ...] = ("6", "7", "11", "12", "13", "15", "17")
SDG_ICON_PATHS: Tuple[str, ...] = tuple(f"/brand/sdg/sdg-{goal}.png" for goal in SDG_GOALS)
LOGO_CANDIDATES: Tuple[str, ...] = ("/brand/logo.png", "/logo.png")
UN_LOGO_CANDIDATES: Tuple[str, ...] = ("/brand/un-logo.png", "/brand/un-emblem.png")


def _blocks(
    kind: str,
    block: TextBlock,
    sizes: Tuple[int, int, int],
    line_gap: int,
    max_lines: Tuple[int, int, int],
    weight: str,
) -> dict:
    order = (PosterSize.SQUARE, PosterSize.PORTRAIT, PosterSize.STORY)
    return {
        (kind, size, block): TextBlockSpec(font_size=font, line_gap=line_gap, max_lines=lines, weight=weight)
        for size, font, lines in zip(order, sizes, max_lines)
    }


# Clamp counts are tuning data; story gets the extra description line.
TEXT_BLOCKS = MappingProxyType({
    **_blocks(STORY_KIND, TextBlock.TITLE, (64, 70, 78), 12, (2, 2, 2), "bold"),
    **_blocks(STORY_KIND, TextBlock.SUBTITLE, (30, 32, 34), 10, (2, 2, 2), "medium"),
    **_blocks(STORY_KIND, TextBlock.DESCRIPTION, (22, 24, 26), 8, (2, 2, 3), "regular"),
    **_blocks(CAMPAIGN_KIND, TextBlock.TITLE, (72, 76, 84), 10, (2, 3, 3), "bold"),
    **_blocks(CAMPAIGN_KIND, TextBlock.SUBTITLE, (32, 34, 36), 10, (2, 2, 2), "medium"),
    **_blocks(CAMPAIGN_KIND, TextBlock.DESCRIPTION, (26, 28, 30), 10, (2, 3, 4), "regular"),
})

SIZE_METRICS = MappingProxyType({
    PosterSize.SQUARE: SizeMetrics(name_font=56, sdg_label_font=18, footer_font=18, icon_size=40),
    PosterSize.PORTRAIT: SizeMetrics(name_font=62, sdg_label_font=18, footer_font=18, icon_size=42),
    PosterSize.STORY: SizeMetrics(name_font=70, sdg_label_font=20, footer_font=20, icon_size=46),
})


DEFAULT_LAYOUT = LayoutConfig(
    reference_width=REFERENCE_WIDTH,
    sizes=MappingProxyType({spec.value: spec for spec in SIZE_OPTIONS}),
    templates=TEMPLATE_STYLES,
    text_blocks=TEXT_BLOCKS,
    size_metrics=SIZE_METRICS,
    metrics=Metrics(),
    locked_copy=LOCKED_COPY,
    background_options=BACKGROUND_OPTIONS,
    site_url="oneteenonetree.org",
    brand_name="OneTeenOneTree",
    sdg_goals=SDG_GOALS,
    sdg_icon_paths=SDG_ICON_PATHS,
    logo_candidates=LOGO_CANDIDATES,
    un_logo_candidates=UN_LOGO_CANDIDATES,
)

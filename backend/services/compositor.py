"""
Story card compositor.

Given a PosterState, the decoded assets and a target surface, draws one
complete frame in a fixed order:

1. clear
2. background (cover-fit photo, solid fill or two-stop gradient)
3. legibility overlay
4. glow accent
5. logo badge
6. content block (campaign copy, or the pledge story layout)
7. CTA chip (campaign templates only)
8. footer mark

All geometry is computed up front by plan() from reference-1080 metrics
multiplied by scale = width / 1080, then render() replays the plan onto the
surface. Nothing depends on time, randomness or prior surface contents, so
identical inputs give byte-identical frames.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from PIL import Image

from domain.models import (
    RGBA,
    BackgroundMode,
    CampaignContent,
    PosterState,
    TextBlock,
)
from services.asset_loader import LoadedAssets
from services.drawing import (
    Shadow,
    composite_clipped,
    contain,
    draw_cover,
    draw_text,
    leaf_glyph,
    linear_gradient,
    radial_glow,
    rgba,
    rounded_rect,
)
from services.fonts import BOLD, MEDIUM, REGULAR, FontBook
from services.layout_constants import LayoutConfig
from services.text_layout import fit_font_size, format_date_tag, layout_text_block

logger = logging.getLogger(__name__)

Box = Tuple[float, float, float, float]

WHITE = (255, 255, 255, 255)
INK = (6, 20, 13, 255)

OVERLAY_STOPS = (
    (0.0, rgba((6, 18, 12), 0.55)),
    (0.45, rgba((6, 18, 12), 0.45)),
    (1.0, rgba((5, 12, 8), 0.82)),
)

BLOCK_FILLS = {
    TextBlock.TITLE: WHITE,
    TextBlock.SUBTITLE: rgba((255, 255, 255), 0.88),
    TextBlock.DESCRIPTION: rgba((255, 255, 255), 0.75),
}

# Extra space above each story text block, reference px.
STORY_BLOCK_LEAD = {
    TextBlock.TITLE: 0,
    TextBlock.SUBTITLE: 8,
    TextBlock.DESCRIPTION: 10,
}

SDG_LABEL = "Aligned with the UN SDGs"
PLEDGE_CAPTION = "pledged to plant one tree"


@dataclass(frozen=True)
class TextRun:
    """One line of text, positioned in surface pixels."""
    text: str
    xy: Tuple[float, float]
    weight: str
    size: float
    fill: RGBA
    anchor: str = "la"


@dataclass
class FramePlan:
    """
    Every box and text run of one frame, in surface pixels.

    render() draws exactly what is listed here; tests inspect it directly.
    """
    width: int
    height: int
    scale: float
    background: str
    logo_badge: Box
    logo_box: Optional[Box] = None
    tags: List[Tuple[Box, TextRun]] = field(default_factory=list)
    name_chip: Optional[Box] = None
    text: List[TextRun] = field(default_factory=list)
    un_slot: Optional[Box] = None
    icon_slots: List[Box] = field(default_factory=list)
    cta_chip: Optional[Box] = None
    cta_text: List[TextRun] = field(default_factory=list)
    leaf_box: Box = (0.0, 0.0, 0.0, 0.0)
    footer_text: Optional[TextRun] = None


class Compositor:
    """Draws PosterState frames onto RGBA surfaces."""

    def __init__(self, layout: LayoutConfig, fonts: Optional[FontBook] = None):
        self.layout = layout
        self.fonts = fonts or FontBook()

    # ------------------------------------------------------------------ plan

    def plan(
        self,
        state: PosterState,
        width: int,
        height: int,
        assets: Optional[LoadedAssets] = None,
        scale: Optional[float] = None,
    ) -> FramePlan:
        assets = assets or LoadedAssets()
        s = self.layout.scale_for(width) if scale is None else scale
        m = self.layout.metrics
        style = self.layout.template_style(state.template)
        pad = m.padding * s

        if assets.photo is not None and (style.photo_driven or _wants_photo(state)):
            background = "photo"
        elif isinstance(state.content, CampaignContent) and state.content.background == BackgroundMode.SOLID:
            background = "solid"
        else:
            background = "gradient"

        badge = m.logo_badge * s
        plan = FramePlan(
            width=width,
            height=height,
            scale=s,
            background=background,
            logo_badge=(pad, pad, pad + badge, pad + badge),
        )
        if assets.logo is not None:
            inner = badge - 2 * m.logo_inner_pad * s
            w, h = _contain_size(assets.logo.size, inner, inner)
            cx, cy = pad + badge / 2, pad + badge / 2
            plan.logo_box = (cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2)

        if state.is_story:
            self._plan_story(plan, state, assets)
        else:
            self._plan_campaign(plan, state)
        return plan

    def _plan_footer(self, plan: FramePlan, state: PosterState, centered: bool) -> float:
        """Place the leaf + URL mark; returns the footer's top edge."""
        s = plan.scale
        m = self.layout.metrics
        size_metrics = self.layout.metrics_for(state.size)
        font_size = size_metrics.footer_font * s
        footer_y = plan.height - m.padding * s
        leaf = m.leaf_size * s
        text_w = self.fonts.measure(self.layout.site_url, self.fonts.font(MEDIUM, font_size))
        group_w = leaf + m.leaf_gap * s + text_w
        x = (plan.width - group_w) / 2 if centered else m.padding * s
        plan.leaf_box = (x, footer_y - leaf / 2, x + leaf, footer_y + leaf / 2)
        plan.footer_text = TextRun(
            text=self.layout.site_url,
            xy=(x + leaf + m.leaf_gap * s, footer_y),
            weight=MEDIUM,
            size=font_size,
            fill=rgba((255, 255, 255), 0.85),
            anchor="lm",
        )
        return footer_y - font_size / 2

    def _plan_story(self, plan: FramePlan, state: PosterState, assets: LoadedAssets) -> None:
        s = plan.scale
        m = self.layout.metrics
        size_metrics = self.layout.metrics_for(state.size)
        pad = m.padding * s
        content_w = plan.width - 2 * pad
        center_x = plan.width / 2

        cursor = plan.logo_badge[3] + 24 * s
        for block in (TextBlock.TITLE, TextBlock.SUBTITLE, TextBlock.DESCRIPTION):
            spec = self.layout.text_block(state.template, state.size, block)
            size = spec.font_size * s
            lines = layout_text_block(
                self.layout.locked_copy[block], content_w, spec.max_lines, self.fonts.measurer(spec.weight, size)
            )
            cursor += STORY_BLOCK_LEAD[block] * s
            for line in lines:
                plan.text.append(TextRun(line, (center_x, cursor), spec.weight, size, BLOCK_FILLS[block], "ma"))
                cursor += spec.line_height * s

        footer_top = self._plan_footer(plan, state, centered=True)

        # SDG row, centered as a group; the UN slot exists only when its badge decoded.
        icon = size_metrics.icon_size * s
        gap = m.icon_gap * s
        count = len(self.layout.sdg_goals)
        row_w = count * icon + (count - 1) * gap
        un = m.un_badge * s if assets.un_logo is not None else 0.0
        if un:
            row_w += un + gap
        row_y = footer_top - m.sdg_row_gap * s - icon
        x = (plan.width - row_w) / 2
        if un:
            top = row_y + (icon - un) / 2
            plan.un_slot = (x, top, x + un, top + un)
            x += un + gap
        for _ in range(count):
            plan.icon_slots.append((x, row_y, x + icon, row_y + icon))
            x += icon + gap

        label_size = size_metrics.sdg_label_font * s
        label_y = row_y - label_size - m.sdg_label_gap * s
        plan.text.append(
            TextRun(SDG_LABEL, (center_x, label_y), MEDIUM, label_size, rgba((255, 255, 255), 0.8), "ma")
        )

        name = state.name.strip()[:60]
        if not name:
            return
        pad_x, pad_y = m.name_chip_pad_x * s, m.name_chip_pad_y * s
        base = size_metrics.name_font * s
        name_size = fit_font_size(
            name,
            content_w - 2 * pad_x,
            base,
            max(m.name_min_font * s, base - 16 * s),
            lambda size, text: self.fonts.measure(text, self.fonts.font(BOLD, size)),
        )
        text_w = self.fonts.measure(name, self.fonts.font(BOLD, name_size))
        chip_w = min(content_w, text_w + 2 * pad_x)
        chip_h = name_size + 2 * pad_y
        caption = state.content.pledge_checked
        caption_size = m.name_caption_font * s
        caption_h = caption_size + 10 * s if caption else 0.0
        chip_top = min(cursor + 24 * s, label_y - 18 * s - caption_h - chip_h)
        plan.name_chip = (center_x - chip_w / 2, chip_top, center_x + chip_w / 2, chip_top + chip_h)
        plan.text.append(TextRun(name, (center_x, chip_top + chip_h / 2), BOLD, name_size, WHITE, "mm"))
        if caption:
            plan.text.append(
                TextRun(
                    PLEDGE_CAPTION,
                    (center_x, chip_top + chip_h + 10 * s),
                    REGULAR,
                    caption_size,
                    rgba((255, 255, 255), 0.75),
                    "ma",
                )
            )

    def _plan_campaign(self, plan: FramePlan, state: PosterState) -> None:
        content: CampaignContent = state.content
        s = plan.scale
        m = self.layout.metrics
        pad = m.padding * s
        content_w = plan.width - 2 * pad

        # Tag chips under the badge.
        tags_bottom = plan.logo_badge[3]
        tag_texts = [t for t in (content.city.strip(), format_date_tag(content.date)) if t]
        if tag_texts:
            chip_h = m.chip_height * s
            chip_font = m.chip_font * s
            y = plan.logo_badge[3] + m.block_gap * s
            x = pad
            for text in tag_texts:
                text_w = self.fonts.measure(text, self.fonts.font(MEDIUM, chip_font))
                chip_w = min(content_w, text_w + 2 * m.chip_pad_x * s)
                if x + chip_w > plan.width - pad:
                    break
                run = TextRun(text, (x + chip_w / 2, y + chip_h / 2), MEDIUM, chip_font, WHITE, "mm")
                plan.tags.append(((x, y, x + chip_w, y + chip_h), run))
                x += chip_w + m.chip_gap * s
            tags_bottom = y + chip_h

        footer_top = self._plan_footer(plan, state, centered=False)
        bottom = footer_top - m.footer_gap * s

        cta = content.cta_text.strip()
        if cta:
            cta_font = m.cta_font * s
            cta_h = m.cta_height * s
            cta_pad = m.cta_pad_x * s
            lines = layout_text_block(cta, content_w - 2 * cta_pad, 1, self.fonts.measurer(BOLD, cta_font))
            text_w = self.fonts.measure(lines[0], self.fonts.font(BOLD, cta_font))
            chip_w = min(content_w, text_w + 2 * cta_pad)
            top = bottom - cta_h
            plan.cta_chip = (pad, top, pad + chip_w, bottom)
            plan.cta_text.append(TextRun(lines[0], (pad + cta_pad, top + cta_h / 2), BOLD, cta_font, INK, "lm"))
            link = _display_link(content.cta_link)
            if link:
                link_font = m.cta_link_font * s
                link_x = pad + chip_w + 20 * s
                link_w = self.fonts.measure(link, self.fonts.font(MEDIUM, link_font))
                if link_x + link_w <= plan.width - pad:
                    plan.cta_text.append(
                        TextRun(link, (link_x, top + cta_h / 2), MEDIUM, link_font, rgba((255, 255, 255), 0.8), "lm")
                    )
            bottom = top - m.footer_gap * s

        # Copy blocks stack upward from the CTA chip, never above the tags.
        blocks = []
        for block, text in (
            (TextBlock.TITLE, content.title),
            (TextBlock.SUBTITLE, content.subtitle),
            (TextBlock.DESCRIPTION, content.description),
        ):
            if not text.strip():
                continue
            spec = self.layout.text_block(state.template, state.size, block)
            size = spec.font_size * s
            lines = layout_text_block(text, content_w, spec.max_lines, self.fonts.measurer(spec.weight, size))
            blocks.append((block, spec, size, lines))
        total = sum(len(lines) * spec.line_height * s for _, spec, _, lines in blocks)
        total += m.block_gap * s * max(0, len(blocks) - 1)
        cursor = max(bottom - total, tags_bottom + m.block_gap * s)
        for block, spec, size, lines in blocks:
            for line in lines:
                plan.text.append(TextRun(line, (pad, cursor), spec.weight, size, BLOCK_FILLS[block]))
                cursor += spec.line_height * s
            cursor += m.block_gap * s

    # ---------------------------------------------------------------- render

    def render(
        self,
        surface: Optional[Image.Image],
        state: PosterState,
        assets: Optional[LoadedAssets] = None,
        scale: Optional[float] = None,
    ) -> Optional[FramePlan]:
        """
        Draw one full frame onto an RGBA surface.

        A None surface means nothing is attached yet: the pass is a no-op
        and returns None.
        """
        if surface is None:
            logger.debug("[render] no surface attached; skipping pass")
            return None
        if surface.mode != "RGBA":
            raise ValueError(f"surface must be RGBA, got {surface.mode}")
        assets = assets or LoadedAssets()
        plan = self.plan(state, surface.width, surface.height, assets, scale)
        style = self.layout.template_style(state.template)
        m = self.layout.metrics
        s = plan.scale
        size = surface.size

        # 1. clear
        surface.paste((0, 0, 0, 0), (0, 0, size[0], size[1]))

        # 2. background
        if plan.background == "photo":
            draw_cover(surface, assets.photo)
        elif plan.background == "solid":
            surface.paste(rgba(style.gradient[0]), (0, 0, size[0], size[1]))
        else:
            stops = ((0.0, rgba(style.gradient[0])), (1.0, rgba(style.gradient[1])))
            surface.alpha_composite(linear_gradient(size, (0, 0), size, stops))

        # 3. legibility overlay
        surface.alpha_composite(linear_gradient(size, (0, 0), (0, size[1]), OVERLAY_STOPS))

        # 4. glow
        radius = m.glow_radius * s
        glow = radial_glow(radius, style.glow, m.glow_alpha)
        composite_clipped(
            surface, glow, m.glow_center[0] * size[0] - glow.width / 2, m.glow_center[1] * size[1] - glow.height / 2
        )

        # 5. logo badge
        self._draw_chip(surface, plan.logo_badge, m.logo_badge_radius * s, rgba((255, 255, 255), 0.12))
        if plan.logo_box is not None:
            self._draw_bitmap(surface, assets.logo, plan.logo_box)

        # 6. content
        shadow = Shadow(blur=m.text_shadow_blur * s, offset_y=m.text_shadow_offset * s, alpha=m.text_shadow_alpha)
        for box, _ in plan.tags:
            self._draw_chip(surface, box, m.chip_radius * s, rgba((255, 255, 255), 0.14))
        if plan.name_chip is not None:
            self._draw_chip(surface, plan.name_chip, m.name_chip_radius * s, rgba(style.accent, 0.28))
        for _, run in plan.tags:
            self._draw_run(surface, run)
        for run in plan.text:
            self._draw_run(surface, run, shadow)
        if plan.un_slot is not None:
            self._draw_bitmap(surface, assets.un_logo, plan.un_slot)
        for slot, icon in zip(plan.icon_slots, assets.icons):
            if icon is not None:
                self._draw_bitmap(surface, icon, slot)

        # 7. CTA
        if plan.cta_chip is not None:
            self._draw_chip(surface, plan.cta_chip, m.cta_radius * s, rgba(style.accent))
            for run in plan.cta_text:
                self._draw_run(surface, run)

        # 8. footer
        leaf = leaf_glyph(
            plan.leaf_box[2] - plan.leaf_box[0], rgba(style.accent), rgba((255, 255, 255), 0.4), 1.4 * s
        )
        composite_clipped(surface, leaf, plan.leaf_box[0], plan.leaf_box[1])
        if plan.footer_text is not None:
            self._draw_run(surface, plan.footer_text, shadow)

        logger.debug(
            "[render] %s %sx%s scale=%.3f background=%s icons=%s",
            state.template.value,
            size[0],
            size[1],
            s,
            plan.background,
            sum(1 for icon in assets.icons if icon is not None),
        )
        return plan

    def render_image(self, state: PosterState, width: int, height: int, assets: Optional[LoadedAssets] = None) -> Image.Image:
        """Allocate a fresh surface and render into it."""
        surface = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self.render(surface, state, assets)
        return surface

    def _draw_chip(self, surface: Image.Image, box: Box, radius: float, fill: RGBA) -> None:
        layer = rounded_rect((box[2] - box[0], box[3] - box[1]), radius, fill)
        composite_clipped(surface, layer, box[0], box[1])

    def _draw_bitmap(self, surface: Image.Image, img: Image.Image, box: Box) -> None:
        w = max(1, int(round(box[2] - box[0])))
        h = max(1, int(round(box[3] - box[1])))
        fitted = contain(img, w, h)
        x = box[0] + (w - fitted.width) / 2
        y = box[1] + (h - fitted.height) / 2
        composite_clipped(surface, fitted, x, y)

    def _draw_run(self, surface: Image.Image, run: TextRun, shadow: Optional[Shadow] = None) -> None:
        draw_text(surface, run.xy, run.text, self.fonts.font(run.weight, run.size), run.fill, run.anchor, shadow)


def _wants_photo(state: PosterState) -> bool:
    return isinstance(state.content, CampaignContent) and state.content.background == BackgroundMode.PHOTO


def _contain_size(size: Tuple[int, int], max_w: float, max_h: float) -> Tuple[float, float]:
    ratio = min(max_w / size[0], max_h / size[1])
    return size[0] * ratio, size[1] * ratio


def _display_link(link: str) -> str:
    """Strip scheme, www and trailing slash for display."""
    text = link.strip()
    for prefix in ("https://", "http://"):
        if text.lower().startswith(prefix):
            text = text[len(prefix):]
            break
    if text.lower().startswith("www."):
        text = text[4:]
    return text.rstrip("/")

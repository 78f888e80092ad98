"""Render a story card / campaign poster from the command line.

Usage:
    storycard --name "Asha" --photo me.jpg
    storycard --template drive --size portrait --title "Saturday drive" --city Pune --date 2025-03-05
    python -m scripts.render_story_card --name "Asha" --photo me.jpg --preview-width 360 --dpr 3

Writes the export PNG (canonical size) into --out-dir, which defaults to
STORYCARD_EXPORT_DIR. With --preview the preview frame is written as well.
When STORYCARD_DEBUG_ARTIFACTS=1 the frame plan is dumped next to it.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from pydantic import ValidationError

from domain.models import ExportBlockedError, PhotoDecodeError, PosterSize, TemplateName
from services.asset_loader import AssetLoader
from services.compositor import Compositor
from services.layout_constants import DEFAULT_LAYOUT
from services.poster_controller import PosterController
from services.poster_form import PosterForm
from settings import settings
from storage.static_assets import StaticAssetStore

logger = logging.getLogger("render_story_card")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a OneTeenOneTree story card or campaign poster.")
    parser.add_argument("--template", choices=[t.value for t in TemplateName], default=TemplateName.ONETREE.value)
    parser.add_argument("--size", choices=[s.value for s in PosterSize], default=PosterSize.STORY.value)
    parser.add_argument("--name", default="", help="Pledge name (story template).")
    parser.add_argument("--no-pledge", action="store_true", help="Hide the pledge caption under the name.")
    parser.add_argument("--photo", default=None, help="Photo file (JPEG, PNG, HEIC...).")
    backgrounds = DEFAULT_LAYOUT.background_options
    parser.add_argument(
        "--background",
        choices=[mode.value for mode, _ in backgrounds],
        default=backgrounds[0][0].value,
        help="Campaign background: " + ", ".join(f"{mode.value} ({label})" for mode, label in backgrounds) + ".",
    )
    parser.add_argument("--title", default="")
    parser.add_argument("--subtitle", default="")
    parser.add_argument("--description", default="")
    parser.add_argument("--cta-text", default="")
    parser.add_argument("--cta-link", default="")
    parser.add_argument("--city", default="")
    parser.add_argument("--date", default="", help="YYYY-MM-DD")
    parser.add_argument("--static-root", default=None, help="Directory holding brand/ assets.")
    parser.add_argument("--out-dir", default=None)
    parser.add_argument("--preview", action="store_true", help="Also write the preview frame.")
    parser.add_argument("--preview-width", type=int, default=settings.PREVIEW_WIDTH)
    parser.add_argument("--dpr", type=float, default=1.0, help="Device pixel ratio for the preview.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    if not logger.handlers:
        logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    try:
        form = PosterForm(
            template=args.template,
            size=args.size,
            name=args.name,
            pledge_checked=not args.no_pledge,
            background=args.background,
            title=args.title,
            subtitle=args.subtitle,
            description=args.description,
            cta_text=args.cta_text,
            cta_link=args.cta_link,
            city=args.city,
            date=args.date,
        )
    except ValidationError as exc:
        for err in exc.errors():
            logger.error("invalid %s: %s", ".".join(str(p) for p in err["loc"]), err["msg"])
        return 2

    out_dir = Path(args.out_dir or settings.EXPORT_DIR).resolve()
    store = StaticAssetStore(static_root=Path(args.static_root) if args.static_root else None)
    loader = AssetLoader(store, DEFAULT_LAYOUT)
    compositor = Compositor(DEFAULT_LAYOUT)

    with PosterController(DEFAULT_LAYOUT, loader, compositor, state=form.to_state()) as controller:
        if args.photo:
            try:
                controller.select_photo(Path(args.photo).read_bytes(), filename=Path(args.photo).name)
            except (OSError, PhotoDecodeError) as exc:
                logger.error("could not use photo %s: %s", args.photo, exc)
                return 2

        if args.preview:
            controller.attach_preview(args.preview_width, device_pixel_ratio=args.dpr)
            frame = controller.render_now()
            if frame is not None:
                out_dir.mkdir(parents=True, exist_ok=True)
                preview_path = out_dir / f"preview-{controller.export_filename()}"
                frame.image.save(preview_path)
                logger.info("  preview: %s (%sx%s)", preview_path, frame.width, frame.height)
                if settings.DEBUG_ARTIFACTS:
                    plan = compositor.plan(controller.state, frame.width, frame.height, loader.load_now(controller.photo))
                    plan_path = out_dir / "debug" / f"{preview_path.stem}.plan.json"
                    plan_path.parent.mkdir(parents=True, exist_ok=True)
                    plan_path.write_text(json.dumps(asdict(plan), indent=2, default=str))
                    logger.info("  plan: %s", plan_path)

        try:
            artifact = controller.export_now()
        except ExportBlockedError as exc:
            logger.error("export blocked: %s", exc.reason)
            return 1

    path = artifact.save(out_dir)
    logger.info("Rendered story card:")
    logger.info("  export: %s (%sx%s)", path, artifact.width, artifact.height)
    logger.info("  caption: %s", artifact.caption)
    return 0


if __name__ == "__main__":
    sys.exit(main())
